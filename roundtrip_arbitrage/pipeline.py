"""
Per-trigger arbitrage pipeline.

sample -> quote fan-out -> evaluate -> (live) build -> submit. Every failure
is handled here so no trigger can break the polling or streaming loop.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .big_trade import BigTradeEvent
from .constants import QuoteMode, TriggerKind, is_native
from .cost_model import FeeModel
from .evaluator import EvaluationReport, evaluate_opportunities
from .exceptions import BuildError, InvalidRange, RoundTripArbitrageError, SubmissionError
from .quote_fanout import FanoutResult, fan_out_quotes, merge_fanouts
from .sampler import sample_amounts
from .submission import SubmissionResult, plan_from_trade
from .trade_builder import BuiltTrade
from .utils import format_log_timestamp, to_human

logger = logging.getLogger(__name__)


class CycleStatus:
    INVALID_RANGE = "invalid_range"
    NO_QUOTES = "no_quotes"
    NO_OPPORTUNITY = "no_opportunity"
    SIMULATED = "simulated"
    BUILD_FAILED = "build_failed"
    SUBMIT_FAILED = "submit_failed"
    SUBMITTED = "submitted"
    ERROR = "error"


@dataclass(frozen=True)
class CycleRequest:
    """One unit of work for the pipeline, from either trigger."""

    trigger: TriggerKind
    mother_mint: str
    symbol: str
    decimals: int
    targets: Tuple[str, ...]
    amount_range: Tuple[float, float]
    steps: int
    min_profit: float
    mode: QuoteMode = QuoteMode.REGULAR
    extended_amount_range: Optional[Tuple[float, float]] = None
    event: Optional[BigTradeEvent] = None

    @classmethod
    def from_event(cls, event: BigTradeEvent) -> "CycleRequest":
        return cls(
            trigger=TriggerKind.BIG_TRADE,
            mother_mint=event.mother_mint,
            symbol=event.symbol,
            decimals=event.decimals,
            targets=event.target_tokens,
            amount_range=event.amount_range,
            steps=event.steps,
            min_profit=event.min_profit,
            mode=QuoteMode.SIZE_AWARE,
            extended_amount_range=event.extended_amount_range,
            event=event,
        )


@dataclass(frozen=True)
class CycleOutcome:
    request: CycleRequest
    status: str
    fanout: Optional[FanoutResult] = None
    report: Optional[EvaluationReport] = None
    trade: Optional[BuiltTrade] = None
    submission: Optional[SubmissionResult] = None
    error: Optional[str] = None


class ArbitragePipeline:
    """
    Orchestrates one cycle per trigger.

    Args:
        quoter: Round-trip quoting collaborator
        fee_model: Process-wide fee configuration
        price_feed: Object exposing ``current()`` (SOL/USD)
        live_trading: Build and submit the best opportunity when True
        trade_builder: :class:`TradeBuilder`, required when live
        router: :class:`SubmissionRouter`, required when live
        channels: Active relay channels (may be empty)
        signers: Keypairs signing every transaction
        retry_count: Extra attempts per channel
        audit: Optional :class:`AuditSinks`
        metrics: Optional :class:`ArbitrageMetrics`
    """

    def __init__(
        self,
        quoter,
        fee_model: FeeModel,
        price_feed,
        live_trading: bool = False,
        trade_builder=None,
        router=None,
        channels: Sequence = (),
        signers: Sequence = (),
        retry_count: int = 1,
        audit=None,
        metrics=None,
    ):
        if live_trading and (trade_builder is None or router is None):
            raise ValueError("live_trading requires a trade builder and a submission router")

        self.quoter = quoter
        self.fee_model = fee_model
        self.price_feed = price_feed
        self.live_trading = live_trading
        self.trade_builder = trade_builder
        self.router = router
        self.channels = tuple(channels)
        self.signers = tuple(signers)
        self.retry_count = retry_count
        self.audit = audit
        self.metrics = metrics

    @property
    def _simulation_audit(self):
        return self.audit.simulation if self.audit is not None else None

    @property
    def _big_trade_audit(self):
        return self.audit.big_trades if self.audit is not None else None

    def _finish(self, outcome: CycleOutcome) -> CycleOutcome:
        if self.metrics is not None:
            self.metrics.record_cycle(outcome.request.trigger.value, outcome.status)
        return outcome

    async def run_event(self, event: BigTradeEvent) -> CycleOutcome:
        return await self.run_cycle(CycleRequest.from_event(event))

    async def run_cycle(self, request: CycleRequest) -> CycleOutcome:
        """Run one cycle; never raises for a trigger-local failure."""
        try:
            return self._finish(await self._run(request))
        except RoundTripArbitrageError as e:
            logger.error(f"{request.trigger.value} cycle for {request.symbol} failed: {e}")
            return self._finish(CycleOutcome(request=request, status=CycleStatus.ERROR, error=str(e)))
        except Exception as e:
            logger.error(f"Unexpected error in {request.symbol} cycle: {e}", exc_info=True)
            return self._finish(CycleOutcome(request=request, status=CycleStatus.ERROR, error=str(e)))

    async def _fan_out(self, request: CycleRequest, amount_range: Tuple[float, float]) -> FanoutResult:
        amounts = sample_amounts(amount_range[0], amount_range[1], request.steps, request.decimals)
        return await fan_out_quotes(
            self.quoter,
            request.mother_mint,
            request.symbol,
            request.targets,
            amounts,
            request.mode,
            audit=self._simulation_audit,
            metrics=self.metrics,
        )

    async def _run(self, request: CycleRequest) -> CycleOutcome:
        try:
            fanout = await self._fan_out(request, request.amount_range)
            if (
                request.trigger is TriggerKind.BIG_TRADE
                and self.live_trading
                and request.extended_amount_range is not None
            ):
                extended = await self._fan_out(request, request.extended_amount_range)
                fanout = merge_fanouts(fanout, extended)
        except InvalidRange as e:
            logger.warning(f"Skipping {request.symbol} cycle: {e}")
            return CycleOutcome(request=request, status=CycleStatus.INVALID_RANGE, error=str(e))

        if not fanout.results:
            return CycleOutcome(request=request, status=CycleStatus.NO_QUOTES, fanout=fanout)

        report = evaluate_opportunities(
            fanout.results,
            self.fee_model,
            is_native(request.mother_mint, request.symbol),
            request.decimals,
            request.symbol,
            self.price_feed.current(),
            request.min_profit,
            audit=self._simulation_audit,
        )

        best = report.best
        if best is None:
            return CycleOutcome(
                request=request, status=CycleStatus.NO_OPPORTUNITY, fanout=fanout, report=report
            )

        if self.metrics is not None:
            self.metrics.record_opportunity(
                request.symbol, request.trigger.value, to_human(best.net_profit, request.decimals)
            )
        self._log_opportunity(request, report)

        if not self.live_trading:
            return CycleOutcome(request=request, status=CycleStatus.SIMULATED, fanout=fanout, report=report)

        try:
            trade = await self.trade_builder.build(best, report.min_profit_raw)
        except BuildError as e:
            logger.error(f"Build failed for {request.symbol} opportunity: {e}")
            return CycleOutcome(
                request=request,
                status=CycleStatus.BUILD_FAILED,
                fanout=fanout,
                report=report,
                error=str(e),
            )

        plan = plan_from_trade(trade, self.signers, self.fee_model, self.channels, self.retry_count)
        service = "low-latency" if self.channels else "RPC"
        logger.info(f"Submitting {request.symbol} trade {trade.tx_id} via {service}")

        try:
            submission = await self.router.submit(plan)
        except SubmissionError as e:
            logger.error(f"Submission failed for {trade.tx_id}: {e}")
            self._audit_submission(request, trade, service, None, e)
            return CycleOutcome(
                request=request,
                status=CycleStatus.SUBMIT_FAILED,
                fanout=fanout,
                report=report,
                trade=trade,
                error=str(e),
            )

        self._audit_submission(request, trade, submission.channels, submission.signature, None)
        logger.info(f"✅ Submitted {trade.tx_id} via {submission.channels}")
        return CycleOutcome(
            request=request,
            status=CycleStatus.SUBMITTED,
            fanout=fanout,
            report=report,
            trade=trade,
            submission=submission,
        )

    def _log_opportunity(self, request: CycleRequest, report: EvaluationReport) -> None:
        best = report.best
        decimals = request.decimals
        symbol = request.symbol
        logger.info(
            f"Opportunity {symbol}: in={to_human(best.in_amount, decimals):.6f} "
            f"out={to_human(best.out_amount, decimals):.6f} "
            f"net={to_human(best.net_profit, decimals):.6f} "
            f"tx_cost={to_human(best.total_cost, decimals):.6f} {symbol}"
        )

        event = request.event
        if request.trigger is TriggerKind.BIG_TRADE and event is not None and self._big_trade_audit is not None:
            self._big_trade_audit.emit(
                f"[{format_log_timestamp()}] [BIG_TRADE] Profitable opportunity found: "
                f"token={symbol} ({request.mother_mint}), tx_id={event.tx_id}, "
                f"delta={event.mother_delta:.6f}, programs=[{', '.join(event.programs)}], "
                f"unique_tokens=[{', '.join(event.target_tokens)}], "
                f"in_amount={best.in_amount}, out_amount={best.out_amount}, "
                f"gross_profit={best.gross_profit}, net_profit={best.net_profit}"
            )

    def _audit_submission(
        self,
        request: CycleRequest,
        trade: BuiltTrade,
        service: str,
        signature: Optional[str],
        error: Optional[SubmissionError],
    ) -> None:
        audit = self._big_trade_audit
        if audit is None:
            return

        best = trade.opportunity
        original_tx_id = request.event.tx_id if request.event is not None else ""
        common = (
            f"token={request.symbol}, in_amount={best.in_amount}, out_amount={best.out_amount}, "
            f"gross_profit={best.gross_profit}, net_profit={best.net_profit}, "
            f"tx_cost={best.total_cost}, service={service}, original_tx_id={original_tx_id}"
        )
        if error is None:
            audit.emit(
                f"[{format_log_timestamp()}] [SUBMIT_SUCCESS] {common}, "
                f"submitted_tx_signature={signature}"
            )
        else:
            failures = "; ".join(f"{o.channel}: {o.error}" for o in error.outcomes)
            audit.emit(
                f"[{format_log_timestamp()}] [SUBMIT_FAILED] {common}, "
                f"submitted_tx_signature={trade.tx_id}, errors=[{failures}]"
            )
