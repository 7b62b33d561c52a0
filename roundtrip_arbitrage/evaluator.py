"""
Opportunity evaluation: cost, net profit, minimum-profit filter and selection.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .constants import token_symbol
from .cost_model import FeeModel, compute_tx_cost_for_trade
from .quote_fanout import QuoteResult
from .utils import to_human, to_raw

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Opportunity:
    """A quote result with its cost breakdown attached."""

    quote: QuoteResult
    gross_profit: int
    total_cost: int
    net_profit: int
    relay_fee_sol: float
    meets_threshold: bool

    @property
    def in_amount(self) -> int:
        return self.quote.in_amount

    @property
    def out_amount(self) -> int:
        return self.quote.out_amount


@dataclass(frozen=True)
class EvaluationReport:
    """All evaluated opportunities and the single best actionable one, if any."""

    evaluated: Tuple[Opportunity, ...]
    kept: Tuple[Opportunity, ...]
    best: Optional[Opportunity]
    min_profit_raw: int


def min_profit_to_raw(min_profit: float, decimals: int) -> int:
    return to_raw(min_profit, decimals)


def evaluate_quote(
    quote: QuoteResult,
    fee_model: FeeModel,
    is_native_asset: bool,
    decimals: int,
    price: float,
    min_profit_raw: int,
) -> Opportunity:
    """Attach gross/cost/net to one quote; kept only when net strictly exceeds the minimum."""
    gross_profit = quote.out_amount - quote.in_amount
    total_cost, relay_fee_sol = compute_tx_cost_for_trade(
        fee_model, gross_profit, is_native_asset, decimals, price
    )
    net_profit = gross_profit - total_cost
    return Opportunity(
        quote=quote,
        gross_profit=gross_profit,
        total_cost=total_cost,
        net_profit=net_profit,
        relay_fee_sol=relay_fee_sol,
        meets_threshold=net_profit - min_profit_raw > 0,
    )


def select_best(opportunities: Iterable[Opportunity]) -> Optional[Opportunity]:
    """
    Highest net profit among the given opportunities.

    Equal nets resolve to the earliest one in iteration order.
    """
    best: Optional[Opportunity] = None
    for opportunity in opportunities:
        if best is None or opportunity.net_profit > best.net_profit:
            best = opportunity
    return best


def format_audit_line(
    opportunity: Opportunity,
    symbol: str,
    decimals: int,
    min_profit_raw: int,
) -> str:
    target_symbol = token_symbol(opportunity.quote.target_token)
    status = "✅ Profitable" if opportunity.meets_threshold else "❌ Unprofitable"
    return (
        f"[SIMULATE] {status}: {symbol} -> {target_symbol} -> {symbol}: "
        f"in={to_human(opportunity.in_amount, decimals):.6f} {symbol}, "
        f"out={to_human(opportunity.out_amount, decimals):.6f} {symbol}, "
        f"gross_profit={to_human(opportunity.gross_profit, decimals):.6f} {symbol}, "
        f"net_profit={to_human(opportunity.net_profit, decimals):.6f} {symbol} "
        f"(tx_cost={to_human(opportunity.total_cost, decimals):.6f} {symbol}, "
        f"min_required={to_human(min_profit_raw, decimals):.6f} {symbol})"
    )


def evaluate_opportunities(
    results: Iterable[QuoteResult],
    fee_model: FeeModel,
    is_native_asset: bool,
    decimals: int,
    symbol: str,
    price: float,
    min_profit: float,
    audit=None,
) -> EvaluationReport:
    """
    Evaluate every quote result and pick the most profitable actionable one.

    Args:
        results: Successful quote results, in evaluation order
        fee_model: Process-wide fee configuration
        is_native_asset: True when the mother asset is SOL
        decimals: Mother asset decimals
        symbol: Mother asset symbol (audit lines only)
        price: Current SOL price in the mother's reference unit
        min_profit: Minimum net profit in human units
        audit: Optional audit sink; every evaluated result is written to it

    Returns:
        EvaluationReport; ``best`` is None when nothing clears the minimum
    """
    min_profit_raw = min_profit_to_raw(min_profit, decimals)

    evaluated: List[Opportunity] = []
    for quote in results:
        opportunity = evaluate_quote(
            quote, fee_model, is_native_asset, decimals, price, min_profit_raw
        )
        evaluated.append(opportunity)
        if audit is not None:
            try:
                audit.emit(format_audit_line(opportunity, symbol, decimals, min_profit_raw))
            except Exception as e:
                logger.debug(f"Audit write skipped: {e}")

    kept = tuple(o for o in evaluated if o.meets_threshold)
    best = select_best(kept)

    if best is not None:
        logger.info(
            f"Best {symbol} opportunity: target={token_symbol(best.quote.target_token)} "
            f"in={best.in_amount} net={best.net_profit} ({len(kept)}/{len(evaluated)} kept)"
        )
    else:
        logger.debug(f"No {symbol} opportunity above min_profit={min_profit} ({len(evaluated)} evaluated)")

    return EvaluationReport(
        evaluated=tuple(evaluated),
        kept=kept,
        best=best,
        min_profit_raw=min_profit_raw,
    )
