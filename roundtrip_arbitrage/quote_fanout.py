"""
Concurrent round-trip quote fan-out.

Every (amount, target) pair of a cycle is quoted in parallel with
``asyncio.gather``; a failing pair never takes the batch down with it, it is
dropped and counted.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .constants import QuoteMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuoteResult:
    """One successful two-leg round-trip quote."""

    in_amount: int
    out_amount: int
    leg1: Dict[str, Any]
    leg2: Dict[str, Any]
    latency_us: int
    target_token: str

    @property
    def gross_profit(self) -> int:
        return self.out_amount - self.in_amount


@dataclass(frozen=True)
class FanoutResult:
    """Successful quotes of one batch plus the batch's failure count and duration."""

    results: Tuple[QuoteResult, ...] = field(default_factory=tuple)
    failures: int = 0
    elapsed_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results) + self.failures


async def _quote_pair(
    quoter,
    mother_mint: str,
    target: str,
    amount: int,
    mode: QuoteMode,
) -> QuoteResult:
    start = time.perf_counter()
    in_amount, out_amount, leg1, leg2 = await quoter.quote_round_trip(
        mother_mint, target, amount, mode
    )
    latency_us = int((time.perf_counter() - start) * 1_000_000)
    return QuoteResult(
        in_amount=in_amount,
        out_amount=out_amount,
        leg1=leg1,
        leg2=leg2,
        latency_us=latency_us,
        target_token=target,
    )


async def fan_out_quotes(
    quoter,
    mother_mint: str,
    symbol: str,
    targets: Sequence[str],
    amounts: Sequence[int],
    mode: QuoteMode = QuoteMode.REGULAR,
    audit=None,
    metrics=None,
) -> FanoutResult:
    """
    Quote every (amount, target) pair concurrently.

    Args:
        quoter: Object exposing ``async quote_round_trip(input_mint, target, amount, mode)``
            returning ``(in_amount, out_amount, leg1, leg2)``
        mother_mint: Asset the round trip starts and ends in
        symbol: Mother symbol, used for logging only
        targets: Intermediate assets
        amounts: Raw input amounts (the sampled grid)
        mode: Regular (polling) or size-aware (big-trade) quoting
        audit: Optional simulation audit sink with an ``emit(line)`` method
        metrics: Optional :class:`ArbitrageMetrics`

    Returns:
        FanoutResult with the successful quotes in no particular order
    """
    pairs: List[Tuple[int, str]] = [(amount, target) for amount in amounts for target in targets]

    start = time.perf_counter()
    outcomes = await asyncio.gather(
        *(_quote_pair(quoter, mother_mint, target, amount, mode) for amount, target in pairs),
        return_exceptions=True,
    )
    elapsed = time.perf_counter() - start
    elapsed_ms = elapsed * 1000.0

    results: List[QuoteResult] = []
    failures = 0
    for (amount, target), outcome in zip(pairs, outcomes):
        if isinstance(outcome, BaseException):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            failures += 1
            logger.debug(f"Quote dropped: {symbol} -> {target} amount={amount}: {outcome}")
        else:
            results.append(outcome)

    if audit is not None:
        try:
            audit.emit(
                f"[SIMULATE] ⏱ quote fan-out took {int(elapsed_ms)} ms "
                f"({len(amounts)} steps × {len(targets)} targets)"
            )
            if failures > 0:
                audit.emit(f"[SIMULATE] ⚠️ {failures} quotes failed out of {len(pairs)} total")
        except Exception as e:
            logger.debug(f"Audit write skipped: {e}")

    if metrics is not None:
        metrics.record_fanout(symbol, mode.value, len(pairs), failures, elapsed)

    logger.debug(
        f"Fan-out {symbol}: {len(results)}/{len(pairs)} quotes in {elapsed_ms:.0f} ms (mode={mode.value})"
    )

    return FanoutResult(results=tuple(results), failures=failures, elapsed_ms=elapsed_ms)


def merge_fanouts(first: FanoutResult, second: Optional[FanoutResult]) -> FanoutResult:
    """Concatenate two batches; the first batch's results keep evaluation priority."""
    if second is None:
        return first
    return FanoutResult(
        results=first.results + second.results,
        failures=first.failures + second.failures,
        elapsed_ms=first.elapsed_ms + second.elapsed_ms,
    )
