"""
Fixed-period polling of the base-token watchlist.

The first tick runs immediately; ticks that were missed while the loop was
busy are skipped rather than replayed. Each watchlist entry is dispatched as
its own task, and an entry whose previous cycle is still running is skipped
for that tick.
"""

import asyncio
import logging
from typing import Dict, Optional, Sequence, Set

from .constants import NATIVE_STABLE_TARGETS, QuoteMode, TriggerKind, is_native, resolve_token_meta
from .pipeline import CycleRequest
from .utils import shorten

logger = logging.getLogger(__name__)


def request_for_watch_token(token, default_target: str) -> CycleRequest:
    """
    Polling cycle request for one watchlist entry.

    The native asset is round-tripped against the stable pair; every other
    mother uses ``default_target``.
    """
    meta = resolve_token_meta(token.mint)
    if is_native(token.mint, meta.symbol):
        targets = NATIVE_STABLE_TARGETS
    else:
        targets = (default_target,)

    return CycleRequest(
        trigger=TriggerKind.POLL,
        mother_mint=token.mint,
        symbol=meta.symbol,
        decimals=meta.decimals,
        targets=tuple(targets),
        amount_range=token.amount_range,
        steps=token.steps,
        min_profit=token.min_profit,
        mode=QuoteMode.REGULAR,
    )


class PollingScheduler:
    """
    Runs one pipeline cycle per watchlist entry every ``interval_ms``.

    Args:
        pipeline: :class:`ArbitragePipeline`
        watchlist: Sequence of :class:`WatchToken`
        default_target: Target mint for non-native mothers
        interval_ms: Tick period in milliseconds
    """

    def __init__(
        self,
        pipeline,
        watchlist: Sequence,
        default_target: str,
        interval_ms: int = 1000,
    ):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")

        self.pipeline = pipeline
        self.watchlist = tuple(watchlist)
        self.default_target = default_target
        self.interval = interval_ms / 1000.0
        self.ticks = 0
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    def tick(self) -> int:
        """Dispatch one cycle per idle entry; returns the number dispatched."""
        self.ticks += 1
        dispatched = 0
        for token in self.watchlist:
            running = self._in_flight.get(token.mint)
            if running is not None and not running.done():
                logger.debug(f"Previous cycle for {shorten(token.mint)} still running, skipping tick")
                continue

            request = request_for_watch_token(token, self.default_target)
            task = asyncio.create_task(self.pipeline.run_cycle(request))
            self._in_flight[token.mint] = task
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            dispatched += 1
        return dispatched

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Tick forever (or ``max_ticks`` times)."""
        loop = asyncio.get_running_loop()
        logger.info(
            f"Polling {len(self.watchlist)} base tokens every {self.interval * 1000:.0f} ms"
        )

        next_tick = loop.time()
        while True:
            self.tick()
            if max_ticks is not None and self.ticks >= max_ticks:
                return

            next_tick += self.interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // self.interval) + 1
                logger.debug(f"Skipping {missed} missed polling ticks")
                next_tick += missed * self.interval
            await asyncio.sleep(next_tick - now)

    async def wait_idle(self) -> None:
        """Wait for every dispatched cycle to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
