"""
Append-only, best-effort text audit sinks.

Two independent files are kept: simulation diagnostics and the big-trade /
submission audit. Writes never raise into the caller and never block the
event loop: when a loop is running, the physical write is scheduled on the
default executor and serialized under a lock.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional, Set, Union

logger = logging.getLogger(__name__)


class AuditLog:
    """One append-only audit file."""

    def __init__(self, path: Union[str, Path], enabled: bool = True):
        self.path = Path(path)
        self.enabled = enabled
        self._lock = threading.Lock()
        self._pending: Set[asyncio.Future] = set()

    def _write(self, line: str) -> None:
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
                    f.flush()
        except OSError as e:
            logger.debug(f"Audit write to {self.path} failed: {e}")

    def emit(self, line: str) -> None:
        """Append one line (or block); returns immediately."""
        if not self.enabled:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(line)
            return

        future = loop.run_in_executor(None, self._write, line)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for writes scheduled so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class AuditSinks:
    """The two audit streams of the engine."""

    def __init__(self, simulation: AuditLog, big_trades: AuditLog):
        self.simulation = simulation
        self.big_trades = big_trades

    @classmethod
    def from_config(cls, audit_config, base_dir: Optional[Union[str, Path]] = None) -> "AuditSinks":
        base = Path(base_dir) if base_dir is not None else Path(".")
        return cls(
            simulation=AuditLog(base / audit_config.simulation_log, audit_config.enabled),
            big_trades=AuditLog(base / audit_config.big_trade_log, audit_config.enabled),
        )

    async def drain(self) -> None:
        await self.simulation.drain()
        await self.big_trades.drain()
