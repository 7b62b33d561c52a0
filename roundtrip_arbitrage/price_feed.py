"""
SOL/USD reference price with background refresh.

A single task refreshes the price and swaps in a new immutable snapshot;
readers never wait on the network and fall back to the configured constant
until the first successful fetch.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"


@dataclass(frozen=True)
class PriceSnapshot:
    price: float
    fetched_at: float


class PriceFeed:
    """
    Refreshed SOL/USD price with a static fallback.

    Args:
        fallback_price: Value returned by :meth:`current` before the first fetch
        url: CoinGecko-style simple price endpoint
        refresh_seconds: Interval between refreshes
        timeout_seconds: HTTP timeout per fetch
    """

    def __init__(
        self,
        fallback_price: float,
        url: str = DEFAULT_PRICE_URL,
        refresh_seconds: float = 30.0,
        timeout_seconds: float = 5.0,
    ):
        self.fallback_price = fallback_price
        self.url = url
        self.refresh_seconds = refresh_seconds
        self.timeout_seconds = timeout_seconds
        self._snapshot: Optional[PriceSnapshot] = None

    @property
    def snapshot(self) -> Optional[PriceSnapshot]:
        return self._snapshot

    def current(self) -> float:
        """Last fetched price, or the fallback constant."""
        snapshot = self._snapshot
        if snapshot is None:
            return self.fallback_price
        return snapshot.price

    def _fetch_price(self) -> float:
        response = requests.get(self.url, timeout=self.timeout_seconds)
        response.raise_for_status()
        data = response.json()
        price = float(data["solana"]["usd"])
        if price <= 0:
            raise ValueError(f"Non-positive SOL price: {price}")
        return price

    async def refresh(self) -> Optional[float]:
        """Fetch once; failures are logged and leave the previous snapshot in place."""
        try:
            price = await asyncio.to_thread(self._fetch_price)
        except (requests.RequestException, KeyError, TypeError, ValueError) as e:
            logger.warning(f"SOL price refresh failed, keeping {self.current():.4f}: {e}")
            return None

        self._snapshot = PriceSnapshot(price=price, fetched_at=time.time())
        logger.debug(f"SOL price updated: ${price:.4f}")
        return price

    async def run(self) -> None:
        """Refresh forever; cancel the task to stop."""
        logger.info(
            f"Starting SOL price feed (every {self.refresh_seconds:.0f}s, fallback ${self.fallback_price:.2f})"
        )
        while True:
            await self.refresh()
            await asyncio.sleep(self.refresh_seconds)
