"""
Websocket ingestion of ledger transactions touching the watched mints.

Every received message is handed to the big-trade handler as its own task so
a slow pipeline never stalls the stream. Disconnects and stream errors are
retried after a fixed delay, forever.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, Sequence, Set
from urllib.parse import urlencode

import aiohttp

from .exceptions import ConfigurationError, IngestionError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict], Awaitable[object]]


def build_subscription(watched_mints: Sequence[str], request_id: int = 1) -> dict:
    """``transactionSubscribe`` request for non-vote, successful transactions."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "transactionSubscribe",
        "params": [
            {
                "vote": False,
                "failed": False,
                "accountInclude": list(watched_mints),
            },
            {
                "commitment": "processed",
                "encoding": "jsonParsed",
                "transactionDetails": "full",
                "showRewards": False,
                "maxSupportedTransactionVersion": 0,
            },
        ],
    }


class StreamIngestor:
    """
    Long-running transaction stream consumer.

    Args:
        url: Websocket endpoint
        token: Stream auth token, sent as the ``api-key`` query parameter
        watched_mints: Mints whose transactions are subscribed to
        handler: Coroutine function called with each decoded message
        reconnect_delay: Seconds to wait before reconnecting
        metrics: Optional :class:`ArbitrageMetrics`

    Raises:
        ConfigurationError: If the endpoint or token is missing
    """

    def __init__(
        self,
        url: Optional[str],
        token: Optional[str],
        watched_mints: Sequence[str],
        handler: MessageHandler,
        reconnect_delay: float = 5.0,
        metrics=None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not url:
            raise ConfigurationError("Stream endpoint is not configured (connection.geyser_url)")
        if not token:
            raise ConfigurationError("Stream auth token is not configured (connection.geyser_token)")

        self.url = url
        self.token = token
        self.watched_mints = tuple(watched_mints)
        self.handler = handler
        self.reconnect_delay = reconnect_delay
        self.metrics = metrics
        self.connections = 0
        self._session = session
        self._owns_session = session is None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def stream_url(self) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'api-key': self.token})}"

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def dispatch(self, message: dict) -> asyncio.Task:
        """Run the handler for one message as an independent task."""
        task = asyncio.create_task(self._handle(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _handle(self, message: dict) -> None:
        try:
            await self.handler(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Stream message handler failed: {e}", exc_info=True)

    async def consume(self) -> None:
        """
        One connection: subscribe and dispatch until the stream ends.

        Raises:
            IngestionError: On connection failure, stream error or closure
        """
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        try:
            async with self._session.ws_connect(self.stream_url, heartbeat=30) as ws:
                self.connections += 1
                await ws.send_str(json.dumps(build_subscription(self.watched_mints)))
                logger.info(f"Subscribed to transactions for {len(self.watched_mints)} mints")

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            data = json.loads(msg.data)
                        except json.JSONDecodeError:
                            logger.debug("Dropping undecodable stream message")
                            continue
                        self.dispatch(data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise IngestionError(f"Stream error: {ws.exception()}", endpoint=self.url)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise IngestionError(f"Stream connection failed: {e}", endpoint=self.url)

        raise IngestionError("Stream closed by server", endpoint=self.url)

    async def run(self) -> None:
        """Consume forever, reconnecting after ``reconnect_delay`` on any stream failure."""
        while True:
            try:
                await self.consume()
            except IngestionError as e:
                logger.warning(f"{e}; reconnecting in {self.reconnect_delay:.1f}s")
            except Exception as e:
                logger.error(
                    f"Unexpected stream failure: {e}; reconnecting in {self.reconnect_delay:.1f}s",
                    exc_info=True,
                )
            if self.metrics is not None:
                self.metrics.record_reconnect()
            await asyncio.sleep(self.reconnect_delay)
