"""
Prometheus Metrics for the Round-Trip Arbitrage Engine

Exposes quote fan-out, opportunity and submission statistics for monitoring.
"""

import logging
import threading
from typing import Optional

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


class ArbitrageMetrics:
    """
    Trading metrics collection and exposure.

    Every instance owns its registry so tests and multiple engines in one
    process never collide on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._initialize_metrics()

        self._app = None
        self._runner = None
        self._site = None

        self._lock = threading.RLock()

    def _initialize_metrics(self):
        # === QUOTE METRICS ===
        self.quotes_requested_total = Counter(
            "roundtrip_arbitrage_quotes_requested_total",
            "Total round-trip quotes requested",
            ["mother", "mode"],
            registry=self.registry,
        )

        self.quotes_failed_total = Counter(
            "roundtrip_arbitrage_quotes_failed_total",
            "Total round-trip quotes that failed and were dropped",
            ["mother", "mode"],
            registry=self.registry,
        )

        self.fanout_duration_seconds = Histogram(
            "roundtrip_arbitrage_fanout_duration_seconds",
            "Wall-clock duration of a quote fan-out batch",
            ["mode"],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
            registry=self.registry,
        )

        # === CYCLE METRICS ===
        self.cycles_total = Counter(
            "roundtrip_arbitrage_cycles_total",
            "Pipeline cycles by trigger and result",
            ["trigger", "result"],
            registry=self.registry,
        )

        self.opportunities_found_total = Counter(
            "roundtrip_arbitrage_opportunities_found_total",
            "Opportunities that cleared the minimum profit",
            ["mother", "trigger"],
            registry=self.registry,
        )

        self.best_net_profit = Gauge(
            "roundtrip_arbitrage_best_net_profit",
            "Net profit of the last selected opportunity (human units)",
            ["mother"],
            registry=self.registry,
        )

        # === SUBMISSION METRICS ===
        self.submissions_total = Counter(
            "roundtrip_arbitrage_submissions_total",
            "Submission attempts per channel and result",
            ["channel", "result"],
            registry=self.registry,
        )

        # === INGESTION METRICS ===
        self.stream_messages_total = Counter(
            "roundtrip_arbitrage_stream_messages_total",
            "Streamed ledger messages received",
            ["kind"],
            registry=self.registry,
        )

        self.stream_reconnects_total = Counter(
            "roundtrip_arbitrage_stream_reconnects_total",
            "Ledger stream reconnects",
            registry=self.registry,
        )

        self.big_trades_total = Counter(
            "roundtrip_arbitrage_big_trades_total",
            "Big-trade events extracted from the stream",
            ["mother"],
            registry=self.registry,
        )

    # === RECORDING ===

    def record_fanout(
        self,
        mother: str,
        mode: str,
        requested: int,
        failed: int,
        duration_seconds: float,
    ):
        with self._lock:
            self.quotes_requested_total.labels(mother=mother, mode=mode).inc(requested)
            if failed:
                self.quotes_failed_total.labels(mother=mother, mode=mode).inc(failed)
            self.fanout_duration_seconds.labels(mode=mode).observe(duration_seconds)

    def record_cycle(self, trigger: str, result: str):
        with self._lock:
            self.cycles_total.labels(trigger=trigger, result=result).inc()

    def record_opportunity(self, mother: str, trigger: str, net_profit: float):
        with self._lock:
            self.opportunities_found_total.labels(mother=mother, trigger=trigger).inc()
            self.best_net_profit.labels(mother=mother).set(net_profit)

    def record_submission(self, channel: str, success: bool):
        with self._lock:
            result = "success" if success else "failure"
            self.submissions_total.labels(channel=channel, result=result).inc()

    def record_stream_message(self, kind: str):
        with self._lock:
            self.stream_messages_total.labels(kind=kind).inc()

    def record_reconnect(self):
        with self._lock:
            self.stream_reconnects_total.inc()

    def record_big_trade(self, mother: str):
        with self._lock:
            self.big_trades_total.labels(mother=mother).inc()

    # === SERVER MANAGEMENT ===

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ) -> bool:
        """Start Prometheus metrics HTTP server"""
        try:
            self._app = web.Application()
            self._app.router.add_get(path, self._metrics_handler)
            self._app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(self._app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(
                f"📊 Prometheus metrics server started on http://{host}:{port}{path}"
            )
            return True

        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self):
        """Stop the metrics server"""
        try:
            if self._site:
                await self._site.stop()
            if self._runner:
                await self._runner.cleanup()
            logger.info("📊 Metrics server stopped")
        except Exception as e:
            logger.error(f"Error stopping metrics server: {e}")

    async def _metrics_handler(self, request):
        try:
            metrics_output = generate_latest(self.registry)
            # aiohttp rejects a content_type that carries a charset
            content_type = CONTENT_TYPE_LATEST.split(";")[0]
            return web.Response(
                text=metrics_output.decode("utf-8"), content_type=content_type
            )
        except Exception as e:
            logger.error(f"Error generating metrics: {e}")
            return web.Response(text="Error generating metrics", status=500)

    async def _health_handler(self, request):
        return web.Response(
            text='{"status": "healthy", "service": "roundtrip_arbitrage_metrics"}',
            content_type="application/json",
        )
