"""
Application wiring for the round-trip arbitrage engine.

Builds every collaborator from a :class:`RuntimeConfig`, starts the
background refresh tasks and runs the enabled triggers until cancelled.
"""

import asyncio
import logging
from typing import List, Optional

from solders.keypair import Keypair

from .audit_log import AuditSinks
from .big_trade import BigTradeTrigger
from .config_loader import RuntimeConfig
from .cost_model import fixed_cost_in_reference
from .ingestion import StreamIngestor
from .jupiter import JupiterClient
from .metrics import ArbitrageMetrics
from .nonce import NonceCache
from .pipeline import ArbitragePipeline
from .price_feed import PriceFeed
from .relays import RpcFallbackChannel, build_relay_channels_from_config
from .rpc import SolanaRpcClient
from .scheduler import PollingScheduler
from .submission import SubmissionRouter
from .trade_builder import TradeBuilder

logger = logging.getLogger(__name__)


class ArbitrageApp:
    """
    Owns the long-lived clients, caches and trigger loops.

    Args:
        config: Normalized runtime configuration
        keypair: Signer keypair (also the nonce authority)
        audit_dir: Directory holding the audit files (current directory when None)
    """

    def __init__(self, config: RuntimeConfig, keypair: Keypair, audit_dir: Optional[str] = None):
        self.config = config
        self.keypair = keypair
        strategy = config.strategy

        self.metrics = ArbitrageMetrics() if config.metrics.enabled else None
        self.audit = AuditSinks.from_config(config.audit, audit_dir)

        self.rpc = SolanaRpcClient(config.node.rpc_url, timeout_seconds=config.swap_api.timeout_seconds)
        self.jupiter = JupiterClient(
            config.swap_api.base_url,
            api_key=config.swap_api.api_key,
            slippage_bps=config.swap_api.slippage_bps,
            max_accounts=config.swap_api.max_accounts,
            timeout_seconds=config.swap_api.timeout_seconds,
            user_public_key=str(keypair.pubkey()),
        )
        self.nonce_cache = NonceCache(self.rpc, config.node.nonce_account, strategy.nonce_refresh_ms)
        self.price_feed = PriceFeed(
            config.fee_model.reference_price,
            url=strategy.price_url,
            refresh_seconds=strategy.price_refresh_seconds,
        )

        self.channels = build_relay_channels_from_config(config)
        self.router = SubmissionRouter(
            RpcFallbackChannel(endpoint=config.node.submit_url),
            nonce_cache=self.nonce_cache,
            include_fallback=strategy.include_fallback,
            metrics=self.metrics,
        )
        self.trade_builder = TradeBuilder(
            self.jupiter,
            self.rpc,
            self.nonce_cache,
            keypair,
            config.node.nonce_account,
        )

        self.pipeline = ArbitragePipeline(
            self.jupiter,
            config.fee_model,
            self.price_feed,
            live_trading=strategy.live_trading,
            trade_builder=self.trade_builder,
            router=self.router,
            channels=self.channels,
            signers=[keypair],
            retry_count=strategy.retry_count,
            audit=self.audit,
            metrics=self.metrics,
        )

        self.scheduler: Optional[PollingScheduler] = None
        self.ingestor: Optional[StreamIngestor] = None
        self._background: List[asyncio.Task] = []

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.append(task)
        return task

    def log_mode_configuration(self) -> None:
        strategy = self.config.strategy
        fee_model = self.config.fee_model
        logger.info(
            f"Mode: live_trading={strategy.live_trading} watch_flows={strategy.watch_flows} "
            f"poll_quotes={strategy.poll_quotes} poll_interval={strategy.poll_interval_ms}ms"
        )
        logger.info(
            f"Fees: cu={fee_model.compute_units} priority={fee_model.priority_fee} "
            f"relay_fee_mode={fee_model.relay_fee_mode.value} "
            f"fixed_cost=${fixed_cost_in_reference(fee_model, self.price_feed.current()):.6f}"
        )
        services = ", ".join(c.name for c in self.channels) or "rpc only"
        logger.info(f"Submission channels: {services}")
        logger.info(f"Wallet: {self.keypair.pubkey()} | base tokens: {len(self.config.base_tokens)}")

    async def measure_timing(self) -> None:
        """Estimate aggregator latency; failure only warns."""
        try:
            timing = await self.jupiter.measure_quote_timing()
        except Exception as e:
            logger.warning(f"Quote timing measurement failed: {e}")
            return
        logger.info(
            f"Quote timing: quote={timing.quote_ms:.0f} ms swap_build={timing.swap_build_ms:.0f} ms "
            f"total={timing.total_ms:.0f} ms"
        )

    async def start(self) -> None:
        """Connect clients and start nonce, price and metrics background work."""
        await self.rpc.connect()
        await self.jupiter.connect()
        await self.router.connect()

        self._spawn(self.nonce_cache.run(), "nonce-refresh")
        self._spawn(self.price_feed.run(), "price-refresh")

        if self.metrics is not None:
            await self.metrics.start_server(self.config.metrics.port, self.config.metrics.host)

    async def run(self) -> None:
        """Run the enabled triggers; returns immediately when both are disabled."""
        strategy = self.config.strategy
        if not strategy.watch_flows and not strategy.poll_quotes:
            logger.warning("Both modes disabled: enable strategy.watch_flows or strategy.poll_quotes")
            return

        if strategy.poll_quotes:
            self.scheduler = PollingScheduler(
                self.pipeline,
                self.config.base_tokens,
                strategy.target_token,
                strategy.poll_interval_ms,
            )
            polling = self._spawn(self.scheduler.run(), "polling")
        else:
            polling = None

        if strategy.watch_flows:
            trigger = BigTradeTrigger(
                self.pipeline,
                {t.mint: t for t in self.config.base_tokens},
                audit=self.audit.big_trades,
                metrics=self.metrics,
            )
            self.ingestor = StreamIngestor(
                self.config.node.geyser_url,
                self.config.node.geyser_token,
                [t.mint for t in self.config.base_tokens],
                trigger.handle,
                reconnect_delay=strategy.reconnect_delay_seconds,
                metrics=self.metrics,
            )
            await self.ingestor.run()
        else:
            await polling

    async def shutdown(self) -> None:
        """Cancel background tasks, close sessions and flush audit writes."""
        if self.scheduler is not None:
            self.scheduler.cancel()
        for task in self._background:
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()

        if self.ingestor is not None:
            await self.ingestor.close()
        await self.router.close()
        await self.jupiter.close()
        await self.rpc.close()
        if self.metrics is not None:
            await self.metrics.stop_server()
        await self.audit.drain()
        logger.info("Shutdown complete")
