"""
Round-Trip Arbitrage Engine.

Looks for profitable A -> B -> A round trips through a DEX aggregator, either on
a fixed polling schedule or in reaction to large on-chain flows, and submits
the best one through low-latency relay channels anchored to a durable nonce.
"""

from roundtrip_arbitrage.version import __version__

PROJECT_NAME = "roundtrip-arbitrage"
VERSION = __version__

from roundtrip_arbitrage.big_trade import BigTradeEvent, BigTradeTrigger
from roundtrip_arbitrage.config_loader import RuntimeConfig, WatchToken, load_runtime_config
from roundtrip_arbitrage.cost_model import FeeModel, compute_tx_cost
from roundtrip_arbitrage.evaluator import Opportunity, evaluate_opportunities
from roundtrip_arbitrage.exceptions import RoundTripArbitrageError
from roundtrip_arbitrage.pipeline import ArbitragePipeline, CycleOutcome, CycleRequest
from roundtrip_arbitrage.quote_fanout import QuoteResult, fan_out_quotes
from roundtrip_arbitrage.sampler import sample_amounts
from roundtrip_arbitrage.scheduler import PollingScheduler
from roundtrip_arbitrage.submission import SubmissionResult, SubmissionRouter

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "ArbitragePipeline",
    "BigTradeEvent",
    "BigTradeTrigger",
    "CycleOutcome",
    "CycleRequest",
    "FeeModel",
    "Opportunity",
    "PollingScheduler",
    "QuoteResult",
    "RoundTripArbitrageError",
    "RuntimeConfig",
    "SubmissionResult",
    "SubmissionRouter",
    "WatchToken",
    "compute_tx_cost",
    "evaluate_opportunities",
    "fan_out_quotes",
    "load_runtime_config",
    "sample_amounts",
]
