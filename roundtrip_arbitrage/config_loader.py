"""
Configuration loading and normalization for the round-trip arbitrage engine.

Provides a centralized way to load, validate, and normalize the settings file
with proper defaults and read-only access. Secrets left empty in YAML are
filled from the environment (``.env`` is loaded first).
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError
from solders.keypair import Keypair

from .config_schema import SettingsConfig, validate_settings
from .cost_model import FeeModel
from .exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "settings.yaml"

# (section, field) -> environment variable consulted when the YAML value is empty
ENV_FALLBACKS: Dict[Tuple[str, str], str] = {
    ("connection", "geyser_token"): "GEYSER_AUTH_TOKEN",
    ("connection", "geyser_url"): "GEYSER_ENDPOINT",
    ("dex_api", "api_key"): "JUPITER_API_KEY",
    ("dex_api", "jito_api_key"): "JITO_AUTH_KEY",
    ("dex_api", "helius_api_key"): "HELIUS_AUTH_KEY",
    ("dex_api", "astralane_key"): "ASTRALANE_KEY",
    ("dex_api", "nozomi_api_key"): "NOZOMI_API_KEY",
    ("dex_api", "zero_slot_key"): "ZERO_SLOT_KEY",
    ("dex_api", "blockrazor_key"): "BLOCKRAZOR_KEY",
    ("dex_api", "bloxroute_key"): "BLOXROUTE_KEY",
    ("dex_api", "nextblock_key"): "NEXTBLOCK_KEY",
}


@dataclass(frozen=True)
class NodeConfig:
    """Normalized node, wallet and stream configuration."""

    keypair_path: str
    rpc_url: str
    submit_url: str
    nonce_account: str
    geyser_url: Optional[str] = None
    geyser_token: Optional[str] = None
    submission_services: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SwapApiConfig:
    """Normalized aggregator and relay credential configuration."""

    base_url: str
    api_key: str = ""
    timeout_seconds: float = 8.0
    slippage_bps: int = 50
    max_accounts: int = 64
    credentials: Dict[str, str] = field(default_factory=dict)
    relay_endpoints: Dict[str, str] = field(default_factory=dict)
    tip_accounts: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StrategyConfig:
    """Normalized trigger and runtime configuration."""

    live_trading: bool = False
    watch_flows: bool = True
    poll_quotes: bool = False
    poll_interval_ms: int = 1000
    target_token: str = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    retry_count: int = 1
    include_fallback: bool = False
    nonce_refresh_ms: int = 400
    price_refresh_seconds: float = 30.0
    price_url: str = "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"
    reconnect_delay_seconds: float = 5.0


@dataclass(frozen=True)
class WatchToken:
    """Per-mother policy shared by the polling watchlist and the big-trade trigger."""

    mint: str
    amount_range: Tuple[float, float]
    steps: int
    min_profit: float
    flow_threshold: float = 0.0
    extended_amount_range: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class AuditConfig:
    enabled: bool = True
    simulation_log: str = "logs.txt"
    big_trade_log: str = "big_trades.txt"


@dataclass(frozen=True)
class MetricsConfig:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass(frozen=True)
class RuntimeConfig:
    """Immutable runtime configuration object."""

    node: NodeConfig
    swap_api: SwapApiConfig
    fee_model: FeeModel
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    base_tokens: Tuple[WatchToken, ...] = ()
    audit: AuditConfig = field(default_factory=AuditConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    def watch_token(self, mint: str) -> Optional[WatchToken]:
        for token in self.base_tokens:
            if token.mint == mint:
                return token
        return None


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}")

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    return config_dict


def apply_env_fallbacks(settings: SettingsConfig) -> SettingsConfig:
    """Fill empty secret fields from environment variables."""
    updates: Dict[str, Dict[str, str]] = {}
    for (section_name, field_name), env_name in ENV_FALLBACKS.items():
        section = getattr(settings, section_name)
        if getattr(section, field_name):
            continue
        value = os.getenv(env_name)
        if value:
            updates.setdefault(section_name, {})[field_name] = value

    if not updates:
        return settings

    sections = {
        name: getattr(settings, name).model_copy(update=values)
        for name, values in updates.items()
    }
    return settings.model_copy(update=sections)


def _range(values) -> Optional[Tuple[float, float]]:
    if values is None:
        return None
    return float(min(values)), float(max(values))


def normalize_settings(settings: SettingsConfig) -> RuntimeConfig:
    """Convert a validated settings model into frozen runtime dataclasses."""
    connection = settings.connection
    dex_api = settings.dex_api
    tx_cost = settings.tx_cost
    strategy = settings.strategy

    node = NodeConfig(
        keypair_path=connection.keypair_path,
        rpc_url=connection.rpc_url,
        submit_url=connection.submit_url or connection.rpc_url,
        nonce_account=connection.nonce_account,
        geyser_url=connection.geyser_url or None,
        geyser_token=connection.geyser_token or None,
        submission_services=tuple(connection.submission_services),
    )

    swap_api = SwapApiConfig(
        base_url=dex_api.base_url.rstrip("/"),
        api_key=dex_api.api_key,
        timeout_seconds=dex_api.timeout_seconds,
        slippage_bps=dex_api.slippage_bps,
        max_accounts=dex_api.max_accounts,
        credentials={
            "jito": dex_api.jito_api_key,
            "liljit": dex_api.liljit_endpoint,
            "helius": dex_api.helius_api_key,
            "astralane": dex_api.astralane_key,
            "zeroslot": dex_api.zero_slot_key,
            "nozomi": dex_api.nozomi_api_key,
            "blockrazor": dex_api.blockrazor_key,
            "bloxroute": dex_api.bloxroute_key,
            "nextblock": dex_api.nextblock_key,
        },
        relay_endpoints={k.lower(): v for k, v in dex_api.relay_endpoints.items()},
        tip_accounts={k.lower(): v for k, v in dex_api.tip_accounts.items()},
    )

    fee_model = FeeModel(
        compute_units=tx_cost.compute_units,
        priority_fee=tx_cost.priority_fee,
        fixed_fee=tx_cost.tip_sol,
        profit_share=tx_cost.profit_share,
        reference_price=tx_cost.sol_usd,
    )

    base_tokens = tuple(
        WatchToken(
            mint=entry.mint,
            amount_range=_range(entry.amount_range),
            steps=entry.steps,
            min_profit=entry.min_profit,
            flow_threshold=entry.flow_threshold,
            extended_amount_range=_range(entry.extended_amount_range),
        )
        for entry in settings.base_tokens
    )

    return RuntimeConfig(
        node=node,
        swap_api=swap_api,
        fee_model=fee_model,
        strategy=StrategyConfig(**strategy.model_dump()),
        base_tokens=base_tokens,
        audit=AuditConfig(**settings.audit.model_dump()),
        metrics=MetricsConfig(**settings.metrics.model_dump()),
    )


def load_runtime_config(
    config_path: Union[str, Path] = DEFAULT_CONFIG_PATH,
    env_file: Optional[Union[str, Path]] = None,
) -> RuntimeConfig:
    """
    Load and normalize the settings file.

    Args:
        config_path: Path to the YAML configuration file
        env_file: Optional ``.env`` path; the default search is used when None

    Returns:
        Normalized and frozen runtime configuration

    Raises:
        ConfigurationError: If the configuration cannot be loaded
        ValidationError: If the configuration fails schema validation
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    config_dict = load_yaml_config(config_path)

    try:
        settings = validate_settings(config_dict)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Configuration validation failed: {e}",
            details={"errors": e.errors(include_url=False)},
        )

    settings = apply_env_fallbacks(settings)
    runtime = normalize_settings(settings)

    logger.debug(
        f"Loaded config from {config_path}: {len(runtime.base_tokens)} base tokens, "
        f"live_trading={runtime.strategy.live_trading}"
    )
    return runtime


def load_keypair(path: Union[str, Path]) -> Keypair:
    """
    Load the signer keypair from a JSON byte-array file.

    Raises:
        ConfigurationError: If the file is missing or not a 64-byte array
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigurationError(f"Keypair file not found: {path}")

    try:
        with open(path, "r") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read keypair {path}: {e}")

    if not isinstance(raw, list) or len(raw) != 64:
        raise ConfigurationError(f"Keypair file must contain a 64-byte JSON array: {path}")

    try:
        return Keypair.from_bytes(bytes(raw))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid keypair bytes in {path}: {e}")
