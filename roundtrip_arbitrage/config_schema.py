"""
Configuration schema validation using Pydantic
"""

from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class _Section(BaseModel):
    """Common settings: accept field names as well as aliases, ignore unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ConnectionSection(_Section):
    """Node, wallet and streaming endpoints"""

    keypair_path: str = Field(
        validation_alias=AliasChoices("signer_keypair_path", "keypair_path", "wallet_path"),
        description="Path to the signer keypair (JSON byte array)",
    )
    rpc_url: str = Field(
        validation_alias=AliasChoices("rpc_endpoint", "rpc_url"),
        description="Standard JSON-RPC node used for reads",
    )
    submit_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("submit_endpoint", "submit_url"),
        description="Fallback node used for sendTransaction (defaults to rpc_url)",
    )
    nonce_account: str = Field(
        validation_alias=AliasChoices("nonce_account", "nonce_address", "nonce_pubkey"),
        description="Durable nonce account owned by the signer",
    )
    geyser_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "geyser_endpoint", "geyser_url", "stream_endpoint", "yellowstone_grpc_endpoint"
        ),
    )
    geyser_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "geyser_auth_token", "geyser_token", "stream_auth_token", "yellowstone_grpc_token"
        ),
    )
    submission_services: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("submission_services", "relayer_services"),
    )

    @field_validator("submission_services", mode="before")
    @classmethod
    def validate_services(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v


class DexApiSection(_Section):
    """Aggregator endpoint and relay credentials"""

    base_url: str = Field(
        default="https://lite-api.jup.ag/swap/v1",
        validation_alias=AliasChoices("endpoint", "base_url", "jupiter_endpoint"),
    )
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("auth_token", "api_key", "jupiter_api_key"),
    )
    timeout_seconds: float = Field(default=8.0, gt=0, le=120)
    slippage_bps: int = Field(default=50, ge=0, le=10000)
    max_accounts: int = Field(default=64, ge=1, le=256)

    jito_api_key: str = ""
    helius_api_key: str = Field(
        default="", validation_alias=AliasChoices("helius_api_key", "helius_key")
    )
    nozomi_api_key: str = ""
    zero_slot_key: str = ""
    liljit_endpoint: str = ""
    astralane_key: str = ""
    blockrazor_key: str = ""
    bloxroute_key: str = ""
    nextblock_key: str = ""

    relay_endpoints: Dict[str, str] = Field(default_factory=dict)
    tip_accounts: Dict[str, str] = Field(default_factory=dict)


class TxCostSection(_Section):
    """Compute budget and relay fee"""

    compute_units: int = Field(
        validation_alias=AliasChoices("compute_unit_limit", "compute_units", "cu"),
        ge=1,
        le=1_400_000,
    )
    priority_fee: int = Field(
        validation_alias=AliasChoices(
            "priority_fee_lamports", "priority_lamports", "priority_fee_micro_lamport"
        ),
        ge=0,
    )
    tip_sol: float = Field(
        validation_alias=AliasChoices("relay_tip_sol", "tip_sol", "third_party_fee"),
        ge=0,
    )
    # Values outside (0, 1] are accepted here and fall back to the fixed fee.
    profit_share: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices(
            "third_party_fee_profit_pct", "third_party_fee_profit_percent", "profit_share"
        ),
    )
    sol_usd: float = Field(
        default=150.0,
        validation_alias=AliasChoices("sol_price_usd", "sol_usd", "sol_price_usdc"),
        gt=0,
    )


class StrategySection(_Section):
    """Trigger modes and runtime knobs"""

    live_trading: bool = False
    watch_flows: bool = Field(
        default=True, validation_alias=AliasChoices("watch_flows", "big_trades")
    )
    poll_quotes: bool = Field(
        default=False, validation_alias=AliasChoices("poll_quotes", "continuous_polling")
    )
    poll_interval_ms: int = Field(
        default=1000,
        ge=10,
        validation_alias=AliasChoices("poll_interval_ms", "polling_interval_ms"),
    )
    target_token: str = Field(
        default="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        description="Default intermediate asset for non-native polling entries",
    )
    retry_count: int = Field(default=1, ge=0, le=20)
    include_fallback: bool = Field(
        default=False, description="Also send through the fallback node when relays are configured"
    )
    nonce_refresh_ms: int = Field(default=400, ge=50)
    price_refresh_seconds: float = Field(default=30.0, gt=0)
    price_url: str = "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"
    reconnect_delay_seconds: float = Field(default=5.0, ge=0)


class BaseTokenEntry(_Section):
    """One watched mother asset"""

    mint: str
    amount_range: List[float] = Field(min_length=2, max_length=2)
    steps: int = Field(ge=1, le=200)
    min_profit: float = Field(ge=0)
    flow_threshold: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("flow_threshold", "big_trade_threshold", "threshold"),
    )
    extended_amount_range: Optional[List[float]] = None

    @field_validator("mint")
    @classmethod
    def validate_mint(cls, v):
        if not v or len(v) < 32:
            raise ValueError(f"Invalid mint address: {v!r}")
        return v

    @field_validator("amount_range", "extended_amount_range")
    @classmethod
    def validate_range(cls, v):
        if v is None:
            return v
        if len(v) != 2:
            raise ValueError(f"amount range must have exactly two bounds, got {v}")
        low, high = v
        if low <= 0:
            raise ValueError(f"amount_range lower bound must be positive, got {low}")
        if high < low:
            raise ValueError(f"amount_range upper bound {high} is below lower bound {low}")
        return v


class AuditSection(_Section):
    enabled: bool = True
    simulation_log: str = "logs.txt"
    big_trade_log: str = "big_trades.txt"


class MetricsSection(_Section):
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)


class SettingsConfig(_Section):
    """Top-level settings file"""

    connection: ConnectionSection
    dex_api: DexApiSection = Field(default_factory=DexApiSection)
    tx_cost: TxCostSection
    strategy: StrategySection = Field(default_factory=StrategySection)
    base_tokens: List[BaseTokenEntry] = Field(default_factory=list)
    audit: AuditSection = Field(default_factory=AuditSection)
    metrics: MetricsSection = Field(default_factory=MetricsSection)

    @model_validator(mode="after")
    def validate_watchlist(self):
        mints = [entry.mint for entry in self.base_tokens]
        if len(mints) != len(set(mints)):
            raise ValueError("base_tokens contains duplicate mints")
        if (self.strategy.watch_flows or self.strategy.poll_quotes) and not mints:
            raise ValueError("base_tokens must list at least one mint when a trigger mode is enabled")
        return self


def validate_settings(config_dict: Dict) -> SettingsConfig:
    """Validate a raw settings dictionary."""
    return SettingsConfig.model_validate(config_dict)
