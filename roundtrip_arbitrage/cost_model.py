"""
Single source of truth for transaction cost calculations.

Every opportunity's cost is computed here, for both the polling and the
big-trade paths. Cost is the base network fee plus a relay fee that is either
fixed or a share of gross profit.

Conversion policy:
- SOL-denominated math is done in float, like the chain's own fee estimates
- Results returned in a token's raw units are truncated toward zero, never
  rounded, so they stay comparable with on-chain integer amounts
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .constants import LAMPORTS_PER_SOL, TRANSACTION_FEE_LAMPORTS


class RelayFeeMode(Enum):
    """How the relay (third-party) fee is derived."""

    FIXED = "fixed"
    PROFIT_SHARE = "profit_share"


@dataclass(frozen=True)
class FeeModel:
    """
    Process-wide fee configuration, loaded once at startup.

    Attributes:
        compute_units: Compute unit limit attached to every transaction
        priority_fee: Compute unit price in micro-lamports
        fixed_fee: Relay fee in SOL used in FIXED mode (and as the fallback)
        profit_share: Fraction of gross profit paid as relay fee, or None
        reference_price: Fallback SOL/USD price when the live feed is empty
        base_network_fee_lamports: Per-signature network fee
    """

    compute_units: int
    priority_fee: int
    fixed_fee: float
    profit_share: Optional[float] = None
    reference_price: float = 150.0
    base_network_fee_lamports: int = TRANSACTION_FEE_LAMPORTS

    @property
    def relay_fee_mode(self) -> RelayFeeMode:
        """PROFIT_SHARE only when the fraction is within (0, 1]."""
        if self.profit_share is not None and 0.0 < self.profit_share <= 1.0:
            return RelayFeeMode.PROFIT_SHARE
        return RelayFeeMode.FIXED

    @property
    def base_network_fee_sol(self) -> float:
        return self.base_network_fee_lamports / LAMPORTS_PER_SOL


def compute_tx_cost(gross_profit_sol: float, fee_model: FeeModel) -> Tuple[float, float]:
    """
    Total transaction cost for a given gross profit, in SOL.

    Args:
        gross_profit_sol: Gross profit of the round trip in SOL (may be negative)
        fee_model: Fee configuration

    Returns:
        Tuple of (total_cost_sol, relay_fee_sol)

    Example:
        >>> fm = FeeModel(compute_units=0, priority_fee=0, fixed_fee=0.001, profit_share=0.5)
        >>> compute_tx_cost(2.0, fm)
        (1.000005, 1.0)
    """
    if fee_model.relay_fee_mode is RelayFeeMode.PROFIT_SHARE:
        relay_fee_sol = max(0.0, gross_profit_sol * fee_model.profit_share)
    else:
        relay_fee_sol = fee_model.fixed_fee

    total_cost_sol = fee_model.base_network_fee_sol + relay_fee_sol
    return total_cost_sol, relay_fee_sol


def compute_tx_cost_for_trade(
    fee_model: FeeModel,
    gross_profit_raw: int,
    is_native_asset: bool,
    decimals: int,
    price: float,
) -> Tuple[int, float]:
    """
    Transaction cost for a trade, expressed in the traded token's raw units.

    Gross profit is converted to SOL (dividing by ``price`` when the token is
    not SOL), run through :func:`compute_tx_cost`, and the total converted back.

    Args:
        fee_model: Fee configuration
        gross_profit_raw: out_amount - in_amount, raw token units (signed)
        is_native_asset: True when the traded token is SOL
        decimals: Token decimals
        price: SOL price in units of the traded token (USD for stables)

    Returns:
        Tuple of (total_cost_raw, relay_fee_sol); total_cost_raw is truncated
        toward zero
    """
    scale = 10.0 ** decimals
    if is_native_asset:
        gross_profit_sol = gross_profit_raw / scale
    else:
        gross_profit_sol = (gross_profit_raw / scale) / price

    total_cost_sol, relay_fee_sol = compute_tx_cost(gross_profit_sol, fee_model)

    if is_native_asset:
        total_cost_raw = int(total_cost_sol * scale)
    else:
        total_cost_raw = int(total_cost_sol * price * scale)

    return total_cost_raw, relay_fee_sol


def fixed_cost_in_reference(fee_model: FeeModel, price: float) -> float:
    """
    Zero-profit transaction cost in the reference (USD) asset.

    Only meaningful in FIXED mode; in PROFIT_SHARE mode the relay share of a
    zero profit is zero, so this is the base network fee alone.
    """
    total_cost_sol, _ = compute_tx_cost(0.0, fee_model)
    return total_cost_sol * price
