"""
Geometric sampling of candidate input amounts.

Round-trip profit is rarely monotonic in size: small amounts lose to the fixed
network fee, large amounts lose to price impact. A geometric grid spends the
quote budget evenly across orders of magnitude.
"""

from typing import List

from .exceptions import InvalidRange
from .utils import decimal_scale


def sample_amounts(amount_from: float, amount_to: float, steps: int, decimals: int) -> List[int]:
    """
    Build a geometric grid of raw-unit input amounts.

    ``amount_i = amount_from * r**i`` with ``r = (amount_to / amount_from) ** (1 / (steps - 1))``,
    each value converted to raw units by truncation.

    Args:
        amount_from: Smallest amount, human units (must be > 0)
        amount_to: Largest amount, human units (must be >= amount_from)
        steps: Number of samples (must be >= 1)
        decimals: Token decimals used for the raw conversion

    Returns:
        List of ``steps`` raw amounts, non-decreasing

    Raises:
        InvalidRange: If the bounds or step count are unusable
    """
    if steps <= 0:
        raise InvalidRange(
            f"steps must be >= 1, got {steps}",
            amount_from=amount_from,
            amount_to=amount_to,
            steps=steps,
        )
    if amount_from <= 0:
        raise InvalidRange(
            f"amount_from must be positive, got {amount_from}",
            amount_from=amount_from,
            amount_to=amount_to,
            steps=steps,
        )
    if amount_to < amount_from:
        raise InvalidRange(
            f"amount_to ({amount_to}) is below amount_from ({amount_from})",
            amount_from=amount_from,
            amount_to=amount_to,
            steps=steps,
        )

    scale = decimal_scale(decimals)

    if steps == 1:
        return [int(amount_from * scale)]

    ratio = (amount_to / amount_from) ** (1.0 / (steps - 1))
    return [int(amount_from * ratio ** i * scale) for i in range(steps)]
