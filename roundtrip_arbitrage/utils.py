"""
Common utilities and helper functions for the round-trip arbitrage engine.

This module provides centralized helpers for raw/human amount conversion,
timestamp formatting and log-friendly abbreviations.
"""

import time
from datetime import datetime, timezone
from typing import Optional


# Amount utilities
def decimal_scale(decimals: int) -> float:
    """Floating point scale factor for a token's decimals (10^decimals)."""
    return 10.0 ** decimals


def to_raw(amount: float, decimals: int) -> int:
    """
    Convert a human-scale amount to raw integer units.

    The result is truncated toward zero, matching how on-chain programs
    floor fractional units.
    """
    return int(amount * decimal_scale(decimals))


def to_human(raw_amount: int, decimals: int) -> float:
    """Convert raw integer units to a human-scale float."""
    return raw_amount / decimal_scale(decimals)


# Timestamp utilities
def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(tz=timezone.utc)


def format_log_timestamp(moment: Optional[datetime] = None) -> str:
    """Format a timestamp as ``YYYY-mm-dd HH:MM:SS.mmm`` for audit lines."""
    moment = moment or utc_now()
    return moment.strftime("%Y-%m-%d %H:%M:%S.") + f"{moment.microsecond // 1000:03d}"


def elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - start) * 1000.0


def shorten(value: str, keep: int = 4) -> str:
    """Abbreviate a long base58 string as ``abcd..wxyz``."""
    if len(value) <= keep * 2 + 2:
        return value
    return f"{value[:keep]}..{value[-keep:]}"
