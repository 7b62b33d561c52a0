"""
Unit tests for roundtrip_arbitrage.utils module.

Tests amount conversion and formatting helpers.
"""

import time
from datetime import datetime, timezone

import pytest

from roundtrip_arbitrage.utils import (
    decimal_scale,
    elapsed_ms,
    format_log_timestamp,
    shorten,
    to_human,
    to_raw,
    utc_now,
)


class TestAmountUtils:
    """Test raw/human amount conversion."""

    def test_decimal_scale(self):
        assert decimal_scale(0) == 1.0
        assert decimal_scale(6) == 1_000_000.0
        assert decimal_scale(9) == 1_000_000_000.0

    def test_to_raw_truncates(self):
        assert to_raw(1.5, 6) == 1_500_000
        assert to_raw(0.0000019, 6) == 1
        assert to_raw(0.0000009, 6) == 0

    def test_to_human(self):
        assert to_human(2_500_000_000, 9) == pytest.approx(2.5)
        assert to_human(0, 6) == 0.0


class TestTimestampUtils:
    """Test timestamp utilities."""

    def test_format_log_timestamp_has_milliseconds(self):
        moment = datetime(2024, 3, 5, 7, 8, 9, 123456, tzinfo=timezone.utc)
        assert format_log_timestamp(moment) == "2024-03-05 07:08:09.123"

    def test_format_log_timestamp_defaults_to_now(self):
        stamp = format_log_timestamp()
        assert stamp.startswith(str(utc_now().year))
        assert len(stamp) == len("2024-03-05 07:08:09.123")

    def test_elapsed_ms_is_non_negative(self):
        start = time.perf_counter()
        assert elapsed_ms(start) >= 0.0


def test_shorten_abbreviates_long_values():
    assert shorten("So11111111111111111111111111111111111111112") == "So11..1112"
    assert shorten("short") == "short"
    assert shorten("abcdefghijkl", keep=2) == "ab..kl"
