"""Tests for geometric amount sampling."""

import pytest

from roundtrip_arbitrage.exceptions import InvalidRange
from roundtrip_arbitrage.sampler import sample_amounts


def test_four_steps_six_decimals():
    """1.0 -> 10.0 over four steps is one decade split in thirds."""
    amounts = sample_amounts(1.0, 10.0, 4, 6)
    expected = [1_000_000, 2_154_434, 4_641_588, 10_000_000]

    assert len(amounts) == 4
    for actual, wanted in zip(amounts, expected):
        assert abs(actual - wanted) <= 1


def test_single_step_returns_lower_bound():
    assert sample_amounts(2.5, 100.0, 1, 9) == [2_500_000_000]


def test_grid_is_non_decreasing_with_constant_ratio():
    amounts = sample_amounts(0.5, 400.0, 8, 9)

    assert amounts == sorted(amounts)
    ratios = [b / a for a, b in zip(amounts, amounts[1:])]
    for ratio in ratios:
        assert ratio == pytest.approx(ratios[0], rel=1e-6)


def test_equal_bounds_repeat_the_amount():
    amounts = sample_amounts(3.0, 3.0, 5, 6)
    assert amounts == [3_000_000] * 5


def test_identical_inputs_give_identical_output():
    assert sample_amounts(1.0, 50.0, 10, 6) == sample_amounts(1.0, 50.0, 10, 6)


@pytest.mark.parametrize(
    "amount_from,amount_to,steps",
    [
        (0.0, 10.0, 4),
        (-1.0, 10.0, 4),
        (10.0, 1.0, 4),
        (1.0, 10.0, 0),
    ],
)
def test_unusable_ranges_raise(amount_from, amount_to, steps):
    with pytest.raises(InvalidRange) as exc_info:
        sample_amounts(amount_from, amount_to, steps, 6)

    assert exc_info.value.steps == steps
    assert exc_info.value.amount_from == amount_from
