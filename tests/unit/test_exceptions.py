"""Tests for the exceptions module."""

import pytest

from roundtrip_arbitrage.exceptions import (
    BuildError,
    ConfigurationError,
    IngestionError,
    InvalidRange,
    NetworkError,
    QuoteFetchError,
    RoundTripArbitrageError,
    SubmissionError,
    ValidationError,
)


def test_base_exception():
    error = RoundTripArbitrageError("Test error")
    assert str(error) == "Test error"
    assert error.details == {}

    error_with_details = RoundTripArbitrageError("Test error", {"key": "value"})
    assert error_with_details.details == {"key": "value"}


@pytest.mark.parametrize(
    "cls",
    [ConfigurationError, ValidationError, BuildError, InvalidRange, QuoteFetchError, SubmissionError, IngestionError, NetworkError],
)
def test_every_error_is_an_engine_error(cls):
    assert issubclass(cls, RoundTripArbitrageError)


def test_invalid_range():
    error = InvalidRange("bad range", amount_from=2.0, amount_to=1.0, steps=3)
    assert error.amount_from == 2.0
    assert error.amount_to == 1.0
    assert error.steps == 3


def test_quote_fetch_error():
    error = QuoteFetchError("no route", input_mint="A", output_mint="B", amount=10, details={"status": 400})
    assert error.input_mint == "A"
    assert error.output_mint == "B"
    assert error.amount == 10
    assert error.details["status"] == 400


def test_submission_error_carries_outcomes():
    error = SubmissionError("all failed", outcomes=("jito", "rpc"))
    assert error.outcomes == ["jito", "rpc"]
    assert SubmissionError("none").outcomes == []


def test_network_error():
    error = NetworkError("Connection failed", endpoint="https://node.example", status_code=503)
    assert error.endpoint == "https://node.example"
    assert error.status_code == 503


def test_ingestion_error():
    error = IngestionError("Stream closed", endpoint="wss://stream.example")
    assert error.endpoint == "wss://stream.example"
