"""
Exception hierarchy for the round-trip arbitrage engine.

Provides specific exception types for each failure category so the pipeline can
decide locally whether a failure aborts a single cycle, a single opportunity, or
the process at startup.
"""

from typing import Optional, Dict, Any, List


class RoundTripArbitrageError(Exception):
    """Base exception for all round-trip arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(RoundTripArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class ValidationError(RoundTripArbitrageError):
    """Raised when validation of data or configuration fails."""

    pass


class InvalidRange(RoundTripArbitrageError):
    """Raised when amount sampling bounds are unusable."""

    def __init__(
        self,
        message: str,
        amount_from: Optional[float] = None,
        amount_to: Optional[float] = None,
        steps: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.amount_from = amount_from
        self.amount_to = amount_to
        self.steps = steps


class QuoteFetchError(RoundTripArbitrageError):
    """Raised when a single round-trip quote cannot be obtained."""

    def __init__(
        self,
        message: str,
        input_mint: Optional[str] = None,
        output_mint: Optional[str] = None,
        amount: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.input_mint = input_mint
        self.output_mint = output_mint
        self.amount = amount


class BuildError(RoundTripArbitrageError):
    """Raised when a transaction cannot be assembled for an opportunity."""

    pass


class SubmissionError(RoundTripArbitrageError):
    """Raised when every submission channel failed for an opportunity."""

    def __init__(
        self,
        message: str,
        outcomes: Optional[List[Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.outcomes = list(outcomes or [])


class IngestionError(RoundTripArbitrageError):
    """Raised when the ledger stream disconnects or errors."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint


class NetworkError(RoundTripArbitrageError):
    """Raised when network or connectivity issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code
