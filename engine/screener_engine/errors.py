"""
Exception hierarchy for the screening engine.

Data errors are recoverable per symbol during ingestion but fatal to a
backtest when cache validation fails. Configuration errors are raised when
models or strategies are saved/loaded, never mid-run. Cancellation is an
outcome, not an exception.
"""

from typing import Any


class ScreenerEngineError(Exception):
    """Base class for all engine errors."""

    code = "engine_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Data Errors
# =============================================================================


class DataError(ScreenerEngineError):
    """Problem with historical bar data."""

    code = "data_error"


class SymbolDataError(DataError):
    """A single symbol file is missing or unreadable."""

    code = "symbol_data_error"

    def __init__(self, symbol: str, message: str) -> None:
        super().__init__(message, {"symbol": symbol})
        self.symbol = symbol


class InvalidDateRangeError(DataError):
    """End date precedes start date."""

    code = "invalid_date_range"


class CacheValidationError(DataError):
    """Master cache lacks the history needed for a backtest."""

    code = "cache_validation_failed"


class InsufficientDataError(DataError):
    """Not enough bars to compute a value."""

    code = "insufficient_data"

    def __init__(self, symbol: str, required: int, available: int) -> None:
        super().__init__(
            f"{symbol}: {available} bars available, {required} required",
            {"symbol": symbol, "required": required, "available": available},
        )
        self.symbol = symbol
        self.required = required
        self.available = available


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ScreenerEngineError):
    """Invalid screener, model, indicator or strategy configuration."""

    code = "configuration_error"


class UnknownScreenerError(ConfigurationError):
    code = "unknown_screener"


class UnknownIndicatorError(ConfigurationError):
    code = "unknown_indicator"


class ModelValidationError(ConfigurationError):
    code = "invalid_model"


class StrategyValidationError(ConfigurationError):
    code = "invalid_strategy"


# =============================================================================
# Runtime Errors
# =============================================================================


class PersistenceError(ScreenerEngineError):
    """Failed to read or write a persisted document."""

    code = "persistence_error"


class RunnerBusyError(ScreenerEngineError):
    """A backtest is already running on this runner."""

    code = "runner_busy"
