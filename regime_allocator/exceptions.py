"""Error types raised by the regime detection and backtesting pipeline."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class BacktestError(Exception):
    """Base backtest error with a machine-readable reason code."""

    message: str
    reason: str = "backtest_error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message


class InvalidInputError(BacktestError, ValueError):
    """Raised when inputs are rejected before any computation begins."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, reason="invalid_input")


class InsufficientDataError(BacktestError):
    """Raised when fewer usable price points exist than a backtest needs."""

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            message=(
                f"Insufficient historical data (need at least {required} "
                f"observations, got {available})"
            ),
            reason="insufficient_data",
        )
        self.available = available
        self.required = required

    def __reduce__(self):
        return (self.__class__, (self.available, self.required))


class MathDomainError(BacktestError, ArithmeticError):
    """Raised when a metric is mathematically undefined for its input."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, reason="math_domain")


class DataFetchError(BacktestError):
    """Raised when the price provider cannot supply usable data."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, reason="data_fetch_failed")
