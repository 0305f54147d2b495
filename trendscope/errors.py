"""Trendscope error taxonomy.

All errors subclass ``ValueError`` so callers that already guard engine
calls with ``except ValueError`` keep working.
"""


class TrendscopeError(Exception):
    """Base class for every error raised by the engine."""


class InsufficientDataError(TrendscopeError, ValueError):
    """The candle history is shorter than an operation's minimum."""

    def __init__(self, message: str, required: int = 0, available: int = 0) -> None:
        super().__init__(message)
        self.required = required
        self.available = available


class InvalidInputError(TrendscopeError, ValueError):
    """Candles or parameters are malformed."""


class ConfigurationError(TrendscopeError, ValueError):
    """A threshold, weight or window table is inconsistent."""


def require_length(available: int, required: int, what: str) -> None:
    """Raise ``InsufficientDataError`` when *available* < *required*."""
    if available < required:
        raise InsufficientDataError(
            f"Need at least {required} candles for {what}, got {available}",
            required=required,
            available=available,
        )
