"""Custom exceptions for the trade history sync.

Every error carries a ``transient`` classification. SyncEngine retries
transient errors with backoff and surfaces permanent ones immediately.
All exceptions live here to avoid circular imports between modules.
"""


class SyncError(Exception):
    """Base exception for all sync errors."""

    transient: bool = False


class PairNotFound(SyncError):
    """Raised when a symbol matches neither a canonical pair id nor an altname."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Pair not found: {symbol!r}")
        self.symbol = symbol


class TransportError(SyncError):
    """Raised on network failures, timeouts, or upstream throttling."""

    transient = True

    def __init__(self, message: str, rate_limited: bool = False) -> None:
        super().__init__(message)
        self.rate_limited = rate_limited


class MalformedRecord(SyncError):
    """Raised when an upstream response does not have the expected shape."""


class UpstreamError(SyncError):
    """Raised when the upstream reports an error in its ``error`` array."""


class PersistenceError(SyncError):
    """Raised on storage write or schema failures.

    Connectivity problems are transient; constraint and schema
    problems are permanent.
    """

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
