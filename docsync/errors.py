"""Exception hierarchy for synchronization."""

from enum import Enum


class ErrorCategory(str, Enum):
    """Category of a failed source call, derived per exception."""

    FILTER_ERROR = "filter_error"
    NETWORK_ERROR = "network_error"
    RATE_LIMIT_ERROR = "rate_limit_error"
    SERVER_ERROR = "server_error"
    AUTH_ERROR = "auth_error"
    SOURCE_NOT_FOUND_ERROR = "source_not_found_error"
    UNKNOWN_ERROR = "unknown_error"


class SyncError(Exception):
    """Base class for synchronization errors."""


class RecordValidationError(SyncError):
    """A source record is malformed. Counted per record, never fatal."""


class FetchError(SyncError):
    """A call to the source failed."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR):
        super().__init__(message)
        self.category = category


class PersistenceError(SyncError):
    """The content store rejected a write or delete."""


class TimeoutStop(SyncError):
    """Control signal: the pass reached its time budget. Not a failure."""


class FatalSyncError(SyncError):
    """Unexpected exception with no defined category."""


class SyncInProgressError(SyncError):
    """Another pass holds the lease for the same source/store pair."""
