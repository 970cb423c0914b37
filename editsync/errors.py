"""
editsync - Sync Exceptions

Every failure the sync core can observe is a SyncError subclass carrying a
FailureKind, so callers classify outcomes without inspecting HTTP details.
"""

from typing import Optional

from .models import FailureKind


class SyncError(Exception):
    """Base exception for sync operations."""
    kind: FailureKind = FailureKind.TRANSIENT


class OfflineError(SyncError):
    """No network connectivity; the write was not attempted."""
    kind = FailureKind.OFFLINE


class ConflictError(SyncError):
    """The base version stamp is stale on the remote."""
    kind = FailureKind.CONFLICT


# =============================================================================
# Transient (retried up to the ceiling)
# =============================================================================

class TransientError(SyncError):
    """Failure that may succeed on a later attempt."""
    kind = FailureKind.TRANSIENT


class RateLimitError(TransientError):
    """Rate limit exceeded."""
    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ServerError(TransientError):
    """Remote returned a 5xx response."""
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(TransientError):
    """Network-related error (timeout, connection reset)."""
    pass


# =============================================================================
# Permanent (never retried)
# =============================================================================

class PermanentError(SyncError):
    """Failure that will not succeed on retry."""
    kind = FailureKind.PERMANENT


class AuthenticationError(PermanentError):
    """Authentication failed or token lacks access."""
    pass


class NotFoundError(PermanentError):
    """Repository or path does not exist."""
    pass


class RemoteValidationError(PermanentError):
    """Remote rejected the request payload."""
    pass


class ValidationError(SyncError, ValueError):
    """Malformed repository name or path, rejected before reaching the core."""
    kind = FailureKind.PERMANENT
