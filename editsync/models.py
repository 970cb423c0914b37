"""
editsync - Data Models

Durable records (cached files, pending writes, repositories) and the
transient views (sync status, write outcomes, drain reports) passed between
the session, executor and drainer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class FailureKind(str, Enum):
    """Classification of a failed write attempt."""
    OFFLINE = "offline"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class SyncState(str, Enum):
    """State of the open document's last sync."""
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class QueuePolicy(str, Enum):
    """
    What happens when a key that is already queued is enqueued again.

    REPLACE discards the older write wholesale; the newest edit wins. MERGE
    is named so nobody assumes queued writes accumulate, and is rejected.
    """
    REPLACE = "replace"
    MERGE = "merge"


# =============================================================================
# Durable records
# =============================================================================

@dataclass
class CachedFile:
    """Last known synchronized content of a remote file."""
    path: str
    content: str
    sha: str = ""
    last_synced: datetime = field(default_factory=utcnow)
    is_dirty: bool = False


@dataclass
class PendingWrite:
    """A write waiting in the retry queue. At most one per (repo, path)."""
    repo: str
    path: str
    content: str
    base_sha: str = ""
    enqueued_at: datetime = field(default_factory=utcnow)
    retry_count: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Repository:
    """A repository the user has added to their list."""
    id: str
    owner: str
    name: str
    added_at: datetime = field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


# =============================================================================
# Transient views
# =============================================================================

@dataclass
class SyncStatus:
    """What the UI shows for the open document. Never persisted."""
    state: SyncState = SyncState.IDLE
    last_saved: Optional[datetime] = None
    warning: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def idle(cls) -> "SyncStatus":
        return cls()

    @classmethod
    def saving(cls) -> "SyncStatus":
        return cls(state=SyncState.SAVING)

    @classmethod
    def saved(cls, warning: Optional[str] = None) -> "SyncStatus":
        return cls(state=SyncState.SAVED, last_saved=utcnow(), warning=warning)

    @classmethod
    def failed(cls, message: str) -> "SyncStatus":
        return cls(state=SyncState.ERROR, error=message)

    def describe(self) -> str:
        """Human readable status line."""
        if self.state == SyncState.SAVING:
            return "Saving..."
        if self.state == SyncState.SAVED:
            if self.warning:
                return self.warning
            return "Saved"
        if self.state == SyncState.ERROR:
            return f"Error: {self.error or 'unknown'}"
        return "Idle"


@dataclass
class RemoteFile:
    """File content as read from the remote."""
    content: str
    sha: str


@dataclass
class WriteOutcome:
    """Result of a single write attempt."""
    success: bool
    sha: Optional[str] = None
    kind: Optional[FailureKind] = None
    detail: str = ""

    @classmethod
    def ok(cls, sha: str) -> "WriteOutcome":
        return cls(success=True, sha=sha)

    @classmethod
    def failure(cls, kind: FailureKind, detail: str = "") -> "WriteOutcome":
        return cls(success=False, kind=kind, detail=detail)

    @property
    def retryable(self) -> bool:
        return self.kind in (FailureKind.CONFLICT, FailureKind.TRANSIENT)


@dataclass
class DrainReport:
    """Result of one drain cycle."""
    succeeded: int = 0
    permanently_failed: int = 0
    retried: int = 0
    aborted_offline: bool = False
    skipped: bool = False
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)
