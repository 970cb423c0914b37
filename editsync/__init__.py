"""
editsync - Offline Edit Synchronization

Edit files of a GitHub repository while disconnected. Saves go through a
local cache and a durable retry queue and reach the remote once
connectivity returns; conflicts are settled last-writer-wins using blob
shas.
"""

from .app import (
    EditorApp,
    editor_session,
)
from .config import SyncConfig, get_config, load_config
from .connectivity import ConnectivityProbe, ConnectivityState
from .drainer import QueueDrainer
from .errors import (
    AuthenticationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    OfflineError,
    PermanentError,
    RateLimitError,
    RemoteValidationError,
    ServerError,
    SyncError,
    TransientError,
    ValidationError,
)
from .executor import SyncExecutor
from .github import GitHubClient, RateLimiter
from .models import (
    CachedFile,
    DrainReport,
    FailureKind,
    PendingWrite,
    QueuePolicy,
    RemoteFile,
    Repository,
    SyncState,
    SyncStatus,
    WriteOutcome,
)
from .monitor import AppState, SyncMonitor
from .schemas import EntryType, FileEntry
from .session import DocumentSession
from .store import FileCacheStore, RepositoryStore, RetryQueueStore, TokenStore

__version__ = "0.1.0"
__all__ = [
    # Application
    "EditorApp",
    "editor_session",

    # Configuration
    "SyncConfig",
    "get_config",
    "load_config",

    # Sync core
    "DocumentSession",
    "SyncExecutor",
    "QueueDrainer",
    "SyncMonitor",
    "AppState",
    "ConnectivityState",
    "ConnectivityProbe",

    # Stores
    "FileCacheStore",
    "RetryQueueStore",
    "RepositoryStore",
    "TokenStore",

    # Remote
    "GitHubClient",
    "RateLimiter",

    # Data models
    "CachedFile",
    "PendingWrite",
    "Repository",
    "RemoteFile",
    "FileEntry",
    "EntryType",
    "SyncState",
    "SyncStatus",
    "WriteOutcome",
    "FailureKind",
    "DrainReport",
    "QueuePolicy",

    # Exceptions
    "SyncError",
    "OfflineError",
    "ConflictError",
    "TransientError",
    "RateLimitError",
    "ServerError",
    "NetworkError",
    "PermanentError",
    "AuthenticationError",
    "NotFoundError",
    "RemoteValidationError",
    "ValidationError",
]
