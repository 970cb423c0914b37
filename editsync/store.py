"""
editsync - Local Stores (SQLite)

Durable collections backing offline operation:

- FileCacheStore: last synchronized content per (repository, path)
- RetryQueueStore: ordered pending writes, at most one per (repository, path)
- RepositoryStore: the user's flat repository list
- TokenStore: the single access token

All stores may share one database file. Connections are short-lived and
opened per operation, so a store is safe to use from the event loop thread
without holding a connection across awaits.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .models import CachedFile, PendingWrite, QueuePolicy, Repository

logger = logging.getLogger(__name__)


class SQLiteStore:
    """Base class handling schema creation and connection retries."""

    SCHEMA = ""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.executescript(self.SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup and retry for SQLITE_BUSY."""
        conn = None
        for attempt in range(5):
            try:
                conn = sqlite3.connect(str(self.db_path), timeout=30.0)
                conn.row_factory = sqlite3.Row
                break
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e) and attempt < 4:
                    time.sleep(0.1 * (2 ** attempt))
                else:
                    raise
        try:
            yield conn
        finally:
            if conn:
                conn.close()


# =============================================================================
# File Cache
# =============================================================================

class FileCacheStore(SQLiteStore):
    """Durable mapping of (repository, path) to the last synchronized content."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS cached_files (
        repo TEXT NOT NULL,
        path TEXT NOT NULL,
        content TEXT NOT NULL,
        sha TEXT NOT NULL DEFAULT '',
        last_synced TEXT NOT NULL,
        is_dirty INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (repo, path)
    );
    """

    @staticmethod
    def _row_to_file(row: sqlite3.Row) -> CachedFile:
        return CachedFile(
            path=row["path"],
            content=row["content"],
            sha=row["sha"],
            last_synced=datetime.fromisoformat(row["last_synced"]),
            is_dirty=bool(row["is_dirty"]),
        )

    def get(self, repo: str, path: str) -> Optional[CachedFile]:
        """Get the cached file, or None."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM cached_files WHERE repo = ? AND path = ?",
                (repo, path),
            ).fetchone()
        return self._row_to_file(row) if row else None

    def put(self, repo: str, path: str, cached: CachedFile) -> None:
        """Store a cached file, overwriting any existing entry."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cached_files
                (repo, path, content, sha, last_synced, is_dirty)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    repo,
                    path,
                    cached.content,
                    cached.sha or "",
                    cached.last_synced.isoformat(),
                    int(cached.is_dirty),
                ),
            )
            conn.commit()
        logger.debug(f"Cached {repo}:{path} at {cached.sha or '<new>'}")

    def remove(self, repo: str, path: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM cached_files WHERE repo = ? AND path = ?",
                (repo, path),
            )
            conn.commit()

    def list_files(self, repo: str) -> list[CachedFile]:
        """All cached files of a repository, ordered by path."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM cached_files WHERE repo = ? ORDER BY path",
                (repo,),
            ).fetchall()
        return [self._row_to_file(row) for row in rows]

    def clear(self, repo: Optional[str] = None) -> int:
        """Clear the cache for one repository, or entirely. Returns rows removed."""
        with self._get_connection() as conn:
            if repo is None:
                cursor = conn.execute("DELETE FROM cached_files")
            else:
                cursor = conn.execute("DELETE FROM cached_files WHERE repo = ?", (repo,))
            conn.commit()
            removed = cursor.rowcount
        logger.info(f"Cleared {removed} cached files ({repo or 'all repositories'})")
        return removed


# =============================================================================
# Retry Queue
# =============================================================================

class RetryQueueStore(SQLiteStore):
    """
    Durable queue of pending writes.

    Order is insertion order. Enqueuing a key that is already present
    replaces its content, base sha and enqueue time in place (the entry keeps
    its queue position); the retry count survives unless reset explicitly.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS sync_queue (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL,
        repo TEXT NOT NULL,
        path TEXT NOT NULL,
        content TEXT NOT NULL,
        base_sha TEXT NOT NULL DEFAULT '',
        enqueued_at TEXT NOT NULL,
        retry_count INTEGER NOT NULL DEFAULT 0,
        UNIQUE (repo, path)
    );

    CREATE INDEX IF NOT EXISTS idx_sync_queue_repo ON sync_queue(repo);
    """

    @staticmethod
    def _row_to_pending(row: sqlite3.Row) -> PendingWrite:
        return PendingWrite(
            id=row["id"],
            repo=row["repo"],
            path=row["path"],
            content=row["content"],
            base_sha=row["base_sha"],
            enqueued_at=datetime.fromisoformat(row["enqueued_at"]),
            retry_count=row["retry_count"],
        )

    def enqueue(
        self,
        pending: PendingWrite,
        policy: QueuePolicy = QueuePolicy.REPLACE,
        reset_retries: bool = False,
    ) -> PendingWrite:
        """
        Add a write to the queue, superseding any queued write for the same key.

        Args:
            pending: The write to queue
            policy: Only QueuePolicy.REPLACE is supported
            reset_retries: Reset retry_count of a replaced entry to pending.retry_count

        Returns:
            The entry as stored
        """
        if policy != QueuePolicy.REPLACE:
            raise ValueError(f"Unsupported queue policy: {policy.value}")

        with self._get_connection() as conn:
            existing = conn.execute(
                "SELECT retry_count FROM sync_queue WHERE repo = ? AND path = ?",
                (pending.repo, pending.path),
            ).fetchone()

            if existing is None:
                conn.execute(
                    """
                    INSERT INTO sync_queue
                    (id, repo, path, content, base_sha, enqueued_at, retry_count)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        pending.id,
                        pending.repo,
                        pending.path,
                        pending.content,
                        pending.base_sha or "",
                        pending.enqueued_at.isoformat(),
                        pending.retry_count,
                    ),
                )
            else:
                if not reset_retries:
                    pending.retry_count = existing["retry_count"]
                conn.execute(
                    """
                    UPDATE sync_queue
                    SET id = ?, content = ?, base_sha = ?, enqueued_at = ?, retry_count = ?
                    WHERE repo = ? AND path = ?
                    """,
                    (
                        pending.id,
                        pending.content,
                        pending.base_sha or "",
                        pending.enqueued_at.isoformat(),
                        pending.retry_count,
                        pending.repo,
                        pending.path,
                    ),
                )
            conn.commit()

        action = "Enqueued" if existing is None else "Replaced queued"
        logger.debug(f"{action} write for {pending.repo}:{pending.path} (retries={pending.retry_count})")
        return pending

    def get(self, repo: str, path: str) -> Optional[PendingWrite]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM sync_queue WHERE repo = ? AND path = ?",
                (repo, path),
            ).fetchone()
        return self._row_to_pending(row) if row else None

    def list_pending(self, repo: Optional[str] = None) -> list[PendingWrite]:
        """Pending writes in queue order, optionally for one repository."""
        with self._get_connection() as conn:
            if repo is None:
                rows = conn.execute("SELECT * FROM sync_queue ORDER BY seq ASC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM sync_queue WHERE repo = ? ORDER BY seq ASC",
                    (repo,),
                ).fetchall()
        return [self._row_to_pending(row) for row in rows]

    def update(self, pending: PendingWrite) -> None:
        """Persist retry count and base sha of an existing entry."""
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE sync_queue SET base_sha = ?, retry_count = ?
                WHERE repo = ? AND path = ?
                """,
                (pending.base_sha or "", pending.retry_count, pending.repo, pending.path),
            )
            conn.commit()

    def dequeue(self, repo: str, path: str) -> None:
        """Remove the queued write for a key, if any."""
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM sync_queue WHERE repo = ? AND path = ?",
                (repo, path),
            )
            conn.commit()

    def count(self, repo: Optional[str] = None) -> int:
        with self._get_connection() as conn:
            if repo is None:
                row = conn.execute("SELECT COUNT(*) AS n FROM sync_queue").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM sync_queue WHERE repo = ?", (repo,)
                ).fetchone()
        return row["n"]

    def clear(self, repo: Optional[str] = None) -> int:
        with self._get_connection() as conn:
            if repo is None:
                cursor = conn.execute("DELETE FROM sync_queue")
            else:
                cursor = conn.execute("DELETE FROM sync_queue WHERE repo = ?", (repo,))
            conn.commit()
            return cursor.rowcount


# =============================================================================
# Repository List
# =============================================================================

class RepositoryStore(SQLiteStore):
    """The user's repository list."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS repositories (
        full_name TEXT PRIMARY KEY,
        id TEXT NOT NULL,
        owner TEXT NOT NULL,
        name TEXT NOT NULL,
        added_at TEXT NOT NULL
    );
    """

    def add(self, repo: Repository) -> bool:
        """Add a repository. Returns False if it was already listed."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO repositories (full_name, id, owner, name, added_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (repo.full_name, repo.id, repo.owner, repo.name, repo.added_at.isoformat()),
            )
            conn.commit()
            return cursor.rowcount > 0

    def remove(self, full_name: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM repositories WHERE full_name = ?", (full_name,)
            )
            conn.commit()
            return cursor.rowcount > 0

    def get(self, full_name: str) -> Optional[Repository]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM repositories WHERE full_name = ?", (full_name,)
            ).fetchone()
        if not row:
            return None
        return Repository(
            id=row["id"],
            owner=row["owner"],
            name=row["name"],
            added_at=datetime.fromisoformat(row["added_at"]),
        )

    def list_all(self) -> list[Repository]:
        """Repositories in the order they were added."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM repositories ORDER BY rowid ASC"
            ).fetchall()
        return [
            Repository(
                id=row["id"],
                owner=row["owner"],
                name=row["name"],
                added_at=datetime.fromisoformat(row["added_at"]),
            )
            for row in rows
        ]


# =============================================================================
# Credential Store
# =============================================================================

class TokenStore(SQLiteStore):
    """Holds exactly one access token."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS auth_tokens (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        access_token TEXT NOT NULL,
        saved_at TEXT NOT NULL
    );
    """

    def _init_db(self) -> None:
        super()._init_db()
        # Token is a credential; keep the database private to the user
        try:
            self.db_path.chmod(0o600)
        except OSError as e:
            logger.debug(f"Could not restrict permissions on {self.db_path}: {e}")

    def save(self, token: str) -> None:
        """Save the access token, replacing any previous one."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO auth_tokens (id, access_token, saved_at)
                VALUES (1, ?, ?)
                """,
                (token, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()

    def load(self) -> Optional[str]:
        """Get stored access token."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT access_token FROM auth_tokens WHERE id = 1").fetchone()
        return row["access_token"] if row else None

    def clear(self) -> None:
        """Clear stored access token."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM auth_tokens WHERE id = 1")
            conn.commit()
