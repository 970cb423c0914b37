"""
editsync - Sync Executor

Performs single write attempts against the remote and keeps the file cache
and retry queue consistent with their outcomes. Holds no durable state of
its own.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from .connectivity import ConnectivityState
from .errors import NotFoundError, OfflineError, SyncError
from .github import GitHubClient
from .models import CachedFile, FailureKind, PendingWrite, WriteOutcome, utcnow
from .store import FileCacheStore, RetryQueueStore

logger = logging.getLogger(__name__)


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class SyncExecutor:
    """Write attempts, outcome classification and durable bookkeeping."""

    def __init__(
        self,
        client: GitHubClient,
        cache: FileCacheStore,
        queue: RetryQueueStore,
        connectivity: ConnectivityState,
    ):
        self.client = client
        self.cache = cache
        self.queue = queue
        self.connectivity = connectivity
        self._key_locks: dict[tuple[str, str], _KeyLock] = {}

    @property
    def active_locks(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._key_locks)

    @asynccontextmanager
    async def lock(self, repo: str, path: str):
        """Serialize write attempts for one (repo, path)."""
        key = (repo, path)
        entry = self._key_locks.get(key)
        if entry is None:
            entry = self._key_locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            # Forget the lock once nobody holds or waits on it
            if entry.users == 0:
                del self._key_locks[key]

    async def attempt_write(
        self,
        repo: str,
        path: str,
        content: str,
        base_sha: str,
    ) -> WriteOutcome:
        """
        Attempt one remote write and classify the result.

        An empty base_sha creates the file. No durable state is touched here;
        callers apply the outcome with record_success() / enqueue().
        """
        if not self.connectivity.is_online:
            return WriteOutcome.failure(FailureKind.OFFLINE, "Offline")

        try:
            new_sha = await self.client.write_file(repo, path, content, base_sha or None)
        except SyncError as e:
            logger.warning(f"Write of {repo}:{path} failed ({e.kind.value}): {e}")
            return WriteOutcome.failure(e.kind, str(e))

        return WriteOutcome.ok(new_sha)

    async def refresh_sha(self, repo: str, path: str) -> str:
        """
        Re-read the remote sha of a file.

        Returns an empty string if the file no longer exists, so the next
        write re-creates it.
        """
        if not self.connectivity.is_online:
            raise OfflineError("Offline")
        try:
            remote = await self.client.read_file(repo, path)
        except NotFoundError:
            logger.info(f"{repo}:{path} no longer exists remotely; will re-create")
            return ""
        return remote.sha

    async def write_last_writer_wins(
        self,
        repo: str,
        path: str,
        content: str,
        base_sha: str,
    ) -> tuple[WriteOutcome, int]:
        """
        Write, and on a version conflict overwrite the remote once.

        Local content always wins over the remote revision it conflicts with;
        nothing is merged.

        Returns:
            (final outcome, number of conflicts resolved by re-attempting)
        """
        outcome = await self.attempt_write(repo, path, content, base_sha)
        if outcome.kind != FailureKind.CONFLICT:
            return outcome, 0

        try:
            current = await self.refresh_sha(repo, path)
        except SyncError as e:
            return WriteOutcome.failure(e.kind, str(e)), 1

        logger.info(f"Conflict on {repo}:{path}; overwriting remote {current or '<deleted>'}")
        return await self.attempt_write(repo, path, content, current), 1

    # === Durable bookkeeping ===

    def record_success(self, repo: str, path: str, content: str, sha: str) -> CachedFile:
        """Mark content as synchronized under sha and drop any queued write."""
        cached = CachedFile(
            path=path,
            content=content,
            sha=sha,
            last_synced=utcnow(),
            is_dirty=False,
        )
        self.cache.put(repo, path, cached)
        self.queue.dequeue(repo, path)
        return cached

    def enqueue(
        self,
        repo: str,
        path: str,
        content: str,
        base_sha: str,
        reset_retries: bool = False,
    ) -> PendingWrite:
        """Queue a write for a later drain, superseding any queued one."""
        pending = self.queue.enqueue(
            PendingWrite(repo=repo, path=path, content=content, base_sha=base_sha or ""),
            reset_retries=reset_retries,
        )
        logger.info(f"Queued {repo}:{path} for retry (retries={pending.retry_count})")
        return pending

    def cached(self, repo: str, path: str) -> Optional[CachedFile]:
        return self.cache.get(repo, path)
