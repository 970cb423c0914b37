"""
editsync - Document Session

In-memory state machine for the currently open file. Tracks live content
against the last synchronized content, debounces autosave, and hands every
durable change to the SyncExecutor.

Usage:
    session = DocumentSession("octo/notes", executor, config)
    await session.open("a.md", remote_sha=entry.sha)
    session.edit("hello world")      # autosaves after config.autosave_delay
    await session.commit_now()       # or save right away
    await session.close()
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from .config import SyncConfig
from .errors import SyncError
from .executor import SyncExecutor
from .models import CachedFile, FailureKind, SyncStatus, WriteOutcome, utcnow

logger = logging.getLogger(__name__)

StatusCallback = Callable[[SyncStatus], None]


class DocumentSession:
    """The open document of one repository. At most one per editor."""

    def __init__(
        self,
        repo: str,
        executor: SyncExecutor,
        config: SyncConfig,
        on_status: Optional[StatusCallback] = None,
    ):
        self.repo = repo
        self.executor = executor
        self.config = config
        self.on_status = on_status

        self.path: Optional[str] = None
        self.live_content = ""
        self.original_content = ""
        self.sha = ""
        self.status = SyncStatus.idle()
        self.last_saved_at: Optional[datetime] = None

        self._commit_task: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self.path is not None

    @property
    def is_dirty(self) -> bool:
        return self.live_content != self.original_content

    @property
    def has_pending_commit(self) -> bool:
        return self._commit_task is not None and not self._commit_task.done()

    def _set_status(self, status: SyncStatus) -> None:
        self.status = status
        if self.on_status:
            self.on_status(status)

    def _require_open(self) -> str:
        if self.path is None:
            raise RuntimeError("No document is open")
        return self.path

    # === Lifecycle ===

    async def open(self, path: str, remote_sha: Optional[str] = None) -> str:
        """
        Open a file and return its content.

        Resolution order: the local cache, then the remote (only when
        remote_sha says the file exists), else an empty new file. Writes
        still waiting in the retry queue are left to the drainer.

        Raises:
            SyncError: If the remote read fails
        """
        self._cancel_pending()

        cached = self.executor.cached(self.repo, path)

        if cached is not None:
            content, sha = cached.content, cached.sha
        elif remote_sha:
            try:
                remote = await self.executor.client.read_file(self.repo, path)
            except SyncError as e:
                self._set_status(SyncStatus.failed(str(e) or "Failed to load file"))
                raise
            content, sha = remote.content, remote.sha
            self.executor.cache.put(
                self.repo,
                path,
                CachedFile(path=path, content=content, sha=sha, last_synced=utcnow()),
            )
        else:
            content, sha = "", ""

        self.path = path
        self.live_content = content
        self.original_content = content
        self.sha = sha
        self.last_saved_at = None
        self._set_status(SyncStatus.idle())

        logger.info(f"Opened {self.repo}:{path} ({sha or 'new file'})")
        return content

    async def close(self) -> None:
        """Discard the session. A write already in flight is left to finish."""
        self._cancel_pending()
        if self.path is not None:
            logger.debug(f"Closed {self.repo}:{self.path}")
        self.path = None
        self.live_content = ""
        self.original_content = ""
        self.sha = ""
        self._set_status(SyncStatus.idle())

    # === Editing ===

    def edit(self, new_content: str) -> None:
        """Replace live content and (re-)arm the autosave timer."""
        self._require_open()
        self.live_content = new_content
        self._cancel_pending()
        self._commit_task = asyncio.create_task(self._debounced_commit())

    def _cancel_pending(self) -> None:
        if self._commit_task is not None and not self._commit_task.done():
            self._commit_task.cancel()
        self._commit_task = None

    async def _debounced_commit(self) -> None:
        await asyncio.sleep(self.config.autosave_delay)
        # From here on the commit is in flight and no longer cancelable
        self._commit_task = None
        await self.commit(self.live_content)

    async def commit_now(self) -> WriteOutcome:
        """Save immediately, skipping the quiescence window."""
        self._require_open()
        self._cancel_pending()
        return await self.commit(self.live_content)

    async def commit(self, content: str, sha: Optional[str] = None) -> WriteOutcome:
        """
        Write content to the remote, based on sha (default: the session's sha).

        Success marks the content as synchronized. Offline and transient
        failures are queued for the drainer; permanent failures are only
        reported.
        """
        path = self._require_open()
        repo = self.repo

        async with self.executor.lock(repo, path):
            base_sha = self.sha if sha is None else sha

            # New files (no sha yet) are always written so saving creates them
            unchanged = (
                content == self.original_content
                and base_sha == self.sha
                and self.sha != ""
                and self.executor.queue.get(repo, path) is None
            )
            if unchanged:
                self._set_status(SyncStatus.saved())
                return WriteOutcome.ok(base_sha)

            self._set_status(SyncStatus.saving())
            outcome, _ = await self.executor.write_last_writer_wins(repo, path, content, base_sha)

            if outcome.success:
                self.executor.record_success(repo, path, content, outcome.sha)
                if self.path == path:
                    self.original_content = content
                    self.sha = outcome.sha
                    self.last_saved_at = utcnow()
                    self._set_status(SyncStatus.saved())
                logger.info(f"Saved {repo}:{path} at {outcome.sha}")
                return outcome

            if outcome.kind == FailureKind.PERMANENT:
                logger.error(f"Save of {repo}:{path} failed permanently: {outcome.detail}")
                if self.path == path:
                    self._set_status(SyncStatus.failed(outcome.detail or "Failed to save"))
                return outcome

            self.executor.enqueue(repo, path, content, base_sha)
            if self.path == path:
                if outcome.kind == FailureKind.OFFLINE:
                    self._set_status(SyncStatus.saved(self.config.offline_warning))
                else:
                    self._set_status(SyncStatus.failed(outcome.detail or "Failed to save"))
            return outcome
