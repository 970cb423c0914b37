"""
editsync - Queue Drainer

Works through the retry queue one entry at a time. Entries that succeed are
removed and cached; entries that keep failing are dropped after
config.max_retries attempts and reported.
"""

import logging
import time
from typing import Callable, Optional

from .config import SyncConfig
from .errors import SyncError
from .executor import SyncExecutor
from .models import DrainReport, FailureKind, PendingWrite, WriteOutcome

logger = logging.getLogger(__name__)

FailureCallback = Callable[[PendingWrite, WriteOutcome], None]

ALL_REPOSITORIES = None


class QueueDrainer:
    """Sequential, re-entrancy-guarded drain of the retry queue."""

    def __init__(
        self,
        executor: SyncExecutor,
        config: SyncConfig,
        on_permanent_failure: Optional[FailureCallback] = None,
    ):
        self.executor = executor
        self.queue = executor.queue
        self.config = config
        self.on_permanent_failure = on_permanent_failure
        self._in_progress: set[Optional[str]] = set()

    @property
    def ceiling(self) -> int:
        return self.config.max_retries

    def is_draining(self, repo: Optional[str] = None) -> bool:
        """True if a drain covering repo (or any drain, for None) is running."""
        if repo is ALL_REPOSITORIES:
            return bool(self._in_progress)
        return ALL_REPOSITORIES in self._in_progress or repo in self._in_progress

    async def drain(self, repo: Optional[str] = None) -> DrainReport:
        """
        Attempt every pending write once, in queue order.

        Args:
            repo: Limit to one repository; None drains the whole queue

        Returns:
            DrainReport; skipped=True if an overlapping drain was running
        """
        if self.is_draining(repo):
            logger.debug(f"Drain already in progress for {repo or 'all repositories'}; skipping")
            return DrainReport(skipped=True)

        self._in_progress.add(repo)
        start_time = time.time()
        report = DrainReport()
        try:
            pending = self.queue.list_pending(repo)
            if pending:
                logger.info(f"Draining {len(pending)} pending writes ({repo or 'all repositories'})")

            for entry in pending:
                if not await self._process(entry, report):
                    report.aborted_offline = True
                    logger.info("Offline; stopping drain until connectivity returns")
                    break
        finally:
            self._in_progress.discard(repo)

        report.duration_seconds = time.time() - start_time
        if report.succeeded or report.permanently_failed:
            logger.info(
                f"Drain completed in {report.duration_seconds:.2f}s: "
                f"{report.succeeded} synced, {report.permanently_failed} dropped"
            )
        return report

    async def _process(self, entry: PendingWrite, report: DrainReport) -> bool:
        """Handle one queue entry. Returns False if the drain should stop (offline)."""
        async with self.executor.lock(entry.repo, entry.path):
            # A session commit may have synced or replaced it meanwhile
            current = self.queue.get(entry.repo, entry.path)
            if current is None:
                return True

            outcome = await self.executor.attempt_write(
                current.repo, current.path, current.content, current.base_sha
            )

            # Last writer wins: adopt the remote's current sha and write once more.
            # The conflict is the one retry this attempt consumes.
            conflicted = outcome.kind == FailureKind.CONFLICT
            if conflicted:
                if not self._count_retry(current, outcome, report):
                    return True
                try:
                    current.base_sha = await self.executor.refresh_sha(current.repo, current.path)
                except SyncError as e:
                    outcome = WriteOutcome.failure(e.kind, str(e))
                else:
                    self.queue.update(current)
                    outcome = await self.executor.attempt_write(
                        current.repo, current.path, current.content, current.base_sha
                    )

            if outcome.success:
                self.executor.record_success(current.repo, current.path, current.content, outcome.sha)
                report.succeeded += 1
                return True

            if outcome.kind == FailureKind.OFFLINE:
                return False

            if outcome.kind == FailureKind.PERMANENT:
                self._drop(current, outcome, report)
                return True

            if not conflicted:
                self._count_retry(current, outcome, report)
            return True

    def _count_retry(self, entry: PendingWrite, outcome: WriteOutcome, report: DrainReport) -> bool:
        """Consume one retry. Returns False if the ceiling was reached and the entry dropped."""
        if entry.retry_count + 1 >= self.ceiling:
            self._drop(entry, outcome, report)
            return False

        entry.retry_count += 1
        self.queue.update(entry)
        report.retried += 1
        logger.warning(
            f"Write of {entry.repo}:{entry.path} failed ({outcome.kind.value}), "
            f"retry {entry.retry_count}/{self.ceiling}: {outcome.detail}"
        )
        return True

    def _drop(self, entry: PendingWrite, outcome: WriteOutcome, report: DrainReport) -> None:
        self.queue.dequeue(entry.repo, entry.path)
        report.permanently_failed += 1
        report.errors.append(f"{entry.repo}:{entry.path}: {outcome.detail}")
        logger.error(
            f"Giving up on {entry.repo}:{entry.path} after {entry.retry_count + 1} attempts "
            f"({outcome.kind.value}): {outcome.detail}"
        )
        if self.on_permanent_failure:
            self.on_permanent_failure(entry, outcome)
