"""
editsync - Application Wiring

EditorApp constructs the stores, remote client and sync services once,
hands them to each other explicitly, and tears them down on close(). It is
the only place that knows how the pieces fit together; front ends (the CLI,
tests, an embedding UI) talk to it instead of to global state.
"""

import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Optional

import httpx

from .config import SyncConfig, get_config
from .connectivity import ConnectivityProbe, ConnectivityState
from .drainer import QueueDrainer
from .errors import NotFoundError, ValidationError
from .executor import SyncExecutor
from .github import GitHubClient
from .models import CachedFile, DrainReport, PendingWrite, Repository, WriteOutcome
from .monitor import SyncMonitor
from .schemas import FileEntry
from .session import DocumentSession, StatusCallback
from .store import FileCacheStore, RepositoryStore, RetryQueueStore, TokenStore
from .validation import join_path, parse_repository, validate_path

logger = logging.getLogger(__name__)

# Dropped writes kept for reporting; older ones are discarded first
MAX_REPORTED_FAILURES = 100


class EditorApp:
    """Owns every service of one editor process."""

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        connectivity: Optional[ConnectivityState] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        probe: Optional[ConnectivityProbe] = None,
    ):
        self.config = config or get_config()
        db_path = self.config.cache_db_path

        self.tokens = TokenStore(db_path)
        self.repositories = RepositoryStore(db_path)
        self.cache = FileCacheStore(db_path)
        self.queue = RetryQueueStore(db_path)

        self.connectivity = connectivity or ConnectivityState()
        self.client = GitHubClient(self.config, token=self.tokens.load(), transport=transport)
        self.executor = SyncExecutor(self.client, self.cache, self.queue, self.connectivity)
        self.drainer = QueueDrainer(
            self.executor,
            self.config,
            on_permanent_failure=self._on_permanent_failure,
        )
        self.monitor = SyncMonitor(
            self.drainer,
            self.queue,
            self.connectivity,
            self.config,
            probe=probe,
        )

        self.session: Optional[DocumentSession] = None
        self.failures: deque[tuple[PendingWrite, WriteOutcome]] = deque(maxlen=MAX_REPORTED_FAILURES)

    def _on_permanent_failure(self, entry: PendingWrite, outcome: WriteOutcome) -> None:
        self.failures.append((entry, outcome))

    def take_failures(self) -> list[tuple[PendingWrite, WriteOutcome]]:
        """Return and forget the writes dropped since the last call."""
        taken = list(self.failures)
        self.failures.clear()
        return taken

    async def close(self) -> None:
        """Stop background work and release resources."""
        await self.close_file()
        await self.monitor.stop()
        await self.client.close()
        logger.info("Editor closed")

    # === Authentication ===

    async def login(self, token: str) -> bool:
        """Validate a personal access token and store it if valid."""
        token = (token or "").strip()
        if not token:
            raise ValidationError("Please enter a GitHub Personal Access Token")

        self.client.set_token(token)
        if await self.client.validate_token():
            self.tokens.save(token)
            logger.info("Token validated and saved")
            return True

        self.client.clear_token()
        logger.warning("Token rejected by remote")
        return False

    async def restore_login(self) -> bool:
        """Re-validate the stored token; an invalid one is discarded."""
        token = self.tokens.load()
        if not token:
            return False

        self.client.set_token(token)
        if await self.client.validate_token():
            return True

        logger.warning("Saved token is invalid; removing it")
        self.logout()
        return False

    def logout(self) -> None:
        self.tokens.clear()
        self.client.clear_token()

    # === Repositories ===

    async def add_repository(self, text: str) -> Repository:
        """
        Add a repository by "owner/repo" or URL after checking it is reachable.

        Raises:
            ValidationError: Malformed input
            NotFoundError: Repository missing or not accessible
        """
        owner, name = parse_repository(text)
        try:
            info = await self.client.get_repository(owner, name)
        except NotFoundError as e:
            raise NotFoundError("Repository not found or you don't have access") from e

        repo = Repository(id=str(info.id), owner=owner, name=name)
        if not self.repositories.add(repo):
            logger.info(f"Repository {repo.full_name} already listed")
            return self.repositories.get(repo.full_name) or repo
        logger.info(f"Added repository {repo.full_name}")
        return repo

    def remove_repository(self, full_name: str) -> bool:
        return self.repositories.remove(full_name)

    def list_repositories(self) -> list[Repository]:
        return self.repositories.list_all()

    async def list_directory(self, repo: str, path: str = "") -> list[FileEntry]:
        return await self.client.read_directory(repo, path)

    # === Editing ===

    async def open_file(
        self,
        repo: str,
        path: str,
        remote_sha: Optional[str] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> DocumentSession:
        """Open a file, closing whatever document was open before."""
        validate_path(path)
        await self.close_file()

        session = DocumentSession(repo, self.executor, self.config, on_status=on_status)
        await session.open(path, remote_sha=remote_sha)
        self.session = session
        return session

    async def create_file(
        self,
        repo: str,
        directory: str,
        name: str,
        on_status: Optional[StatusCallback] = None,
    ) -> DocumentSession:
        """
        Start a new, empty file in directory. Nothing is written until the
        first commit, which creates it remotely.

        Raises:
            ValidationError: Malformed file name
        """
        path = join_path(directory, name)
        session = await self.open_file(repo, path, on_status=on_status)
        logger.info(f"New file {repo}:{path}")
        return session

    async def close_file(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    # === Cache ===

    def list_cached(self, repo: str) -> list[CachedFile]:
        return self.cache.list_files(repo)

    def clear_cache(self, repo: Optional[str] = None) -> int:
        """Drop cached content. Queued writes are kept and still drain."""
        return self.cache.clear(repo)

    # === Sync ===

    async def drain(self, repo: Optional[str] = None) -> DrainReport:
        return await self.drainer.drain(repo)

    def get_sync_status(self) -> dict:
        """Get current sync status information."""
        return {
            "queue_length": self.queue.count(),
            "pending": [
                {
                    "repo": p.repo,
                    "path": p.path,
                    "retries": p.retry_count,
                    "enqueued_at": p.enqueued_at.isoformat(),
                }
                for p in self.queue.list_pending()
            ],
            "is_online": self.connectivity.is_online,
            "is_authenticated": self.client.has_token,
            "is_draining": self.drainer.is_draining(),
            "monitor_running": self.monitor.is_running,
            "rate_limit_remaining": {
                "minute": self.client.rate_limiter.remaining_minute,
                "hour": self.client.rate_limiter.remaining_hour,
            },
            "permanent_failures": len(self.failures),
        }


@asynccontextmanager
async def editor_session(config: Optional[SyncConfig] = None, **kwargs):
    """
    Context manager for an EditorApp.

    Usage:
        async with editor_session() as app:
            session = await app.open_file("octo/notes", "a.md")
    """
    app = EditorApp(config, **kwargs)
    try:
        yield app
    finally:
        await app.close()
