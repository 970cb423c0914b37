"""
Shared fixtures: temp-dir stores and an in-memory remote that behaves like
the GitHub contents API (sha checked on every write, new sha per write).
"""

from typing import Optional

import pytest

from editsync.config import SyncConfig
from editsync.connectivity import ConnectivityState
from editsync.drainer import QueueDrainer
from editsync.errors import ConflictError, NotFoundError
from editsync.executor import SyncExecutor
from editsync.models import CachedFile, RemoteFile
from editsync.schemas import EntryType, FileEntry
from editsync.store import FileCacheStore, RetryQueueStore

REPO = "octo/notes"


class FakeRemote:
    """In-memory stand-in for GitHubClient."""

    def __init__(self):
        self.files: dict[tuple[str, str], RemoteFile] = {}
        self.writes: list[tuple[str, str, str, Optional[str]]] = []
        self.reads: list[tuple[str, str]] = []
        self.failures: list[Exception] = []
        self.gate = None
        self._counter = 0

    def seed(self, repo: str, path: str, content: str, sha: str) -> None:
        self.files[(repo, path)] = RemoteFile(content=content, sha=sha)

    def fail_next(self, *errors: Exception) -> None:
        self.failures.extend(errors)

    async def write_file(self, repo, path, content, base_sha=None, message=None):
        self.writes.append((repo, path, content, base_sha))
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)

        current = self.files.get((repo, path))
        if current is None and base_sha:
            raise NotFoundError(f"Not found: {path}")
        if current is not None and base_sha != current.sha:
            raise ConflictError(f"{path} is at {current.sha} but expected {base_sha}")

        self._counter += 1
        sha = f"r{self._counter}"
        self.files[(repo, path)] = RemoteFile(content=content, sha=sha)
        return sha

    async def read_file(self, repo, path):
        self.reads.append((repo, path))
        current = self.files.get((repo, path))
        if current is None:
            raise NotFoundError(f"Not found: {path}")
        return RemoteFile(content=current.content, sha=current.sha)

    async def read_directory(self, repo, path=""):
        prefix = f"{path.strip('/')}/" if path.strip("/") else ""
        return [
            FileEntry(name=p[len(prefix):], path=p, type=EntryType.FILE, sha=f.sha, size=len(f.content))
            for (r, p), f in sorted(self.files.items())
            if r == repo and p.startswith(prefix) and "/" not in p[len(prefix):]
        ]


@pytest.fixture
def config(tmp_path):
    return SyncConfig(
        cache_dir=tmp_path,
        autosave_delay=0.05,
        drain_interval=60,
        max_retries=5,
    )


@pytest.fixture
def cache(config):
    return FileCacheStore(config.cache_db_path)


@pytest.fixture
def queue(config):
    return RetryQueueStore(config.cache_db_path)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def connectivity():
    return ConnectivityState(online=True)


@pytest.fixture
def executor(remote, cache, queue, connectivity):
    return SyncExecutor(remote, cache, queue, connectivity)


@pytest.fixture
def failures():
    return []


@pytest.fixture
def drainer(executor, config, failures):
    return QueueDrainer(
        executor,
        config,
        on_permanent_failure=lambda entry, outcome: failures.append((entry, outcome)),
    )


@pytest.fixture
def seeded(remote, cache):
    """a.md synced at s1 both remotely and in the cache."""
    remote.seed(REPO, "a.md", "hello", "s1")
    cache.put(REPO, "a.md", CachedFile(path="a.md", content="hello", sha="s1"))
    return remote
