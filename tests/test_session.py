"""
Document Session Tests

Tests for opening, dirty tracking, debounced autosave and commit outcomes.
The autosave delay is shortened to 50ms by the config fixture.
"""

import asyncio

import pytest

from editsync.errors import AuthenticationError, NetworkError
from editsync.models import FailureKind, PendingWrite, SyncState
from editsync.session import DocumentSession

REPO = "octo/notes"


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def session(executor, config, statuses):
    return DocumentSession(REPO, executor, config, on_status=statuses.append)


class TestOpen:
    """Tests for content resolution on open."""

    @pytest.mark.asyncio
    async def test_open_from_cache(self, session, seeded):
        content = await session.open("a.md", remote_sha="s1")

        assert content == "hello"
        assert session.sha == "s1"
        assert session.is_dirty is False
        assert session.status.state == SyncState.IDLE
        assert seeded.reads == []

    @pytest.mark.asyncio
    async def test_open_fetches_and_caches_on_miss(self, session, remote, cache):
        remote.seed(REPO, "b.md", "from remote", "s7")

        content = await session.open("b.md", remote_sha="s7")

        assert content == "from remote"
        assert remote.reads == [(REPO, "b.md")]
        cached = cache.get(REPO, "b.md")
        assert cached.content == "from remote"
        assert cached.sha == "s7"
        assert cached.is_dirty is False

    @pytest.mark.asyncio
    async def test_open_new_file_is_empty(self, session, remote):
        content = await session.open("new.md")

        assert content == ""
        assert session.sha == ""
        assert remote.reads == []

    @pytest.mark.asyncio
    async def test_open_reads_cache_before_queue(self, session, seeded, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="offline edit", base_sha="s1"))

        content = await session.open("a.md", remote_sha="s1")

        assert content == "hello"
        assert session.sha == "s1"
        assert session.is_dirty is False
        assert session.status.state == SyncState.IDLE
        assert queue.get(REPO, "a.md").content == "offline edit"

    @pytest.mark.asyncio
    async def test_reopen_resets_status_to_idle(self, session, seeded, connectivity):
        await session.open("a.md", remote_sha="s1")
        session.edit("hello world")
        connectivity.set_online(False)
        await session.commit_now()
        assert session.status.state == SyncState.SAVED

        await session.open("a.md", remote_sha="s1")

        assert session.status.state == SyncState.IDLE
        assert session.status.warning is None
        assert session.is_dirty is False

    @pytest.mark.asyncio
    async def test_open_remote_failure_sets_error(self, session, remote):
        async def failing_read(repo, path):
            raise NetworkError("connection reset")

        remote.read_file = failing_read

        with pytest.raises(NetworkError):
            await session.open("c.md", remote_sha="s3")
        assert session.status.state == SyncState.ERROR
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_edit_before_open_raises(self, session):
        with pytest.raises(RuntimeError):
            session.edit("x")


class TestDirtyTracking:
    """Tests for dirtiness as live vs original content."""

    @pytest.mark.asyncio
    async def test_dirty_follows_content(self, session, seeded):
        await session.open("a.md", remote_sha="s1")

        session.edit("hello world")
        assert session.is_dirty

        session.edit("hello")
        assert not session.is_dirty
        await session.close()


class TestDebounce:
    """Tests for the autosave quiescence window."""

    @pytest.mark.asyncio
    async def test_only_last_edit_is_committed(self, session, seeded):
        await session.open("a.md", remote_sha="s1")

        session.edit("hello w")
        await asyncio.sleep(0.01)
        session.edit("hello wo")
        await asyncio.sleep(0.01)
        session.edit("hello world")
        await asyncio.sleep(0.2)

        assert [w[2] for w in seeded.writes] == ["hello world"]
        assert session.status.state == SyncState.SAVED
        assert session.is_dirty is False

    @pytest.mark.asyncio
    async def test_two_edits_inside_window_commit_once(self, session, seeded):
        await session.open("a.md", remote_sha="s1")

        session.edit("first")
        await asyncio.sleep(0.02)
        session.edit("second")
        assert session.has_pending_commit
        await asyncio.sleep(0.2)

        assert len(seeded.writes) == 1
        assert seeded.writes[0][2] == "second"

    @pytest.mark.asyncio
    async def test_nothing_committed_before_window_elapses(self, session, seeded):
        await session.open("a.md", remote_sha="s1")

        session.edit("hello world")
        await asyncio.sleep(0.01)

        assert seeded.writes == []
        await session.close()

    @pytest.mark.asyncio
    async def test_commit_now_cancels_timer(self, session, seeded):
        await session.open("a.md", remote_sha="s1")

        session.edit("hello world")
        outcome = await session.commit_now()
        await asyncio.sleep(0.2)

        assert outcome.success
        assert len(seeded.writes) == 1
        assert not session.has_pending_commit

    @pytest.mark.asyncio
    async def test_close_cancels_timer(self, session, seeded):
        await session.open("a.md", remote_sha="s1")

        session.edit("hello world")
        await session.close()
        await asyncio.sleep(0.2)

        assert seeded.writes == []
        assert not session.is_open


class TestCommit:
    """Tests for commit outcomes."""

    @pytest.mark.asyncio
    async def test_success_updates_session_and_cache(self, session, seeded, cache, statuses):
        await session.open("a.md", remote_sha="s1")
        session.edit("hello world")

        outcome = await session.commit_now()

        assert outcome.success
        assert session.sha == outcome.sha
        assert session.original_content == "hello world"
        assert session.last_saved_at is not None
        cached = cache.get(REPO, "a.md")
        assert cached.content == "hello world"
        assert cached.sha == outcome.sha
        assert [s.state for s in statuses][-2:] == [SyncState.SAVING, SyncState.SAVED]

    @pytest.mark.asyncio
    async def test_offline_commit_queues_and_leaves_cache(
        self, session, seeded, cache, queue, connectivity
    ):
        await session.open("a.md", remote_sha="s1")
        session.edit("hello world")
        connectivity.set_online(False)

        outcome = await session.commit_now()

        assert outcome.kind == FailureKind.OFFLINE
        pending = queue.list_pending()
        assert len(pending) == 1
        assert pending[0].content == "hello world"
        assert pending[0].base_sha == "s1"
        assert pending[0].retry_count == 0

        cached = cache.get(REPO, "a.md")
        assert cached.content == "hello"
        assert cached.is_dirty is False
        assert session.is_dirty is True

        assert session.status.state == SyncState.SAVED
        assert session.status.warning == "Offline - will sync when connected"
        assert seeded.writes == []

    @pytest.mark.asyncio
    async def test_transient_failure_queues_with_error(self, session, seeded, queue):
        await session.open("a.md", remote_sha="s1")
        session.edit("hello world")
        seeded.fail_next(NetworkError("connection reset"))

        outcome = await session.commit_now()

        assert outcome.kind == FailureKind.TRANSIENT
        assert queue.get(REPO, "a.md").content == "hello world"
        assert session.status.state == SyncState.ERROR
        assert "connection reset" in session.status.error

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_queued(self, session, seeded, queue):
        await session.open("a.md", remote_sha="s1")
        session.edit("hello world")
        seeded.fail_next(AuthenticationError("Bad credentials"))

        outcome = await session.commit_now()

        assert outcome.kind == FailureKind.PERMANENT
        assert queue.count() == 0
        assert session.status.state == SyncState.ERROR

    @pytest.mark.asyncio
    async def test_conflict_overwrites_remote(self, session, seeded, cache):
        await session.open("a.md", remote_sha="s1")
        seeded.seed(REPO, "a.md", "changed elsewhere", "s2")
        session.edit("mine")

        outcome = await session.commit_now()

        assert outcome.success
        assert seeded.files[(REPO, "a.md")].content == "mine"
        assert cache.get(REPO, "a.md").sha == outcome.sha

    @pytest.mark.asyncio
    async def test_unchanged_content_skips_write(self, session, seeded):
        await session.open("a.md", remote_sha="s1")

        outcome = await session.commit_now()

        assert outcome.success
        assert seeded.writes == []
        assert session.status.state == SyncState.SAVED

    @pytest.mark.asyncio
    async def test_new_file_is_created_on_save(self, session, remote):
        await session.open("new.md")
        session.edit("# Title")

        outcome = await session.commit_now()

        assert outcome.success
        assert remote.files[(REPO, "new.md")].content == "# Title"
        assert session.sha == outcome.sha

    @pytest.mark.asyncio
    async def test_write_in_flight_finishes_after_close(self, session, seeded, cache):
        await session.open("a.md", remote_sha="s1")
        session.edit("hello world")
        seeded.gate = asyncio.Event()

        commit = asyncio.create_task(session.commit_now())
        await asyncio.sleep(0.01)
        await session.close()
        seeded.gate.set()
        outcome = await commit

        assert outcome.success
        assert cache.get(REPO, "a.md").content == "hello world"
