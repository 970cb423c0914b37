"""
Store Tests

Tests for the SQLite file cache, retry queue, repository list and token store.
"""

import pytest

from editsync.models import CachedFile, PendingWrite, QueuePolicy, Repository
from editsync.store import FileCacheStore, RepositoryStore, RetryQueueStore, TokenStore

REPO = "octo/notes"


class TestFileCacheStore:
    """Tests for the file cache."""

    def test_cache_initialization(self, cache):
        assert cache.db_path.exists()

    def test_get_missing_returns_none(self, cache):
        assert cache.get(REPO, "missing.md") is None

    def test_put_and_get(self, cache):
        cache.put(REPO, "a.md", CachedFile(path="a.md", content="hello", sha="s1"))

        cached = cache.get(REPO, "a.md")
        assert cached.content == "hello"
        assert cached.sha == "s1"
        assert cached.is_dirty is False

    def test_put_overwrites(self, cache):
        cache.put(REPO, "a.md", CachedFile(path="a.md", content="hello", sha="s1"))
        cache.put(REPO, "a.md", CachedFile(path="a.md", content="bye", sha="s2"))

        assert cache.get(REPO, "a.md").content == "bye"
        assert len(cache.list_files(REPO)) == 1

    def test_keys_are_scoped_by_repository(self, cache):
        cache.put(REPO, "a.md", CachedFile(path="a.md", content="one", sha="s1"))
        cache.put("octo/other", "a.md", CachedFile(path="a.md", content="two", sha="s9"))

        assert cache.get(REPO, "a.md").content == "one"
        assert cache.get("octo/other", "a.md").content == "two"

    def test_remove(self, cache):
        cache.put(REPO, "a.md", CachedFile(path="a.md", content="hello", sha="s1"))
        cache.remove(REPO, "a.md")
        assert cache.get(REPO, "a.md") is None

    def test_clear_one_repository(self, cache):
        cache.put(REPO, "a.md", CachedFile(path="a.md", content="x"))
        cache.put(REPO, "b.md", CachedFile(path="b.md", content="y"))
        cache.put("octo/other", "c.md", CachedFile(path="c.md", content="z"))

        assert cache.clear(REPO) == 2
        assert cache.list_files(REPO) == []
        assert len(cache.list_files("octo/other")) == 1

    def test_survives_reopen(self, cache):
        cache.put(REPO, "a.md", CachedFile(path="a.md", content="durable", sha="s1"))

        reopened = FileCacheStore(cache.db_path)
        assert reopened.get(REPO, "a.md").content == "durable"


class TestRetryQueueStore:
    """Tests for the retry queue."""

    def test_enqueue_and_list(self, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="v1", base_sha="s1"))

        pending = queue.list_pending()
        assert len(pending) == 1
        assert pending[0].content == "v1"
        assert pending[0].base_sha == "s1"
        assert pending[0].retry_count == 0

    def test_enqueue_is_idempotent_per_key(self, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="v1", base_sha="s1"))
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="v2", base_sha="s1"))

        pending = queue.list_pending()
        assert len(pending) == 1
        assert pending[0].content == "v2"

    def test_replace_keeps_position_and_retry_count(self, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="a1"))
        queue.enqueue(PendingWrite(repo=REPO, path="b.md", content="b1"))

        first = queue.get(REPO, "a.md")
        first.retry_count = 3
        queue.update(first)

        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="a2"))

        pending = queue.list_pending()
        assert [p.path for p in pending] == ["a.md", "b.md"]
        assert pending[0].content == "a2"
        assert pending[0].retry_count == 3

    def test_reset_retries(self, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="a1", retry_count=2))
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="a2"), reset_retries=True)

        assert queue.get(REPO, "a.md").retry_count == 0

    def test_merge_policy_rejected(self, queue):
        with pytest.raises(ValueError):
            queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="x"), policy=QueuePolicy.MERGE)

    def test_insertion_order_and_repository_filter(self, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="z.md", content="1"))
        queue.enqueue(PendingWrite(repo="octo/other", path="m.md", content="2"))
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="3"))

        assert [p.path for p in queue.list_pending()] == ["z.md", "m.md", "a.md"]
        assert [p.path for p in queue.list_pending(REPO)] == ["z.md", "a.md"]
        assert queue.count() == 3
        assert queue.count("octo/other") == 1

    def test_dequeue(self, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="a.md", content="x"))
        queue.dequeue(REPO, "a.md")
        assert queue.get(REPO, "a.md") is None
        assert queue.count() == 0

    def test_dequeue_missing_is_noop(self, queue):
        queue.dequeue(REPO, "never.md")
        assert queue.count() == 0

    def test_empty_base_sha_round_trips(self, queue):
        queue.enqueue(PendingWrite(repo=REPO, path="new.md", content="x", base_sha=""))
        assert queue.get(REPO, "new.md").base_sha == ""


class TestRepositoryStore:
    """Tests for the repository list."""

    @pytest.fixture
    def repositories(self, config):
        return RepositoryStore(config.cache_db_path)

    def test_add_and_list(self, repositories):
        assert repositories.add(Repository(id="1", owner="octo", name="notes"))
        assert repositories.add(Repository(id="2", owner="octo", name="blog"))

        names = [r.full_name for r in repositories.list_all()]
        assert names == ["octo/notes", "octo/blog"]

    def test_add_duplicate(self, repositories):
        repositories.add(Repository(id="1", owner="octo", name="notes"))
        assert repositories.add(Repository(id="1", owner="octo", name="notes")) is False
        assert len(repositories.list_all()) == 1

    def test_remove(self, repositories):
        repositories.add(Repository(id="1", owner="octo", name="notes"))
        assert repositories.remove("octo/notes") is True
        assert repositories.get("octo/notes") is None
        assert repositories.remove("octo/notes") is False


class TestTokenStore:
    """Tests for the credential store."""

    @pytest.fixture
    def tokens(self, config):
        return TokenStore(config.cache_db_path)

    def test_empty(self, tokens):
        assert tokens.load() is None

    def test_save_replaces(self, tokens):
        tokens.save("ghp_first")
        tokens.save("ghp_second")
        assert tokens.load() == "ghp_second"

    def test_clear(self, tokens):
        tokens.save("ghp_first")
        tokens.clear()
        assert tokens.load() is None
