"""Unit tests for the cleanup and retention service."""

import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.cleanup.config import RetentionConfig
from src.cleanup.models import CleanupStatus
from src.cleanup.service import CleanupService
from src.store.errors import StoreOperationError
from src.store.models import DeletionTrackingRecord, EntityType
from src.store.store import SyncStore
from tests.helpers.store import open_store, seed_feeds
from tests.helpers.time import FIXED_NOW, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> Generator[SyncStore]:
    """Connected store in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = open_store(Path(tmpdir) / "sync.db", clock)
        yield store
        store.close()


def add_articles(
    store: SyncStore,
    count: int,
    is_read: bool = True,
    is_starred: bool = False,
    prefix: str = "item/",
    feed_id: int | None = None,
) -> list[str]:
    """Insert articles published one hour apart, oldest first."""
    ids = []
    for n in range(count):
        inoreader_id = f"{prefix}{n}"
        store.insert_article(
            inoreader_id,
            feed_id=feed_id,
            published_at=FIXED_NOW - timedelta(hours=count - n),
            is_read=is_read,
            is_starred=is_starred,
        )
        ids.append(inoreader_id)
    return ids


class TestFeedCleanup:
    """Tests for removing feeds that vanished remotely."""

    def test_safety_trip_on_mass_deletion(self, store: SyncStore, clock: FakeClock) -> None:
        """Test dropping 6,000 of 10,000 feeds trips the check and deletes nothing."""
        local_ids = seed_feeds(store, 10_000)
        remote_ids = local_ids[:4_000]
        add_articles(store, 3)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup(remote_ids)

        assert result.safety_tripped
        assert result.feeds_deleted == 0
        assert store.count_feeds() == 10_000
        assert result.status == CleanupStatus.SUCCESS

    def test_safety_trip_still_runs_article_cleanup(
        self, store: SyncStore, clock: FakeClock
    ) -> None:
        """Test article retention runs even when feed cleanup aborts."""
        store.set_config_value("articles_retention_limit", "2")
        local_ids = seed_feeds(store, 10)
        add_articles(store, 5)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup(local_ids[:2])

        assert result.safety_tripped
        assert result.articles_deleted == 3
        assert store.count_articles() == 2

    def test_exactly_half_is_allowed(self, store: SyncStore, clock: FakeClock) -> None:
        """Test deleting exactly the threshold fraction proceeds."""
        local_ids = seed_feeds(store, 10)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup(local_ids[:5])

        assert not result.safety_tripped
        assert result.feeds_deleted == 5
        assert store.count_feeds() == 5
        assert store.get_tracked_ids(local_ids[5:], EntityType.FEED) == set(local_ids[5:])

    def test_cascade_removes_feed_articles(self, store: SyncStore, clock: FakeClock) -> None:
        """Test articles of a deleted feed go with it."""
        keep = store.upsert_feed("feed/keep")
        gone = store.upsert_feed("feed/gone")
        add_articles(store, 2, is_read=False, prefix="keep/", feed_id=keep.id)
        add_articles(store, 3, is_read=False, prefix="gone/", feed_id=gone.id)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup(["feed/keep"])

        assert result.feeds_deleted == 1
        assert result.feed_articles_deleted == 3
        assert store.count_articles() == 2

    def test_chunked_by_max_ids(self, store: SyncStore, clock: FakeClock) -> None:
        """Test feed deletes never exceed max_ids_per_delete_operation ids."""
        store.set_config_value("max_ids_per_delete_operation", "3")
        local_ids = seed_feeds(store, 20)
        spy = MagicMock(wraps=store)
        service = CleanupService(spy, clock=clock)

        result = service.run_cleanup(local_ids[:12])

        assert result.feeds_deleted == 8
        sizes = [len(call.args[0]) for call in spy.delete_feeds.call_args_list]
        assert sizes == [3, 3, 2]

    def test_skipped_without_remote_list(self, store: SyncStore, clock: FakeClock) -> None:
        """Test feed cleanup does not run when no remote list is given."""
        seed_feeds(store, 4)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup(None)

        assert result.feeds_deleted == 0
        assert store.count_feeds() == 4

    def test_no_local_feeds(self, store: SyncStore, clock: FakeClock) -> None:
        """Test an empty feed table is a no-op."""
        service = CleanupService(store, clock=clock)

        result = service.cleanup_deleted_feeds(["feed/1"], RetentionConfig())

        assert result.candidates == 0
        assert not result.safety_tripped


class TestArticleCleanup:
    """Tests for read article retention."""

    def test_oldest_read_unstarred_deleted(self, store: SyncStore, clock: FakeClock) -> None:
        """Test only the oldest read, unstarred articles beyond the limit go."""
        store.set_config_value("articles_retention_limit", "6")
        read_ids = add_articles(store, 5, prefix="read/")
        add_articles(store, 2, is_read=False, prefix="unread/")
        add_articles(store, 2, is_starred=True, prefix="starred/")
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup()

        assert result.articles_deleted == 3
        assert result.tracking_entries_created == 3
        assert store.count_articles() == 6
        assert store.get_article("unread/0") is not None
        assert store.get_article("starred/0") is not None
        assert service.was_deleted(read_ids) == set(read_ids[:3])

    def test_within_limit_is_noop(self, store: SyncStore, clock: FakeClock) -> None:
        """Test nothing is deleted below the retention limit."""
        add_articles(store, 5)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup()

        assert result.articles_deleted == 0
        assert result.status == CleanupStatus.SUCCESS

    def test_batch_limit_caps_run(self, store: SyncStore, clock: FakeClock) -> None:
        """Test one run removes at most max_articles_per_cleanup_batch."""
        store.set_config_value("articles_retention_limit", "0")
        store.set_config_value("max_articles_per_cleanup_batch", "4")
        add_articles(store, 10)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup()

        assert result.articles_deleted == 4
        assert store.count_articles() == 6

    def test_chunk_bound(self, store: SyncStore, clock: FakeClock) -> None:
        """Test each delete carries at most max_ids_per_delete_operation ids."""
        store.set_config_value("articles_retention_limit", "0")
        store.set_config_value("max_ids_per_delete_operation", "4")
        add_articles(store, 10)
        spy = MagicMock(wraps=store)
        service = CleanupService(spy, clock=clock)

        result = service.cleanup_read_articles()

        assert result.chunks_processed == 3
        sizes = [len(call.args[0]) for call in spy.delete_articles.call_args_list]
        assert sizes == [4, 4, 2]

    def test_failed_chunk_is_partial_failure(
        self, store: SyncStore, clock: FakeClock
    ) -> None:
        """Test a failed chunk is skipped and the rest still run."""
        store.set_config_value("articles_retention_limit", "0")
        store.set_config_value("max_ids_per_delete_operation", "3")
        add_articles(store, 9)
        spy = MagicMock(wraps=store)
        calls = {"n": 0}

        def flaky_delete(ids: Any, tracking: Any) -> int:
            calls["n"] += 1
            if calls["n"] == 2:
                raise StoreOperationError("delete_articles", "database is locked")
            return store.delete_articles(ids, tracking)

        spy.delete_articles.side_effect = flaky_delete
        service = CleanupService(spy, clock=clock)

        result = service.run_cleanup()

        assert result.status == CleanupStatus.PARTIAL_FAILURE
        assert result.chunks_failed == 1
        assert result.articles_deleted == 6
        assert store.count_articles() == 3
        assert len(store.get_tracked_ids([f"item/{n}" for n in range(9)], EntityType.ARTICLE)) == 6

    def test_all_chunks_failed(self, store: SyncStore, clock: FakeClock) -> None:
        """Test nothing deleted with errors reports failure."""
        store.set_config_value("articles_retention_limit", "0")
        add_articles(store, 3)
        spy = MagicMock(wraps=store)
        spy.delete_articles.side_effect = StoreOperationError("delete_articles", "boom")
        service = CleanupService(spy, clock=clock)

        result = service.run_cleanup()

        assert result.status == CleanupStatus.FAILED
        assert store.count_articles() == 3

    def test_tracking_disabled_skips_cleanup(
        self, store: SyncStore, clock: FakeClock
    ) -> None:
        """Test article cleanup does not run with tracking disabled."""
        store.set_config_value("articles_retention_limit", "0")
        store.set_config_value("deletion_tracking_enabled", "false")
        add_articles(store, 3)
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup()

        assert result.articles_deleted == 0
        assert store.count_articles() == 3

    def test_config_reread_each_run(self, store: SyncStore, clock: FakeClock) -> None:
        """Test a changed limit applies to the next run."""
        add_articles(store, 5)
        service = CleanupService(store, clock=clock)
        assert service.run_cleanup().articles_deleted == 0

        store.set_config_value("articles_retention_limit", "1")

        assert service.run_cleanup().articles_deleted == 4


class TestTrackingPrune:
    """Tests for pruning old deletion tracking rows."""

    def test_old_entries_pruned(self, store: SyncStore, clock: FakeClock) -> None:
        """Test entries older than the retention window are removed."""
        with store._transaction("seed_tracking"):
            store._insert_tracking(
                store._ensure_connected(),
                [
                    DeletionTrackingRecord(
                        entity_id="old",
                        entity_type=EntityType.ARTICLE,
                        deleted_at=FIXED_NOW - timedelta(days=91),
                        reason="read_retention",
                    ),
                    DeletionTrackingRecord(
                        entity_id="recent",
                        entity_type=EntityType.ARTICLE,
                        deleted_at=FIXED_NOW - timedelta(days=89),
                        reason="read_retention",
                    ),
                ],
            )
        service = CleanupService(store, clock=clock)

        result = service.run_cleanup()

        assert result.tracking_entries_pruned == 1
        assert service.was_deleted(["old", "recent"]) == {"recent"}

    def test_prune_failure_returns_zero(self, clock: FakeClock) -> None:
        """Test a store failure while pruning is contained."""
        store = MagicMock()
        store.prune_deletion_tracking.side_effect = StoreOperationError("prune", "boom")
        service = CleanupService(store, clock=clock)

        assert service.cleanup_old_tracking_entries(90) == 0
