"""Cleanup and retention engine run at the end of a pull sync."""

from collections.abc import Callable, Collection, Iterator, Sequence
from datetime import UTC, datetime, timedelta
from typing import TypeVar

import structlog

from src.cleanup.config import CONFIG_KEYS, RetentionConfig
from src.cleanup.models import (
    ArticleCleanupResult,
    CleanupResult,
    CleanupStatus,
    FeedCleanupResult,
)
from src.store.errors import StateStoreError
from src.store.models import DeletionTrackingRecord, EntityType, Feed
from src.store.store import SyncStore


logger = structlog.get_logger()

T = TypeVar("T")

ARTICLE_DELETION_REASON = "read_retention"
FEED_DELETION_REASON = "removed_remotely"


def _chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class CleanupService:
    """Removes vanished feeds and old read articles with deletion tracking.

    Thresholds are re-read from system_config at the start of every run.
    A failed delete chunk is logged and skipped; the remaining chunks still
    run and the result is reported as a partial failure.
    """

    def __init__(
        self,
        store: SyncStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Datastore holding feeds, articles and tracking rows.
            clock: Callable returning the current UTC time.
        """
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger.bind(component="cleanup")

    def load_config(self) -> RetentionConfig:
        """Read thresholds, falling back to defaults if the store fails."""
        try:
            values = self._store.get_config_values(CONFIG_KEYS)
        except StateStoreError as exc:
            self._log.warning("retention_config_load_failed", error=str(exc))
            return RetentionConfig()
        return RetentionConfig.from_system_config(values)

    def run_cleanup(self, remote_feed_ids: Collection[str] | None = None) -> CleanupResult:
        """Run feed cleanup, article cleanup, then tracking pruning.

        Article cleanup runs even when the feed safety check trips.

        Args:
            remote_feed_ids: Subscription ids from the latest remote list.
                Feed cleanup is skipped when None.

        Returns:
            Aggregated counts and status.
        """
        config = self.load_config()
        result = CleanupResult()
        self._log.info(
            "cleanup_started",
            retention_limit=config.articles_retention_limit,
            safety_threshold=config.feed_deletion_safety_threshold,
        )

        if remote_feed_ids is not None:
            feed_result = self.cleanup_deleted_feeds(remote_feed_ids, config)
            result.feeds_deleted = feed_result.feeds_deleted
            result.feed_articles_deleted = feed_result.articles_deleted
            result.safety_tripped = feed_result.safety_tripped
            result.chunks_failed += feed_result.chunks_failed
            result.errors.extend(feed_result.errors)

        article_result = self.cleanup_read_articles(config)
        result.articles_deleted = article_result.articles_deleted
        result.tracking_entries_created = article_result.tracking_entries_created
        result.chunks_failed += article_result.chunks_failed
        result.errors.extend(article_result.errors)

        result.tracking_entries_pruned = self.cleanup_old_tracking_entries(
            config.deletion_tracking_retention_days
        )

        result.status = self._overall_status(result)
        self._log.info(
            "cleanup_complete",
            status=result.status.value,
            feeds_deleted=result.feeds_deleted,
            feed_articles_deleted=result.feed_articles_deleted,
            articles_deleted=result.articles_deleted,
            chunks_failed=result.chunks_failed,
            safety_tripped=result.safety_tripped,
        )
        return result

    @staticmethod
    def _overall_status(result: CleanupResult) -> CleanupStatus:
        if not result.errors:
            return CleanupStatus.SUCCESS
        deleted = result.feeds_deleted + result.articles_deleted
        return CleanupStatus.PARTIAL_FAILURE if deleted > 0 else CleanupStatus.FAILED

    # ===== Feeds =====

    def cleanup_deleted_feeds(
        self,
        remote_feed_ids: Collection[str],
        config: RetentionConfig | None = None,
    ) -> FeedCleanupResult:
        """Delete local feeds that are absent from the remote list.

        Aborts without deleting anything when the run would remove more
        than ``feed_deletion_safety_threshold`` of the local feeds.

        Args:
            remote_feed_ids: Subscription ids from the remote list.
            config: Thresholds (read from the store when omitted).
        """
        config = config or self.load_config()
        result = FeedCleanupResult()

        try:
            local_feeds = self._store.list_feeds()
        except StateStoreError as exc:
            self._log.error("feed_cleanup_list_failed", error=str(exc))
            result.errors.append(f"Failed to list feeds: {exc}")
            return result

        if not local_feeds:
            return result

        remote = set(remote_feed_ids)
        to_delete = [feed for feed in local_feeds if feed.inoreader_id not in remote]
        result.candidates = len(to_delete)
        if not to_delete:
            return result

        fraction = len(to_delete) / len(local_feeds)
        if fraction > config.feed_deletion_safety_threshold:
            self._log.warning(
                "feed_cleanup_safety_trip",
                would_delete=len(to_delete),
                total_feeds=len(local_feeds),
                fraction=round(fraction, 3),
                threshold=config.feed_deletion_safety_threshold,
            )
            result.safety_tripped = True
            return result

        for chunk in _chunked(to_delete, config.max_ids_per_delete_operation):
            self._delete_feed_chunk(chunk, result)

        self._log.info(
            "feeds_cleaned_up",
            feeds_deleted=result.feeds_deleted,
            articles_deleted=result.articles_deleted,
        )
        return result

    def _delete_feed_chunk(self, chunk: Sequence[Feed], result: FeedCleanupResult) -> None:
        now = self._clock()
        tracking = [
            DeletionTrackingRecord(
                entity_id=feed.inoreader_id,
                entity_type=EntityType.FEED,
                deleted_at=now,
                reason=FEED_DELETION_REASON,
            )
            for feed in chunk
        ]
        try:
            feeds, articles = self._store.delete_feeds(
                [feed.id for feed in chunk], tracking
            )
        except StateStoreError as exc:
            self._log.error(
                "feed_cleanup_chunk_failed", chunk_size=len(chunk), error=str(exc)
            )
            result.chunks_failed += 1
            result.errors.append(f"Feed chunk of {len(chunk)} failed: {exc}")
            return
        result.feeds_deleted += feeds
        result.articles_deleted += articles

    # ===== Articles =====

    def cleanup_read_articles(
        self, config: RetentionConfig | None = None
    ) -> ArticleCleanupResult:
        """Delete the oldest read, unstarred articles beyond the retention limit.

        Each chunk writes its deletion tracking rows and deletes its
        articles in one transaction.

        Args:
            config: Thresholds (read from the store when omitted).
        """
        config = config or self.load_config()
        result = ArticleCleanupResult()

        if not config.deletion_tracking_enabled:
            self._log.info("article_cleanup_skipped", reason="tracking_disabled")
            return result

        try:
            total = self._store.count_articles()
            excess = total - config.articles_retention_limit
            if excess <= 0:
                self._log.debug(
                    "article_count_within_limit",
                    total=total,
                    limit=config.articles_retention_limit,
                )
                return result
            limit = min(excess, config.max_articles_per_cleanup_batch)
            candidates = self._store.select_cleanup_candidates(limit)
        except StateStoreError as exc:
            self._log.error("article_cleanup_select_failed", error=str(exc))
            result.errors.append(f"Failed to select articles: {exc}")
            return result

        result.candidates = len(candidates)
        for chunk in _chunked(candidates, config.max_ids_per_delete_operation):
            result.chunks_processed += 1
            now = self._clock()
            tracking = [
                DeletionTrackingRecord(
                    entity_id=article.inoreader_id,
                    entity_type=EntityType.ARTICLE,
                    deleted_at=now,
                    reason=ARTICLE_DELETION_REASON,
                )
                for article in chunk
            ]
            try:
                deleted = self._store.delete_articles(
                    [article.id for article in chunk], tracking
                )
            except StateStoreError as exc:
                self._log.error(
                    "article_cleanup_chunk_failed",
                    chunk=result.chunks_processed,
                    chunk_size=len(chunk),
                    error=str(exc),
                )
                result.chunks_failed += 1
                result.errors.append(
                    f"Article chunk {result.chunks_processed} failed: {exc}"
                )
                continue
            result.articles_deleted += deleted
            result.tracking_entries_created += len(tracking)

        self._log.info(
            "articles_cleaned_up",
            articles_deleted=result.articles_deleted,
            chunks_processed=result.chunks_processed,
            chunks_failed=result.chunks_failed,
        )
        return result

    # ===== Tracking =====

    def cleanup_old_tracking_entries(self, retention_days: int) -> int:
        """Prune tracking rows older than ``retention_days``.

        Returns:
            Number of rows pruned (0 when the store fails).
        """
        cutoff = self._clock() - timedelta(days=retention_days)
        try:
            return self._store.prune_deletion_tracking(cutoff)
        except StateStoreError as exc:
            self._log.error("tracking_prune_failed", error=str(exc))
            return 0

    def was_deleted(self, inoreader_ids: Sequence[str]) -> set[str]:
        """Return the article ids that cleanup removed on purpose."""
        return self._store.get_tracked_ids(inoreader_ids, EntityType.ARTICLE)
