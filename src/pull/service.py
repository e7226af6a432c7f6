"""Pull path: merge the remote snapshot into local state."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, ConfigDict

from src.cleanup.models import CleanupResult
from src.cleanup.service import CleanupService
from src.conflicts.detector import ConflictDetector
from src.conflicts.models import ConflictSummary
from src.conflicts.sinks import ConflictLogSink
from src.observability.logging import bind_sync_context, clear_sync_context
from src.remote.client import InoreaderClient
from src.remote.constants import INOREADER_SERVICE
from src.store.store import SyncStore
from src.sync.usage import ApiUsageTracker


logger = structlog.get_logger()


class PullResult(BaseModel):
    """Outcome of one pull session."""

    model_config = ConfigDict(extra="forbid")

    sync_session_id: str
    feeds_upserted: int = 0
    articles_inserted: int = 0
    articles_updated: int = 0
    articles_unchanged: int = 0
    articles_skipped_deleted: int = 0
    articles_skipped_no_feed: int = 0
    conflicts: ConflictSummary
    cleanup: CleanupResult


class PullSync:
    """Fetches subscriptions and recent items, resolves conflicts, then cleans up.

    Remote state always overwrites local state. Articles removed by
    cleanup are not re-imported.
    """

    def __init__(
        self,
        store: SyncStore,
        client: InoreaderClient,
        cleanup: CleanupService,
        usage: ApiUsageTracker,
        conflict_sink: ConflictLogSink | None = None,
        max_articles: int = 300,
        clock: Callable[[], datetime] | None = None,
        service: str = INOREADER_SERVICE,
    ) -> None:
        """Initialize the pull path.

        Args:
            store: Local datastore.
            client: Remote API client.
            cleanup: Cleanup engine run at the end of the session.
            usage: Usage tracker for remote calls.
            conflict_sink: Destination for conflict log entries.
            max_articles: Items fetched per session.
            clock: Callable returning the current UTC time.
            service: Service name used for usage tracking.
        """
        self._store = store
        self._client = client
        self._cleanup = cleanup
        self._usage = usage
        self._sink = conflict_sink
        self._max_articles = max_articles
        self._clock = clock or (lambda: datetime.now(UTC))
        self._service = service
        self._log = logger.bind(component="pull")

    def run(self) -> PullResult:
        """Run one pull session.

        Returns:
            Counts for feeds, articles, conflicts and cleanup.

        Raises:
            RemoteApiError: If a remote call fails.
            StateStoreError: If local state cannot be written.
        """
        session_id = f"sync_{self._clock().isoformat()}"
        bind_sync_context(session_id)
        try:
            return self._run(session_id)
        finally:
            clear_sync_context()

    def _run(self, session_id: str) -> PullResult:
        self._log.info("pull_started", max_articles=self._max_articles)

        subscriptions = self._client.list_subscriptions()
        self._usage.track_api_usage(self._service)
        feed_ids: dict[str, int] = {}
        for sub in subscriptions:
            feed = self._store.upsert_feed(sub.id, sub.title)
            feed_ids[sub.id] = feed.id

        items = self._client.stream_items(self._max_articles)
        self._usage.track_api_usage(self._service)

        remote_ids = [item.id for item in items]
        deleted = self._cleanup.was_deleted(remote_ids)
        existing = self._store.get_articles_by_inoreader_ids(remote_ids)
        detector = ConflictDetector(session_id, sink=self._sink, clock=self._clock)

        inserted = updated = unchanged = skipped_deleted = skipped_no_feed = 0
        for item in items:
            if item.id in deleted:
                skipped_deleted += 1
                continue

            local = existing.get(item.id)
            if local is None:
                feed_id = feed_ids.get(item.feed_id) if item.feed_id else None
                if feed_id is None:
                    skipped_no_feed += 1
                    continue
                self._store.insert_article(
                    inoreader_id=item.id,
                    feed_id=feed_id,
                    title=item.title,
                    published_at=item.published_at,
                    is_read=item.is_read,
                    is_starred=item.is_starred,
                    synced_at=self._clock(),
                )
                inserted += 1
                continue

            if detector.detect(local, item) is None:
                unchanged += 1
                continue
            self._store.apply_remote_state(local.id, item.is_read, item.is_starred)
            updated += 1

        summary = detector.get_summary()
        if summary.total_conflicts:
            self._log.info("sync_conflict_report", report=detector.generate_report())

        cleanup_result = self._cleanup.run_cleanup(list(feed_ids))

        result = PullResult(
            sync_session_id=session_id,
            feeds_upserted=len(feed_ids),
            articles_inserted=inserted,
            articles_updated=updated,
            articles_unchanged=unchanged,
            articles_skipped_deleted=skipped_deleted,
            articles_skipped_no_feed=skipped_no_feed,
            conflicts=summary,
            cleanup=cleanup_result,
        )
        self._log.info(
            "pull_complete",
            feeds_upserted=result.feeds_upserted,
            articles_inserted=inserted,
            articles_updated=updated,
            articles_skipped_deleted=skipped_deleted,
            conflicts=summary.total_conflicts,
        )
        return result
