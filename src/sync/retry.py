"""Retry bookkeeping for failed dispatch batches."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from src.remote.errors import RemoteApiError, RemoteErrorClass
from src.store.errors import StateStoreError
from src.store.models import SyncQueueItem
from src.store.store import SyncStore
from src.sync.metrics import SyncMetrics


logger = structlog.get_logger()


@dataclass
class RetryOutcome:
    """What happened to a failed batch.

    Attributes:
        retried: Rows whose attempt counter was bumped.
        abandoned: Rows that reached the retry bound with this failure.
        dead_lettered: Rows marked as permanently failed.
        persisted: False when the store update itself failed.
    """

    retried: int = 0
    abandoned: int = 0
    dead_lettered: int = 0
    persisted: bool = True


class RetryController:
    """Persists attempt counters for failed batches.

    Backoff is interval based: a retried row is picked up again on the next
    scheduler tick, until ``max_retries`` attempts have been recorded. The
    persisted ``sync_attempts`` column is the only retry counter.
    """

    def __init__(
        self,
        store: SyncStore,
        max_retries: int,
        clock: Callable[[], datetime] | None = None,
        metrics: SyncMetrics | None = None,
    ) -> None:
        self._store = store
        self._max_retries = max_retries
        self._clock = clock or (lambda: datetime.now(UTC))
        self._metrics = metrics or SyncMetrics.get_instance()
        self._log = logger.bind(component="sync", subcomponent="retry")

    def handle_sync_error(
        self, batch: Sequence[SyncQueueItem], error: Exception
    ) -> RetryOutcome:
        """Record a failed attempt for every row in a batch.

        Permanent errors dead-letter the rows instead. Store failures are
        logged and reported through ``RetryOutcome.persisted``.

        Args:
            batch: Rows that were sent together.
            error: The failure.

        Returns:
            Counts of retried, abandoned and dead-lettered rows.
        """
        if not batch:
            return RetryOutcome()

        error_class = (
            error.error_class
            if isinstance(error, RemoteApiError)
            else RemoteErrorClass.TRANSIENT
        )
        if error_class == RemoteErrorClass.PERMANENT:
            return self._dead_letter(batch, error)

        self._log_failure(batch, error, error_class)

        ids = [item.id for item in batch]
        try:
            self._store.increment_sync_attempts(ids, self._clock(), self._max_retries)
        except StateStoreError as exc:
            self._log.error(
                "sync_retry_update_failed", item_ids=ids, error=str(exc)
            )
            return RetryOutcome(persisted=False)

        abandoned = [
            item for item in batch if item.sync_attempts + 1 >= self._max_retries
        ]
        for item in abandoned:
            self._log.warning(
                "sync_item_abandoned",
                item_id=item.id,
                inoreader_id=item.inoreader_id,
                action_type=item.action_type,
                attempts=self._max_retries,
                error=str(error),
            )

        self._metrics.increment("items_retried", len(batch))
        self._metrics.increment("items_abandoned", len(abandoned))
        return RetryOutcome(retried=len(batch), abandoned=len(abandoned))

    def _log_failure(
        self,
        batch: Sequence[SyncQueueItem],
        error: Exception,
        error_class: RemoteErrorClass,
    ) -> None:
        if error_class == RemoteErrorClass.AUTH:
            event = "sync_auth_failure"
        elif error_class == RemoteErrorClass.RATE_LIMITED:
            event = "sync_rate_limited"
        else:
            event = "sync_batch_failed"
        self._log.warning(
            event,
            error_class=error_class.value,
            item_count=len(batch),
            action_type=batch[0].action_type,
            error=str(error),
        )

    def _dead_letter(
        self, batch: Sequence[SyncQueueItem], error: Exception
    ) -> RetryOutcome:
        ids = [item.id for item in batch]
        try:
            self._store.dead_letter_items(ids, str(error), self._clock())
        except StateStoreError as exc:
            self._log.error(
                "sync_dead_letter_update_failed", item_ids=ids, error=str(exc)
            )
            return RetryOutcome(persisted=False)

        for item in batch:
            self._log.error(
                "sync_item_dead_lettered",
                item_id=item.id,
                inoreader_id=item.inoreader_id,
                action_type=item.action_type,
                reason=str(error),
            )
        self._metrics.increment("items_dead_lettered", len(batch))
        return RetryOutcome(dead_lettered=len(batch))
