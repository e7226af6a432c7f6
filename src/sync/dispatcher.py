"""Batch dispatcher pushing queued local mutations to the remote service."""

import threading
from collections.abc import Callable, Iterator, Sequence
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict

from src.observability.logging import bind_sync_context, clear_sync_context
from src.remote.client import InoreaderClient
from src.remote.constants import INOREADER_SERVICE
from src.remote.models import RateLimitSnapshot
from src.store.errors import StateStoreError
from src.store.models import ActionType, SyncQueueItem, SyncQueueStats
from src.store.store import SyncStore
from src.sync.config import EngineConfig
from src.sync.constants import LAST_PROCESSED_CONFIG_KEY
from src.sync.health import HealthReport, assess_queue_health
from src.sync.metrics import SyncMetrics
from src.sync.retry import RetryController
from src.sync.scheduler import PeriodicScheduler
from src.sync.usage import ApiUsageTracker


logger = structlog.get_logger()

# Actions that overwrite each other's effect on a remote article
_STATE_FAMILY: dict[str, str] = {
    ActionType.READ.value: "read",
    ActionType.UNREAD.value: "read",
    ActionType.STAR.value: "starred",
    ActionType.UNSTAR.value: "starred",
}


class CycleStatus(str, Enum):
    """How a dispatch cycle ended."""

    BUSY = "busy"
    EMPTY = "empty"
    GATED = "gated"
    COMPLETED = "completed"
    FAILED = "failed"


class CycleResult(BaseModel):
    """Outcome of one ``process_sync_queue`` call."""

    model_config = ConfigDict(extra="forbid")

    status: CycleStatus
    pending: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    items_synced: int = 0
    items_failed: int = 0
    items_superseded: int = 0
    error: str | None = None


def _chunks(items: Sequence[SyncQueueItem], size: int) -> Iterator[list[SyncQueueItem]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class BiDirectionalSync:
    """Pushes pending read/star mutations to the remote service in batches.

    One instance owns one processing flag and one scheduler. Only one
    dispatch cycle runs at a time; a call made while a cycle is in flight
    returns at once without touching the store.
    """

    def __init__(
        self,
        store: SyncStore,
        client: InoreaderClient,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        metrics: SyncMetrics | None = None,
        service: str = INOREADER_SERVICE,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Datastore holding the sync queue.
            client: Remote API client.
            config: Batching and retry parameters.
            clock: Callable returning the current UTC time.
            metrics: Metrics sink (defaults to the shared instance).
            service: Service name used for usage tracking.
        """
        self._store = store
        self._client = client
        self._config = config or EngineConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._metrics = metrics or SyncMetrics.get_instance()
        self._service = service

        self._usage = ApiUsageTracker(
            store, clock=self._clock, daily_limit=self._config.daily_api_limit
        )
        self._retry = RetryController(
            store, self._config.max_retries, clock=self._clock, metrics=self._metrics
        )
        self._client.set_rate_limit_listener(self._record_rate_limits)

        self._processing = threading.Lock()
        self._last_processed_at: datetime | None = None
        self._scheduler = PeriodicScheduler(
            self.process_sync_queue, self._config.interval_seconds
        )
        self._log = logger.bind(component="sync")

    @property
    def config(self) -> EngineConfig:
        """Batching and retry parameters."""
        return self._config

    @property
    def usage_tracker(self) -> ApiUsageTracker:
        """Usage tracker shared with the pull path."""
        return self._usage

    @property
    def last_processed_at(self) -> datetime | None:
        """End time of the most recent cycle, successful or not."""
        return self._last_processed_at

    @property
    def is_processing(self) -> bool:
        """Whether a dispatch cycle is in flight."""
        return self._processing.locked()

    @property
    def is_running(self) -> bool:
        """Whether periodic sync is active."""
        return self._scheduler.is_running

    # ===== Scheduling =====

    def start_periodic_sync(self) -> bool:
        """Run a cycle now and then every configured interval.

        Returns:
            False if periodic sync was already running.
        """
        return self._scheduler.start()

    def stop_periodic_sync(self) -> bool:
        """Stop future cycles; an in-flight cycle finishes. Idempotent.

        Returns:
            False if periodic sync was not running.
        """
        return self._scheduler.stop()

    def trigger_manual_sync(self) -> CycleResult:
        """Run one dispatch cycle on demand."""
        self._log.info("sync_manual_trigger")
        return self.process_sync_queue()

    # ===== Queue =====

    def queue_change(
        self, inoreader_id: str, action: ActionType | str
    ) -> SyncQueueItem:
        """Record a local read/star mutation and queue it for pushing.

        Triggers a dispatch cycle once the pending count reaches
        ``min_changes``.

        Args:
            inoreader_id: Remote item id.
            action: Mutation kind.

        Returns:
            The queued row.

        Raises:
            ValueError: If the action is not a known mutation or the item id
                is empty. Nothing is stored.
            StateStoreError: If the mutation could not be stored.
        """
        item = self._store.record_local_action(inoreader_id, ActionType(action))
        self._log.debug(
            "sync_change_queued", inoreader_id=inoreader_id, action_type=item.action_type
        )

        pending = self._store.count_pending(self._config.max_retries)
        if pending >= self._config.min_changes:
            self._log.info("sync_threshold_reached", pending=pending)
            self.process_sync_queue()
        return item

    def get_sync_queue_stats(self) -> SyncQueueStats:
        """Summarize the queue for monitoring."""
        return self._store.get_queue_stats(self._config.max_retries)

    def get_health(self, include_scheduler: bool = True) -> HealthReport:
        """Grade the queue, scheduler state and daily API usage.

        Args:
            include_scheduler: False when this process does not run the
                scheduler, so its state is not graded.
        """
        return assess_queue_health(
            self.get_sync_queue_stats(),
            self.is_running if include_scheduler else None,
            self._usage.check_limits(self._service),
        )

    def clear_failed_items(self, older_than: timedelta) -> int:
        """Purge exhausted or dead-lettered rows older than a threshold.

        Args:
            older_than: Minimum row age.

        Returns:
            Number of rows removed (0 when the store fails).
        """
        cutoff = self._clock() - older_than
        try:
            removed = self._store.delete_failed_items(self._config.max_retries, cutoff)
        except StateStoreError as exc:
            self._log.error("sync_clear_failed_items_error", error=str(exc))
            return 0
        self._log.info("sync_failed_items_cleared", count=removed, cutoff=cutoff.isoformat())
        return removed

    # ===== Dispatch =====

    def process_sync_queue(self) -> CycleResult:
        """Drain eligible queue rows to the remote service.

        Never raises: every error is logged and reported in the result.
        """
        if not self._processing.acquire(blocking=False):
            self._log.info("sync_already_processing")
            self._metrics.increment("cycles_busy")
            return CycleResult(status=CycleStatus.BUSY)

        session_id = f"push_{self._clock().strftime('%Y%m%dT%H%M%S%f')}"
        bind_sync_context(session_id)
        try:
            result = self._run_cycle()
        except Exception as exc:
            self._log.exception("sync_cycle_failed")
            self._metrics.increment("cycles_failed")
            result = CycleResult(status=CycleStatus.FAILED, error=str(exc))
        finally:
            self._last_processed_at = self._clock()
            self._record_last_processed(self._last_processed_at)
            self._processing.release()
            clear_sync_context()

        return result

    def _run_cycle(self) -> CycleResult:
        items = self._store.get_pending_items(self._config.max_retries)
        if not items:
            self._log.debug("sync_queue_empty")
            return CycleResult(status=CycleStatus.EMPTY)

        self._metrics.increment("cycles_run")
        if self._should_wait(items):
            self._metrics.increment("cycles_skipped")
            return CycleResult(status=CycleStatus.GATED, pending=len(items))

        result = CycleResult(status=CycleStatus.COMPLETED, pending=len(items))
        items = self._drop_superseded(items, result)
        for action_type, group in self._group_by_action(items).items():
            for chunk in _chunks(group, self._config.batch_size):
                self._dispatch_batch(action_type, chunk, result)

        self._log.info(
            "sync_cycle_complete",
            pending=result.pending,
            batches_sent=result.batches_sent,
            batches_failed=result.batches_failed,
            items_synced=result.items_synced,
        )
        return result

    def _should_wait(self, items: Sequence[SyncQueueItem]) -> bool:
        """Batching gate: hold small bursts unless something is stale or retrying."""
        if len(items) >= self._config.min_changes:
            return False
        if any(item.sync_attempts > 0 for item in items):
            self._log.info("sync_gate_bypassed_for_retries", pending=len(items))
            return False

        now = self._clock()
        oldest_age = max(item.age_seconds(now) for item in items)
        if oldest_age > self._config.staleness_seconds:
            self._log.info(
                "sync_gate_bypassed_for_staleness",
                pending=len(items),
                oldest_age_seconds=round(oldest_age, 1),
            )
            return False

        self._log.info(
            "sync_gated",
            pending=len(items),
            min_changes=self._config.min_changes,
        )
        return True

    def _drop_superseded(
        self, items: Sequence[SyncQueueItem], result: CycleResult
    ) -> list[SyncQueueItem]:
        """Keep only the newest row per article and state.

        Batches are grouped by action, so read(t1), unread(t2), read(t3) on
        one article would otherwise reach the remote out of order. Older
        rows are deleted before dispatch. ``items`` is ordered oldest first.
        """
        latest: dict[tuple[str, str], SyncQueueItem] = {}
        for item in items:
            family = _STATE_FAMILY.get(item.action_type, item.action_type)
            latest[(item.inoreader_id, family)] = item

        keep = {item.id for item in latest.values()}
        superseded = [item.id for item in items if item.id not in keep]
        if not superseded:
            return list(items)

        self._store.delete_queue_items(superseded)
        result.items_superseded = len(superseded)
        self._metrics.increment("items_superseded", len(superseded))
        self._log.info("sync_superseded_dropped", count=len(superseded))
        return [item for item in items if item.id in keep]

    @staticmethod
    def _group_by_action(
        items: Sequence[SyncQueueItem],
    ) -> dict[str, list[SyncQueueItem]]:
        groups: dict[str, list[SyncQueueItem]] = {}
        for item in items:
            groups.setdefault(item.action_type, []).append(item)
        return groups

    def _dispatch_batch(
        self, action_type: str, chunk: list[SyncQueueItem], result: CycleResult
    ) -> None:
        ids = [item.inoreader_id for item in chunk]
        try:
            self._client.edit_tag(action_type, ids)
        except Exception as exc:  # noqa: BLE001
            result.batches_failed += 1
            result.items_failed += len(chunk)
            self._metrics.increment("batches_failed")
            self._retry.handle_sync_error(chunk, exc)
            return

        result.batches_sent += 1
        self._metrics.increment("batches_sent")
        self._log.info(
            "sync_batch_dispatched", action_type=action_type, item_count=len(chunk)
        )

        try:
            deleted = self._store.delete_queue_items([item.id for item in chunk])
        except StateStoreError as exc:
            self._log.error(
                "sync_queue_delete_failed", action_type=action_type, error=str(exc)
            )
        else:
            result.items_synced += deleted
            self._metrics.increment("items_synced", deleted)

        self._usage.track_api_usage(self._service)

    def _record_rate_limits(self, snapshot: RateLimitSnapshot) -> None:
        self._usage.record_rate_limits(snapshot, self._service)

    def _record_last_processed(self, when: datetime) -> None:
        try:
            self._store.set_config_value(LAST_PROCESSED_CONFIG_KEY, when.isoformat())
        except StateStoreError as exc:
            self._log.warning("sync_last_processed_write_failed", error=str(exc))
