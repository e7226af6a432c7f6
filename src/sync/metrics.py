"""Metrics collection for the sync engine."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class SyncMetrics:
    """Counters for dispatch cycles.

    Attributes:
        cycles_run: Cycles that fetched the queue.
        cycles_skipped: Cycles held back by the batching gate.
        cycles_busy: Calls rejected because a cycle was in flight.
        cycles_failed: Cycles aborted by an unexpected error.
        batches_sent: Successful remote calls.
        batches_failed: Failed remote calls.
        items_synced: Rows pushed and removed from the queue.
        items_retried: Rows whose attempt counter was bumped.
        items_abandoned: Rows that reached the retry bound.
        items_dead_lettered: Rows marked as permanently failed.
        items_superseded: Rows dropped because a later row for the same
            article and state replaced them.
    """

    cycles_run: int = 0
    cycles_skipped: int = 0
    cycles_busy: int = 0
    cycles_failed: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    items_synced: int = 0
    items_retried: int = 0
    items_abandoned: int = 0
    items_dead_lettered: int = 0
    items_superseded: int = 0

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["SyncMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "SyncMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def increment(self, name: str, count: int = 1) -> None:
        """Add to a counter.

        Args:
            name: Counter attribute name.
            count: Amount to add.

        Raises:
            AttributeError: If the counter does not exist.
        """
        if name not in self.to_dict():
            msg = f"Unknown sync metric: {name}"
            raise AttributeError(msg)
        with self._lock:
            setattr(self, name, getattr(self, name) + count)

    def to_dict(self) -> dict[str, int]:
        """Convert metrics to dictionary."""
        return {
            "cycles_run": self.cycles_run,
            "cycles_skipped": self.cycles_skipped,
            "cycles_busy": self.cycles_busy,
            "cycles_failed": self.cycles_failed,
            "batches_sent": self.batches_sent,
            "batches_failed": self.batches_failed,
            "items_synced": self.items_synced,
            "items_retried": self.items_retried,
            "items_abandoned": self.items_abandoned,
            "items_dead_lettered": self.items_dead_lettered,
            "items_superseded": self.items_superseded,
        }
