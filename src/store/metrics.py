"""Metrics collection for the sync store."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class StoreMetrics:
    """Metrics for store operations.

    Attributes:
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of committed transactions.
        db_tx_failures: Number of rolled back transactions.
        queue_rows_enqueued: Rows added to the sync queue.
        queue_rows_deleted: Rows removed from the sync queue.
        articles_deleted: Articles removed by cleanup.
        feeds_deleted: Feeds removed by cleanup.
    """

    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0
    db_tx_failures: int = 0
    queue_rows_enqueued: int = 0
    queue_rows_deleted: int = 0
    articles_deleted: int = 0
    feeds_deleted: int = 0

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.db_tx_duration_ms += duration_ms
        self.db_tx_count += 1

    def record_tx_failure(self) -> None:
        """Record a rolled back transaction."""
        self.db_tx_failures += 1

    def record_enqueued(self, count: int = 1) -> None:
        """Record rows added to the sync queue."""
        self.queue_rows_enqueued += count

    def record_dequeued(self, count: int) -> None:
        """Record rows removed from the sync queue."""
        self.queue_rows_deleted += count

    def record_articles_deleted(self, count: int) -> None:
        """Record articles removed by cleanup."""
        self.articles_deleted += count

    def record_feeds_deleted(self, count: int) -> None:
        """Record feeds removed by cleanup."""
        self.feeds_deleted += count

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
            "db_tx_failures": self.db_tx_failures,
            "queue_rows_enqueued": self.queue_rows_enqueued,
            "queue_rows_deleted": self.queue_rows_deleted,
            "articles_deleted": self.articles_deleted,
            "feeds_deleted": self.feeds_deleted,
        }

    @property
    def avg_tx_duration_ms(self) -> float:
        """Calculate average transaction duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
