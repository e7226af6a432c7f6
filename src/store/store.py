"""SQLite store backing the sync engine."""

import sqlite3
import threading
import time
import uuid
from collections.abc import Callable, Generator, Iterable, Sequence
from contextlib import contextmanager
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from src.store.errors import (
    ConnectionError as StoreConnectionError,
    StoreOperationError,
)
from src.store.metrics import StoreMetrics, TransactionContext
from src.store.migrations import CURRENT_VERSION, MigrationManager
from src.store.models import (
    ActionType,
    ApiUsageRecord,
    Article,
    DeletionTrackingRecord,
    EntityType,
    Feed,
    SyncQueueItem,
    SyncQueueStats,
)


logger = structlog.get_logger()

_TABLES = (
    "feeds",
    "articles",
    "sync_queue",
    "api_usage",
    "sync_conflicts",
    "deletion_tracking",
    "system_config",
)

# Article state implied by each queued action
_ACTION_STATE: dict[ActionType, tuple[str, bool]] = {
    ActionType.READ: ("is_read", True),
    ActionType.UNREAD: ("is_read", False),
    ActionType.STAR: ("is_starred", True),
    ActionType.UNSTAR: ("is_starred", False),
}


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _require_queue_fields(inoreader_id: str, action_type: str) -> None:
    if not inoreader_id or not inoreader_id.strip():
        msg = "inoreader_id must be a non-empty string"
        raise ValueError(msg)
    if not action_type or not action_type.strip():
        msg = "action_type must be a non-empty string"
        raise ValueError(msg)


class SyncStore:
    """SQLite store for feeds, articles, and sync engine bookkeeping.

    Owns the sync_queue, api_usage, sync_conflicts, deletion_tracking and
    system_config tables. Uses WAL mode and schema migrations. A single
    connection is shared between the scheduler thread and callers, so every
    statement runs under a re-entrant lock.
    """

    def __init__(
        self,
        db_path: Path | str,
        clock: Callable[[], datetime] | None = None,
        metrics: StoreMetrics | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file.
            clock: Callable returning the current UTC time.
            metrics: Metrics sink (defaults to the shared instance).
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._clock = clock or _utc_now
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics = metrics or StoreMetrics.get_instance()
        self._log = logger.bind(component="store", db_path=str(self._db_path))

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def now(self) -> datetime:
        """Current time according to the store's clock."""
        return self._clock()

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.
        """
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._log.info("connecting_to_database")

        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()
        self._conn = conn

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "SyncStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[TransactionContext]:
        """Context manager for transactions with timing and logging.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.

        Raises:
            StoreOperationError: If a statement fails; the transaction is
                rolled back first.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )

            self._log.debug("transaction_started", tx_id=tx_id, op=operation)

            try:
                yield ctx
                conn.commit()
            except Exception as exc:
                conn.rollback()
                self._metrics.record_tx_failure()
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
                self._log.error(
                    "transaction_failed",
                    tx_id=tx_id,
                    op=operation,
                    duration_ms=round(duration_ms, 2),
                    error=str(exc),
                )
                if isinstance(exc, sqlite3.Error):
                    raise StoreOperationError(operation, str(exc)) from exc
                raise

            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)
            self._log.debug(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

    def _fetchall(
        self, operation: str, sql: str, params: Sequence[Any] = ()
    ) -> list[sqlite3.Row]:
        """Run a read query under the connection lock."""
        with self._lock:
            conn = self._ensure_connected()
            try:
                return conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as exc:
                self._log.error("query_failed", op=operation, error=str(exc))
                raise StoreOperationError(operation, str(exc)) from exc

    def _fetchone(
        self, operation: str, sql: str, params: Sequence[Any] = ()
    ) -> sqlite3.Row | None:
        """Run a single-row read query under the connection lock."""
        rows = self._fetchall(operation, sql, params)
        return rows[0] if rows else None

    # ===== Feeds =====

    def upsert_feed(self, inoreader_id: str, title: str = "") -> Feed:
        """Insert a feed or refresh its title.

        Args:
            inoreader_id: Remote subscription id.
            title: Display title.

        Returns:
            The stored feed.
        """
        with self._transaction("upsert_feed") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO feeds (inoreader_id, title, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(inoreader_id) DO UPDATE SET title = excluded.title
                """,
                (inoreader_id, title, self.now().isoformat()),
            )
            ctx.add_affected_rows(cursor.rowcount)

        feed = self.get_feed(inoreader_id)
        if feed is None:
            raise StoreOperationError("upsert_feed", f"feed {inoreader_id} missing")
        return feed

    def get_feed(self, inoreader_id: str) -> Feed | None:
        """Get a feed by remote id."""
        row = self._fetchone(
            "get_feed",
            "SELECT * FROM feeds WHERE inoreader_id = ?",
            (inoreader_id,),
        )
        return self._row_to_feed(row) if row is not None else None

    def list_feeds(self) -> list[Feed]:
        """Get all local feeds."""
        rows = self._fetchall("list_feeds", "SELECT * FROM feeds ORDER BY id")
        return [self._row_to_feed(row) for row in rows]

    def count_feeds(self) -> int:
        """Count local feeds."""
        row = self._fetchone("count_feeds", "SELECT COUNT(*) FROM feeds")
        return int(row[0]) if row is not None else 0

    def delete_feeds(
        self,
        feed_ids: Sequence[int],
        tracking: Iterable[DeletionTrackingRecord] = (),
    ) -> tuple[int, int]:
        """Delete feeds (and their articles by cascade) in one transaction.

        Args:
            feed_ids: Local feed ids to delete.
            tracking: Deletion tracking rows written in the same transaction.

        Returns:
            Tuple of (feeds deleted, articles removed by cascade).
        """
        if not feed_ids:
            return 0, 0

        marks = _placeholders(len(feed_ids))
        with self._transaction("delete_feeds") as ctx:
            conn = self._ensure_connected()
            self._insert_tracking(conn, tracking)
            cascaded = conn.execute(
                f"SELECT COUNT(*) FROM articles WHERE feed_id IN ({marks})",  # noqa: S608
                tuple(feed_ids),
            ).fetchone()[0]
            cursor = conn.execute(
                f"DELETE FROM feeds WHERE id IN ({marks})",  # noqa: S608
                tuple(feed_ids),
            )
            deleted = cursor.rowcount
            ctx.add_affected_rows(deleted + cascaded)

        self._metrics.record_feeds_deleted(deleted)
        self._metrics.record_articles_deleted(cascaded)
        return deleted, int(cascaded)

    def _row_to_feed(self, row: sqlite3.Row) -> Feed:
        return Feed(id=row["id"], inoreader_id=row["inoreader_id"], title=row["title"])

    # ===== Articles =====

    def insert_article(
        self,
        inoreader_id: str,
        feed_id: int | None = None,
        title: str = "",
        published_at: datetime | None = None,
        is_read: bool = False,
        is_starred: bool = False,
        synced_at: datetime | None = None,
    ) -> Article:
        """Insert a new article.

        Args:
            inoreader_id: Remote item id.
            feed_id: Local feed id.
            title: Article title.
            published_at: Publication time.
            is_read: Initial read state.
            is_starred: Initial starred state.
            synced_at: When the state was last taken from the remote service.

        Returns:
            The stored article.
        """
        with self._transaction("insert_article") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO articles (
                    inoreader_id, feed_id, title, published_at,
                    is_read, is_starred, last_sync_update, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    inoreader_id,
                    feed_id,
                    title,
                    published_at.isoformat() if published_at else None,
                    int(is_read),
                    int(is_starred),
                    synced_at.isoformat() if synced_at else None,
                    self.now().isoformat(),
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

        article = self.get_article(inoreader_id)
        if article is None:
            raise StoreOperationError("insert_article", f"{inoreader_id} missing")
        return article

    def get_article(self, inoreader_id: str) -> Article | None:
        """Get an article by remote id."""
        row = self._fetchone(
            "get_article",
            "SELECT * FROM articles WHERE inoreader_id = ?",
            (inoreader_id,),
        )
        return self._row_to_article(row) if row is not None else None

    def get_articles_by_inoreader_ids(
        self, inoreader_ids: Sequence[str]
    ) -> dict[str, Article]:
        """Get articles keyed by remote id."""
        if not inoreader_ids:
            return {}
        rows = self._fetchall(
            "get_articles_by_inoreader_ids",
            f"SELECT * FROM articles WHERE inoreader_id IN ({_placeholders(len(inoreader_ids))})",  # noqa: S608
            inoreader_ids,
        )
        return {row["inoreader_id"]: self._row_to_article(row) for row in rows}

    def count_articles(self) -> int:
        """Count local articles."""
        row = self._fetchone("count_articles", "SELECT COUNT(*) FROM articles")
        return int(row[0]) if row is not None else 0

    def apply_remote_state(
        self, article_id: int, is_read: bool, is_starred: bool
    ) -> None:
        """Overwrite an article's read/star state with the remote values."""
        with self._transaction("apply_remote_state") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                UPDATE articles
                SET is_read = ?, is_starred = ?, last_sync_update = ?
                WHERE id = ?
                """,
                (int(is_read), int(is_starred), self.now().isoformat(), article_id),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def record_local_action(
        self, inoreader_id: str, action: ActionType
    ) -> SyncQueueItem:
        """Apply a local read/star mutation and queue it for the remote service.

        The article update (if the article is stored locally) and the queue
        row are written in one transaction.

        Args:
            inoreader_id: Remote item id.
            action: The mutation.

        Returns:
            The new queue row.

        Raises:
            ValueError: If the item id is empty. Nothing is written.
        """
        _require_queue_fields(inoreader_id, action.value)
        column, value = _ACTION_STATE[action]
        now = self.now()
        with self._transaction("record_local_action") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"UPDATE articles SET {column} = ?, last_local_update = ? "  # noqa: S608
                "WHERE inoreader_id = ?",
                (int(value), now.isoformat(), inoreader_id),
            )
            ctx.add_affected_rows(cursor.rowcount)
            item_id = self._insert_queue_row(conn, inoreader_id, action.value, now)
            ctx.add_affected_rows(1)

        self._metrics.record_enqueued()
        return SyncQueueItem(
            id=item_id,
            action_type=action.value,
            inoreader_id=inoreader_id,
            created_at=now,
        )

    def select_cleanup_candidates(self, limit: int) -> list[Article]:
        """Get read, unstarred articles, oldest first.

        Args:
            limit: Maximum number of articles to return.
        """
        if limit <= 0:
            return []
        rows = self._fetchall(
            "select_cleanup_candidates",
            """
            SELECT * FROM articles
            WHERE is_read = 1 AND is_starred = 0
            ORDER BY published_at IS NULL, published_at ASC, id ASC
            LIMIT ?
            """,
            (limit,),
        )
        return [self._row_to_article(row) for row in rows]

    def delete_articles(
        self,
        article_ids: Sequence[int],
        tracking: Iterable[DeletionTrackingRecord] = (),
    ) -> int:
        """Delete articles and write their tracking rows atomically.

        Args:
            article_ids: Local article ids.
            tracking: Deletion tracking rows for the same articles.

        Returns:
            Number of articles deleted.
        """
        if not article_ids:
            return 0

        with self._transaction("delete_articles") as ctx:
            conn = self._ensure_connected()
            self._insert_tracking(conn, tracking)
            cursor = conn.execute(
                f"DELETE FROM articles WHERE id IN ({_placeholders(len(article_ids))})",  # noqa: S608
                tuple(article_ids),
            )
            deleted = cursor.rowcount
            ctx.add_affected_rows(deleted)

        self._metrics.record_articles_deleted(deleted)
        return deleted

    def _row_to_article(self, row: sqlite3.Row) -> Article:
        return Article(
            id=row["id"],
            inoreader_id=row["inoreader_id"],
            feed_id=row["feed_id"],
            title=row["title"],
            published_at=_parse_dt(row["published_at"]),
            is_read=bool(row["is_read"]),
            is_starred=bool(row["is_starred"]),
            last_local_update=_parse_dt(row["last_local_update"]),
            last_sync_update=_parse_dt(row["last_sync_update"]),
        )

    # ===== Sync Queue =====

    def _insert_queue_row(
        self,
        conn: sqlite3.Connection,
        inoreader_id: str,
        action_type: str,
        created_at: datetime,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO sync_queue (inoreader_id, action_type, sync_attempts, created_at)
            VALUES (?, ?, 0, ?)
            """,
            (inoreader_id, action_type, created_at.isoformat()),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            raise StoreOperationError("enqueue", "no row id returned")
        return row_id

    def enqueue(
        self,
        inoreader_id: str,
        action_type: ActionType | str,
        created_at: datetime | None = None,
    ) -> SyncQueueItem:
        """Append a pending mutation to the sync queue.

        Args:
            inoreader_id: Remote item id.
            action_type: Mutation kind.
            created_at: Creation time (defaults to now).

        Returns:
            The new queue row.

        Raises:
            ValueError: If the item id or action is empty. Nothing is written.
        """
        action = (
            action_type.value if isinstance(action_type, ActionType) else action_type
        )
        _require_queue_fields(inoreader_id, action)
        created = created_at or self.now()
        with self._transaction("enqueue") as ctx:
            conn = self._ensure_connected()
            item_id = self._insert_queue_row(conn, inoreader_id, action, created)
            ctx.add_affected_rows(1)

        self._metrics.record_enqueued()
        return SyncQueueItem(
            id=item_id,
            action_type=action,
            inoreader_id=inoreader_id,
            created_at=created,
        )

    def get_pending_items(self, max_retries: int) -> list[SyncQueueItem]:
        """Get rows still eligible for dispatch, oldest first.

        Rows that cannot be read back as queue items (written by another
        component with an empty id or action) are dead-lettered and left
        out, so they never hold up the rest of the queue.

        Args:
            max_retries: Rows with this many attempts or more are excluded.
        """
        rows = self._fetchall(
            "get_pending_items",
            """
            SELECT * FROM sync_queue
            WHERE sync_attempts < ? AND dead_letter_reason IS NULL
            ORDER BY created_at ASC, id ASC
            """,
            (max_retries,),
        )
        items: list[SyncQueueItem] = []
        malformed: list[int] = []
        for row in rows:
            try:
                items.append(self._row_to_queue_item(row))
            except (ValidationError, StoreOperationError) as exc:
                malformed.append(row["id"])
                self._log.error(
                    "sync_item_dead_lettered",
                    item_id=row["id"],
                    inoreader_id=row["inoreader_id"],
                    action_type=row["action_type"],
                    reason="malformed queue row",
                    error=str(exc),
                )
        if malformed:
            self.dead_letter_items(malformed, "malformed queue row", self.now())
        return items

    def count_pending(self, max_retries: int) -> int:
        """Count rows still eligible for dispatch."""
        row = self._fetchone(
            "count_pending",
            """
            SELECT COUNT(*) FROM sync_queue
            WHERE sync_attempts < ? AND dead_letter_reason IS NULL
            """,
            (max_retries,),
        )
        return int(row[0]) if row is not None else 0

    def get_queue_item(self, item_id: int) -> SyncQueueItem | None:
        """Get a queue row by id."""
        row = self._fetchone(
            "get_queue_item", "SELECT * FROM sync_queue WHERE id = ?", (item_id,)
        )
        return self._row_to_queue_item(row) if row is not None else None

    def delete_queue_items(self, item_ids: Sequence[int]) -> int:
        """Delete queue rows by id.

        Returns:
            Number of rows deleted.
        """
        if not item_ids:
            return 0
        with self._transaction("delete_queue_items") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"DELETE FROM sync_queue WHERE id IN ({_placeholders(len(item_ids))})",  # noqa: S608
                tuple(item_ids),
            )
            deleted = cursor.rowcount
            ctx.add_affected_rows(deleted)

        self._metrics.record_dequeued(deleted)
        return deleted

    def increment_sync_attempts(
        self,
        item_ids: Sequence[int],
        attempted_at: datetime,
        max_attempts: int,
    ) -> int:
        """Bump the attempt counter of queue rows, capped at ``max_attempts``.

        Returns:
            Number of rows updated.
        """
        if not item_ids:
            return 0
        with self._transaction("increment_sync_attempts") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"""
                UPDATE sync_queue
                SET sync_attempts = MIN(sync_attempts + 1, ?), last_attempt_at = ?
                WHERE id IN ({_placeholders(len(item_ids))})
                """,  # noqa: S608
                (max_attempts, attempted_at.isoformat(), *item_ids),
            )
            ctx.add_affected_rows(cursor.rowcount)
            return cursor.rowcount

    def dead_letter_items(
        self,
        item_ids: Sequence[int],
        reason: str,
        attempted_at: datetime,
    ) -> int:
        """Mark queue rows as permanently failed.

        Returns:
            Number of rows updated.
        """
        if not item_ids:
            return 0
        with self._transaction("dead_letter_items") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"""
                UPDATE sync_queue
                SET dead_letter_reason = ?, last_attempt_at = ?
                WHERE id IN ({_placeholders(len(item_ids))})
                """,  # noqa: S608
                (reason, attempted_at.isoformat(), *item_ids),
            )
            ctx.add_affected_rows(cursor.rowcount)
            return cursor.rowcount

    def get_queue_stats(self, max_retries: int) -> SyncQueueStats:
        """Summarize the queue for monitoring.

        Args:
            max_retries: Retry bound used to split pending from failed rows.
        """
        row = self._fetchone(
            "get_queue_stats",
            """
            SELECT
                SUM(CASE WHEN dead_letter_reason IS NULL AND sync_attempts < ?
                    THEN 1 ELSE 0 END) AS total_pending,
                SUM(CASE WHEN dead_letter_reason IS NULL AND sync_attempts >= ?
                    THEN 1 ELSE 0 END) AS failed_items,
                SUM(CASE WHEN dead_letter_reason IS NOT NULL
                    THEN 1 ELSE 0 END) AS dead_lettered,
                SUM(CASE WHEN dead_letter_reason IS NULL
                    AND sync_attempts > 0 AND sync_attempts < ?
                    THEN 1 ELSE 0 END) AS retry_pending,
                MIN(CASE WHEN dead_letter_reason IS NULL AND sync_attempts < ?
                    THEN created_at END) AS oldest_item
            FROM sync_queue
            """,
            (max_retries, max_retries, max_retries, max_retries),
        )
        if row is None:
            return SyncQueueStats(total_pending=0, failed_items=0)
        return SyncQueueStats(
            total_pending=row["total_pending"] or 0,
            failed_items=row["failed_items"] or 0,
            dead_lettered=row["dead_lettered"] or 0,
            retry_pending=row["retry_pending"] or 0,
            oldest_item=_parse_dt(row["oldest_item"]),
        )

    def delete_failed_items(self, max_retries: int, older_than: datetime) -> int:
        """Purge exhausted or dead-lettered rows created before a cutoff.

        Returns:
            Number of rows deleted.
        """
        with self._transaction("delete_failed_items") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                DELETE FROM sync_queue
                WHERE (sync_attempts >= ? OR dead_letter_reason IS NOT NULL)
                  AND created_at < ?
                """,
                (max_retries, older_than.isoformat()),
            )
            deleted = cursor.rowcount
            ctx.add_affected_rows(deleted)

        self._metrics.record_dequeued(deleted)
        return deleted

    def _row_to_queue_item(self, row: sqlite3.Row) -> SyncQueueItem:
        created_at = _parse_dt(row["created_at"])
        if created_at is None:
            raise StoreOperationError("read_queue", f"row {row['id']} has no created_at")
        return SyncQueueItem(
            id=row["id"],
            action_type=row["action_type"],
            inoreader_id=row["inoreader_id"],
            sync_attempts=row["sync_attempts"],
            created_at=created_at,
            last_attempt_at=_parse_dt(row["last_attempt_at"]),
            dead_letter_reason=row["dead_letter_reason"],
        )

    # ===== API Usage =====

    def get_api_usage(self, service: str, day: date) -> ApiUsageRecord | None:
        """Get the usage row for a service and day."""
        row = self._fetchone(
            "get_api_usage",
            "SELECT * FROM api_usage WHERE service = ? AND date = ?",
            (service, day.isoformat()),
        )
        if row is None:
            return None
        return ApiUsageRecord(
            service=row["service"],
            date=date.fromisoformat(row["date"]),
            count=row["count"],
            zone1_usage=row["zone1_usage"],
            zone1_limit=row["zone1_limit"],
            zone2_usage=row["zone2_usage"],
            zone2_limit=row["zone2_limit"],
            reset_after=row["reset_after"],
        )

    def insert_api_usage(self, service: str, day: date, count: int = 1) -> None:
        """Create the usage row for a service and day."""
        with self._transaction("insert_api_usage") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO api_usage (service, date, count, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (service, day.isoformat(), count, self.now().isoformat()),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def increment_api_usage(self, service: str, day: date) -> int:
        """Add one call to an existing usage row.

        Returns:
            Number of rows updated (0 when the row does not exist).
        """
        with self._transaction("increment_api_usage") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                UPDATE api_usage SET count = count + 1, updated_at = ?
                WHERE service = ? AND date = ?
                """,
                (self.now().isoformat(), service, day.isoformat()),
            )
            ctx.add_affected_rows(cursor.rowcount)
            return cursor.rowcount

    def record_rate_limits(
        self,
        service: str,
        day: date,
        zones: dict[str, int],
    ) -> None:
        """Store the remote service's own quota counters on today's row.

        Only the zone columns present in ``zones`` are written; the call
        counter is left untouched.

        Args:
            service: Service name.
            day: Calendar day.
            zones: Subset of zone1_usage, zone1_limit, zone2_usage,
                zone2_limit, reset_after.
        """
        allowed = ("zone1_usage", "zone1_limit", "zone2_usage", "zone2_limit", "reset_after")
        columns = [name for name in allowed if name in zones]
        if not columns:
            return

        assignments = ", ".join(f"{name} = excluded.{name}" for name in columns)
        with self._transaction("record_rate_limits") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                f"""
                INSERT INTO api_usage (service, date, count, updated_at, {", ".join(columns)})
                VALUES (?, ?, 0, ?, {_placeholders(len(columns))})
                ON CONFLICT(service, date) DO UPDATE SET
                    {assignments}, updated_at = excluded.updated_at
                """,  # noqa: S608
                (
                    service,
                    day.isoformat(),
                    self.now().isoformat(),
                    *(zones[name] for name in columns),
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

    # ===== Conflict Log =====

    def append_conflict(
        self,
        sync_session_id: str,
        article_id: str,
        inoreader_id: str,
        conflict_type: str,
        resolution: str,
        payload: str,
    ) -> None:
        """Append one conflict record. Rows are never updated or deleted."""
        with self._transaction("append_conflict") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO sync_conflicts (
                    logged_at, sync_session_id, article_id, inoreader_id,
                    conflict_type, resolution, payload
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    self.now().isoformat(),
                    sync_session_id,
                    article_id,
                    inoreader_id,
                    conflict_type,
                    resolution,
                    payload,
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def get_conflict_payloads(self, sync_session_id: str | None = None) -> list[str]:
        """Get stored conflict payloads in insertion order."""
        if sync_session_id is None:
            rows = self._fetchall(
                "get_conflict_payloads",
                "SELECT payload FROM sync_conflicts ORDER BY id",
            )
        else:
            rows = self._fetchall(
                "get_conflict_payloads",
                "SELECT payload FROM sync_conflicts WHERE sync_session_id = ? ORDER BY id",
                (sync_session_id,),
            )
        return [row["payload"] for row in rows]

    # ===== Deletion Tracking =====

    def _insert_tracking(
        self,
        conn: sqlite3.Connection,
        records: Iterable[DeletionTrackingRecord],
    ) -> None:
        conn.executemany(
            """
            INSERT OR IGNORE INTO deletion_tracking (entity_id, entity_type, deleted_at, reason)
            VALUES (?, ?, ?, ?)
            """,
            [
                (r.entity_id, r.entity_type.value, r.deleted_at.isoformat(), r.reason)
                for r in records
            ],
        )

    def get_tracked_ids(
        self, entity_ids: Sequence[str], entity_type: EntityType
    ) -> set[str]:
        """Return the subset of ids that have a deletion tracking record."""
        if not entity_ids:
            return set()
        rows = self._fetchall(
            "get_tracked_ids",
            f"""
            SELECT entity_id FROM deletion_tracking
            WHERE entity_type = ? AND entity_id IN ({_placeholders(len(entity_ids))})
            """,  # noqa: S608
            (entity_type.value, *entity_ids),
        )
        return {row["entity_id"] for row in rows}

    def prune_deletion_tracking(self, older_than: datetime) -> int:
        """Delete tracking rows recorded before a cutoff.

        Returns:
            Number of rows pruned.
        """
        with self._transaction("prune_deletion_tracking") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM deletion_tracking WHERE deleted_at < ?",
                (older_than.isoformat(),),
            )
            pruned = cursor.rowcount
            ctx.add_affected_rows(pruned)

        self._log.info("deletion_tracking_pruned", count=pruned)
        return pruned

    # ===== System Config =====

    def get_config_values(self, keys: Sequence[str] | None = None) -> dict[str, str]:
        """Read system_config entries.

        Args:
            keys: Keys to read (all keys when omitted).
        """
        if keys is None:
            rows = self._fetchall(
                "get_config_values", "SELECT key, value FROM system_config"
            )
        elif not keys:
            return {}
        else:
            rows = self._fetchall(
                "get_config_values",
                f"SELECT key, value FROM system_config WHERE key IN ({_placeholders(len(keys))})",  # noqa: S608
                keys,
            )
        return {row["key"]: row["value"] for row in rows}

    def set_config_value(self, key: str, value: str) -> None:
        """Insert or replace a system_config entry."""
        with self._transaction("set_config_value") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                INSERT INTO system_config (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, self.now().isoformat()),
            )
            ctx.add_affected_rows(cursor.rowcount)

    # ===== Stats =====

    def get_stats(self) -> dict[str, int]:
        """Get row counts for all tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        stats: dict[str, int] = {}
        for table in _TABLES:
            row = self._fetchone("get_stats", f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            stats[table] = int(row[0]) if row is not None else 0
        return stats

    def get_schema_version(self) -> int:
        """Get current schema version.

        Returns:
            Current schema version number.
        """
        with self._lock:
            conn = self._ensure_connected()
            return MigrationManager(conn).get_current_version()
