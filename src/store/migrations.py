"""SQLite schema migrations for the sync store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from src.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 2


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
        down_sql: SQL to rollback the migration.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Feeds, articles, sync queue, usage, conflicts, deletion tracking",
        up_sql="""
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    inoreader_id TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    inoreader_id TEXT NOT NULL UNIQUE,
    feed_id INTEGER REFERENCES feeds(id) ON DELETE CASCADE,
    title TEXT NOT NULL DEFAULT '',
    published_at TEXT,
    is_read INTEGER NOT NULL DEFAULT 0,
    is_starred INTEGER NOT NULL DEFAULT 0,
    last_local_update TEXT,
    last_sync_update TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_articles_feed_id ON articles(feed_id);
CREATE INDEX IF NOT EXISTS idx_articles_read_starred
    ON articles(is_read, is_starred, published_at);

-- Pending local mutations; action_type is deliberately unconstrained
CREATE TABLE IF NOT EXISTS sync_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    inoreader_id TEXT NOT NULL,
    action_type TEXT NOT NULL,
    sync_attempts INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    last_attempt_at TEXT,
    dead_letter_reason TEXT
);
CREATE INDEX IF NOT EXISTS idx_sync_queue_pending
    ON sync_queue(sync_attempts, created_at);

CREATE TABLE IF NOT EXISTS api_usage (
    service TEXT NOT NULL,
    date TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    zone1_usage INTEGER,
    zone1_limit INTEGER,
    zone2_usage INTEGER,
    zone2_limit INTEGER,
    reset_after INTEGER,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (service, date)
);

-- Append-only conflict log
CREATE TABLE IF NOT EXISTS sync_conflicts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    logged_at TEXT NOT NULL,
    sync_session_id TEXT NOT NULL,
    article_id TEXT NOT NULL,
    inoreader_id TEXT NOT NULL,
    conflict_type TEXT NOT NULL,
    resolution TEXT NOT NULL,
    payload TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sync_conflicts_session
    ON sync_conflicts(sync_session_id);

CREATE TABLE IF NOT EXISTS deletion_tracking (
    entity_id TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    deleted_at TEXT NOT NULL,
    reason TEXT NOT NULL,
    PRIMARY KEY (entity_id, entity_type)
);
CREATE INDEX IF NOT EXISTS idx_deletion_tracking_deleted_at
    ON deletion_tracking(deleted_at);

CREATE TABLE IF NOT EXISTS system_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
""",
        down_sql="""
DROP TABLE IF EXISTS system_config;
DROP INDEX IF EXISTS idx_deletion_tracking_deleted_at;
DROP TABLE IF EXISTS deletion_tracking;
DROP INDEX IF EXISTS idx_sync_conflicts_session;
DROP TABLE IF EXISTS sync_conflicts;
DROP TABLE IF EXISTS api_usage;
DROP INDEX IF EXISTS idx_sync_queue_pending;
DROP TABLE IF EXISTS sync_queue;
DROP INDEX IF EXISTS idx_articles_read_starred;
DROP INDEX IF EXISTS idx_articles_feed_id;
DROP TABLE IF EXISTS articles;
DROP TABLE IF EXISTS feeds;
""",
    ),
    Migration(
        version=2,
        description="Seed retention and safety thresholds in system_config",
        up_sql="""
INSERT OR IGNORE INTO system_config (key, value, updated_at) VALUES
    ('articles_retention_limit', '1000', datetime('now')),
    ('max_articles_per_cleanup_batch', '1000', datetime('now')),
    ('max_ids_per_delete_operation', '200', datetime('now')),
    ('feed_deletion_safety_threshold', '0.5', datetime('now')),
    ('deletion_tracking_enabled', 'true', datetime('now')),
    ('deletion_tracking_retention_days', '90', datetime('now'));
""",
        down_sql="""
DELETE FROM system_config WHERE key IN (
    'articles_retention_limit',
    'max_articles_per_cleanup_batch',
    'max_ids_per_delete_operation',
    'feed_deletion_safety_threshold',
    'deletion_tracking_enabled',
    'deletion_tracking_retention_days'
);
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Manages SQLite schema migrations."""

    # SQL for schema version tracking table
    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration script fails.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.info("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
                self._conn.commit()
                applied.append(migration.version)

                self._log.info("migration_applied", version=migration.version)

            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Rollback to a specific version.

        Args:
            target_version: The version to rollback to.

        Returns:
            List of version numbers that were rolled back.

        Raises:
            ValueError: If target version is invalid.
            MigrationError: If a down script fails.
        """
        if target_version < 0:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        rolled_back: list[int] = []

        for migration in reversed(MIGRATIONS):
            if migration.version <= target_version:
                break
            if migration.version > self.get_current_version():
                continue

            self._log.info(
                "rolling_back_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.down_sql)
                self._conn.execute(
                    "DELETE FROM schema_version WHERE version = ?",
                    (migration.version,),
                )
                self._conn.commit()
                rolled_back.append(migration.version)
            except sqlite3.Error as e:
                self._log.error(
                    "rollback_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

        return rolled_back
