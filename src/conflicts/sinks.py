"""Append-only destinations for conflict log entries."""

import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from src.conflicts.models import ConflictLogEntry
from src.store.store import SyncStore


logger = structlog.get_logger()


@runtime_checkable
class ConflictLogSink(Protocol):
    """Write-only structured log: one record per call, no update or delete."""

    def append(self, entry: ConflictLogEntry) -> None:
        """Persist one entry.

        Raises:
            Exception: Implementations may raise on I/O failure; callers
                log and continue.
        """
        ...


class JsonlConflictLogSink:
    """Appends entries as JSON lines to a file."""

    def __init__(self, path: Path) -> None:
        """Initialize the sink.

        Args:
            path: Log file; parent directories are created on first write.
        """
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Log file path."""
        return self._path

    def append(self, entry: ConflictLogEntry) -> None:
        """Append one JSON line."""
        line = entry.model_dump_json() + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)


class StoreConflictLogSink:
    """Appends entries to the sync_conflicts table."""

    def __init__(self, store: SyncStore) -> None:
        self._store = store

    def append(self, entry: ConflictLogEntry) -> None:
        """Insert one row."""
        self._store.append_conflict(
            sync_session_id=entry.sync_session_id,
            article_id=entry.article_id,
            inoreader_id=entry.inoreader_id,
            conflict_type=entry.conflict_type.value,
            resolution=entry.resolution.value,
            payload=entry.model_dump_json(),
        )
