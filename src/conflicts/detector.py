"""Remote-wins conflict resolution for pulled article state."""

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime

import structlog

from src.conflicts.models import (
    ArticleState,
    ConflictLogEntry,
    ConflictSummary,
    ConflictType,
    Resolution,
)
from src.conflicts.sinks import ConflictLogSink
from src.conflicts.state_machine import ConflictState, ConflictStateMachine
from src.remote.models import RemoteItem
from src.store.models import Article


logger = structlog.get_logger()

# Conflict count above which the report recommends more frequent syncs
HIGH_CONFLICT_THRESHOLD = 10


def classify_conflict(local: ArticleState, remote: ArticleState) -> ConflictType | None:
    """Return the kind of divergence, or None when the states agree."""
    read_differs = local.read != remote.read
    starred_differs = local.starred != remote.starred
    if read_differs and starred_differs:
        return ConflictType.BOTH
    if read_differs:
        return ConflictType.READ_STATUS
    if starred_differs:
        return ConflictType.STARRED_STATUS
    return None


class ConflictDetector:
    """Applies the remote-wins policy and logs every divergence.

    One detector serves one sync session. Each diverged article goes
    through DIVERGED -> RESOLVED_REMOTE -> LOGGED exactly once.
    """

    def __init__(
        self,
        sync_session_id: str,
        sink: ConflictLogSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the detector.

        Args:
            sync_session_id: Pull session identifier.
            sink: Append-only destination for entries.
            clock: Callable returning the current UTC time.
        """
        self._session_id = sync_session_id
        self._sink = sink
        self._clock = clock or (lambda: datetime.now(UTC))
        self._entries: list[ConflictLogEntry] = []
        self._summary = ConflictSummary()
        self._log = logger.bind(component="conflicts", sync_session_id=sync_session_id)

    @property
    def sync_session_id(self) -> str:
        """Pull session identifier."""
        return self._session_id

    def detect(self, local: Article, remote: RemoteItem) -> ConflictLogEntry | None:
        """Compare one article and log the divergence if any.

        Args:
            local: Stored article.
            remote: Same article as reported by the remote service.

        Returns:
            The logged entry, or None when the states agree.
        """
        local_state = ArticleState(read=local.is_read, starred=local.is_starred)
        remote_state = ArticleState(read=remote.is_read, starred=remote.is_starred)
        conflict_type = classify_conflict(local_state, remote_state)
        if conflict_type is None:
            return None

        machine = ConflictStateMachine(str(local.id))
        entry = ConflictLogEntry(
            timestamp=self._clock(),
            sync_session_id=self._session_id,
            article_id=str(local.id),
            feed_id=str(local.feed_id) if local.feed_id is not None else None,
            inoreader_id=local.inoreader_id,
            conflict_type=conflict_type,
            local_value=local_state,
            remote_value=remote_state,
            resolution=Resolution.REMOTE,
            last_local_update=local.last_local_update,
            last_sync_update=local.last_sync_update,
        )
        machine.transition(ConflictState.RESOLVED_REMOTE)

        self._write(entry)
        machine.transition(ConflictState.LOGGED)

        self._entries.append(entry)
        self._summary.record(entry)
        return entry

    def process_batch(
        self,
        local_articles: Mapping[str, Article],
        remote_items: Iterable[RemoteItem],
    ) -> list[ConflictLogEntry]:
        """Detect conflicts for every remote item that exists locally.

        Args:
            local_articles: Stored articles keyed by remote id.
            remote_items: Pulled items.
        """
        found: list[ConflictLogEntry] = []
        for remote in remote_items:
            local = local_articles.get(remote.id)
            if local is None:
                continue
            entry = self.detect(local, remote)
            if entry is not None:
                found.append(entry)
        return found

    def _write(self, entry: ConflictLogEntry) -> None:
        self._log.info(
            "sync_conflict_detected",
            inoreader_id=entry.inoreader_id,
            conflict_type=entry.conflict_type.value,
            resolution=entry.resolution.value,
        )
        if self._sink is None:
            return
        try:
            self._sink.append(entry)
        except Exception as exc:  # noqa: BLE001
            self._log.warning(
                "conflict_log_write_failed",
                inoreader_id=entry.inoreader_id,
                error=str(exc),
            )

    def get_summary(self) -> ConflictSummary:
        """Return a copy of the session's counts."""
        return self._summary.model_copy()

    def get_conflicts(self) -> list[ConflictLogEntry]:
        """Return the session's entries in detection order."""
        return list(self._entries)

    def generate_report(self) -> str:
        """Render a plain-text report for the session."""
        summary = self._summary
        lines = [
            "=== Sync Conflict Report ===",
            f"Session ID: {self._session_id}",
            f"Timestamp: {self._clock().isoformat()}",
            "",
            f"Total Conflicts: {summary.total_conflicts}",
            f"  - Read Status: {summary.read_conflicts}",
            f"  - Starred Status: {summary.starred_conflicts}",
            f"  - Both: {summary.both_conflicts}",
            "",
            "Resolutions:",
            f"  - Local Wins: {summary.local_resolutions}",
            f"  - Remote Wins: {summary.remote_resolutions}",
            "",
            "Remote change timestamps are not available, so conflicts are",
            "detected by state comparison and the remote value always wins.",
        ]
        if summary.total_conflicts > HIGH_CONFLICT_THRESHOLD:
            lines.append("")
            lines.append("WARNING: High conflict rate detected. Consider more frequent syncs.")
            self._log.warning(
                "sync_conflict_rate_high", total_conflicts=summary.total_conflicts
            )
        return "\n".join(lines)
