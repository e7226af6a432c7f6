"""Data models for the conflict log."""

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ConflictType(str, Enum):
    """Which part of an article's state diverged."""

    READ_STATUS = "read_status"
    STARRED_STATUS = "starred_status"
    BOTH = "both"


class Resolution(str, Enum):
    """Side whose value was kept."""

    LOCAL = "local"
    REMOTE = "remote"


REMOTE_WINS_NOTE = (
    "Remote wins: local changes overwritten (no remote per-field timestamps)"
)


class ArticleState(BaseModel):
    """Read/starred pair compared during a pull."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    read: bool
    starred: bool


class ConflictLogEntry(BaseModel):
    """One divergence between local and remote article state.

    Entries are appended to a sink and never updated or deleted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: datetime
    sync_session_id: Annotated[str, Field(min_length=1)]
    article_id: Annotated[str, Field(min_length=1)]
    feed_id: str | None = None
    inoreader_id: Annotated[str, Field(min_length=1)]
    conflict_type: ConflictType
    local_value: ArticleState
    remote_value: ArticleState
    resolution: Resolution = Resolution.REMOTE
    last_local_update: datetime | None = None
    last_sync_update: datetime | None = None
    note: str = REMOTE_WINS_NOTE


class ConflictSummary(BaseModel):
    """Per-session conflict counts."""

    model_config = ConfigDict(extra="forbid")

    total_conflicts: int = 0
    read_conflicts: int = 0
    starred_conflicts: int = 0
    both_conflicts: int = 0
    local_resolutions: int = 0
    remote_resolutions: int = 0

    def record(self, entry: ConflictLogEntry) -> None:
        """Count one entry."""
        self.total_conflicts += 1
        if entry.conflict_type == ConflictType.READ_STATUS:
            self.read_conflicts += 1
        elif entry.conflict_type == ConflictType.STARRED_STATUS:
            self.starred_conflicts += 1
        else:
            self.both_conflicts += 1

        if entry.resolution == Resolution.REMOTE:
            self.remote_resolutions += 1
        else:
            self.local_resolutions += 1
