"""Result models for cleanup runs."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CleanupStatus(str, Enum):
    """Overall outcome of a cleanup run."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


class FeedCleanupResult(BaseModel):
    """Outcome of removing feeds that vanished remotely."""

    model_config = ConfigDict(extra="forbid")

    candidates: int = 0
    feeds_deleted: int = 0
    articles_deleted: int = 0
    chunks_failed: int = 0
    safety_tripped: bool = False
    errors: list[str] = Field(default_factory=list)


class ArticleCleanupResult(BaseModel):
    """Outcome of trimming read articles beyond the retention limit."""

    model_config = ConfigDict(extra="forbid")

    candidates: int = 0
    articles_deleted: int = 0
    tracking_entries_created: int = 0
    chunks_processed: int = 0
    chunks_failed: int = 0
    errors: list[str] = Field(default_factory=list)


class CleanupResult(BaseModel):
    """Outcome of a full cleanup run."""

    model_config = ConfigDict(extra="forbid")

    status: CleanupStatus = CleanupStatus.SUCCESS
    feeds_deleted: int = 0
    feed_articles_deleted: int = 0
    articles_deleted: int = 0
    tracking_entries_created: int = 0
    tracking_entries_pruned: int = 0
    chunks_failed: int = 0
    safety_tripped: bool = False
    errors: list[str] = Field(default_factory=list)
