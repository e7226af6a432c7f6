"""Data models for the sync store."""

from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ActionType(str, Enum):
    """Local mutation kinds that are pushed to the remote service."""

    READ = "read"
    UNREAD = "unread"
    STAR = "star"
    UNSTAR = "unstar"


class EntityType(str, Enum):
    """Entity kinds recorded in deletion tracking."""

    ARTICLE = "article"
    FEED = "feed"


class SyncQueueItem(BaseModel):
    """Pending local mutation awaiting push to the remote service.

    ``action_type`` is kept as a plain string: rows written by other
    components are not guaranteed to hold a known action, and unknown
    ones must surface as permanent failures rather than parse errors.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(ge=1, description="Queue row id")
    action_type: Annotated[str, Field(min_length=1)]
    inoreader_id: Annotated[str, Field(min_length=1, description="Remote item id")]
    sync_attempts: int = Field(default=0, ge=0)
    created_at: datetime
    last_attempt_at: datetime | None = None
    dead_letter_reason: str | None = None

    def age_seconds(self, now: datetime) -> float:
        """Seconds elapsed since the row was created."""
        return (now - self.created_at).total_seconds()


class ApiUsageRecord(BaseModel):
    """Per-service, per-day remote call counter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    service: Annotated[str, Field(min_length=1)]
    date: date
    count: int = Field(default=0, ge=0)
    zone1_usage: int | None = None
    zone1_limit: int | None = None
    zone2_usage: int | None = None
    zone2_limit: int | None = None
    reset_after: int | None = None


class DeletionTrackingRecord(BaseModel):
    """Durable marker that an entity was removed on purpose."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    entity_id: Annotated[str, Field(min_length=1)]
    entity_type: EntityType
    deleted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    reason: Annotated[str, Field(min_length=1)]


class Feed(BaseModel):
    """Locally stored subscription."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int
    inoreader_id: Annotated[str, Field(min_length=1)]
    title: str = ""


class Article(BaseModel):
    """Locally stored article with its read/star state."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int
    inoreader_id: Annotated[str, Field(min_length=1)]
    feed_id: int | None = None
    title: str = ""
    published_at: datetime | None = None
    is_read: bool = False
    is_starred: bool = False
    last_local_update: datetime | None = None
    last_sync_update: datetime | None = None


class SyncQueueStats(BaseModel):
    """Snapshot of the sync queue for health and monitoring."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_pending: int = Field(ge=0, description="Rows still eligible for dispatch")
    failed_items: int = Field(ge=0, description="Rows that exhausted their retries")
    dead_lettered: int = Field(default=0, ge=0, description="Permanently failed rows")
    retry_pending: int = Field(
        default=0, ge=0, description="Eligible rows with at least one failed attempt"
    )
    oldest_item: datetime | None = Field(
        default=None, description="created_at of the oldest eligible row"
    )
