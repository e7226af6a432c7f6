"""Unit tests for store models."""

from datetime import UTC, date, datetime, timedelta

import pytest
from pydantic import ValidationError

from src.store.models import (
    ActionType,
    ApiUsageRecord,
    DeletionTrackingRecord,
    EntityType,
    SyncQueueItem,
    SyncQueueStats,
)


NOW = datetime(2017, 6, 13, tzinfo=UTC)


class TestSyncQueueItem:
    """Tests for SyncQueueItem model."""

    def test_unknown_action_is_accepted(self) -> None:
        """Test rows with unmapped actions still load."""
        item = SyncQueueItem(id=1, action_type="archive", inoreader_id="x", created_at=NOW)
        assert item.action_type == "archive"

    def test_age_seconds(self) -> None:
        """Test age is measured from created_at."""
        item = SyncQueueItem(id=1, action_type="read", inoreader_id="x", created_at=NOW)
        assert item.age_seconds(NOW + timedelta(minutes=16)) == 960.0

    def test_negative_attempts_rejected(self) -> None:
        """Test sync_attempts cannot go below zero."""
        with pytest.raises(ValidationError):
            SyncQueueItem(
                id=1, action_type="read", inoreader_id="x", created_at=NOW, sync_attempts=-1
            )

    def test_empty_remote_id_rejected(self) -> None:
        """Test inoreader_id is required to be non-empty."""
        with pytest.raises(ValidationError):
            SyncQueueItem(id=1, action_type="read", inoreader_id="", created_at=NOW)

    def test_frozen(self) -> None:
        """Test queue items are immutable."""
        item = SyncQueueItem(id=1, action_type="read", inoreader_id="x", created_at=NOW)
        with pytest.raises(ValidationError):
            item.sync_attempts = 2  # type: ignore[misc]


class TestEnums:
    """Tests for store enums."""

    def test_action_values(self) -> None:
        """Test the four mutation kinds."""
        assert [a.value for a in ActionType] == ["read", "unread", "star", "unstar"]

    def test_action_from_string(self) -> None:
        """Test parsing rejects unknown actions."""
        assert ActionType("star") is ActionType.STAR
        with pytest.raises(ValueError):
            ActionType("archive")


class TestOtherModels:
    """Tests for usage, tracking and stats models."""

    def test_usage_defaults(self) -> None:
        """Test quota columns default to None."""
        record = ApiUsageRecord(service="inoreader", date=date(2017, 6, 13))
        assert record.count == 0
        assert record.zone1_usage is None

    def test_tracking_record(self) -> None:
        """Test tracking records carry type and reason."""
        record = DeletionTrackingRecord(
            entity_id="item/1", entity_type=EntityType.ARTICLE, reason="read_retention"
        )
        assert record.entity_type == EntityType.ARTICLE
        assert record.deleted_at.tzinfo is not None

    def test_stats_defaults(self) -> None:
        """Test optional stats default to empty."""
        stats = SyncQueueStats(total_pending=0, failed_items=0)
        assert stats.oldest_item is None
        assert stats.dead_lettered == 0
