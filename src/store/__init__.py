"""SQLite datastore for the sync engine.

This module provides persistent storage for:
- The sync queue of pending local mutations
- Per-service, per-day API usage counters
- The append-only conflict log table
- Deletion tracking and system_config thresholds
- Local feeds and articles
"""

from src.store.errors import (
    ConnectionError,
    MigrationError,
    StateStoreError,
    StoreOperationError,
)
from src.store.metrics import StoreMetrics
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
from src.store.store import SyncStore


__all__ = [
    # Errors
    "ConnectionError",
    "MigrationError",
    "StateStoreError",
    "StoreOperationError",
    # Metrics
    "StoreMetrics",
    # Models
    "ActionType",
    "ApiUsageRecord",
    "Article",
    "DeletionTrackingRecord",
    "EntityType",
    "Feed",
    "SyncQueueItem",
    "SyncQueueStats",
    # Store
    "SyncStore",
]
