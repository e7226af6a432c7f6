"""Cleanup and retention engine.

Deletes feeds that vanished remotely (behind a safety threshold) and old
read articles, recording each deletion so a later pull does not re-import it.
"""

from src.cleanup.config import CONFIG_KEYS, RetentionConfig
from src.cleanup.models import (
    ArticleCleanupResult,
    CleanupResult,
    CleanupStatus,
    FeedCleanupResult,
)
from src.cleanup.service import CleanupService


__all__ = [
    "ArticleCleanupResult",
    "CONFIG_KEYS",
    "CleanupResult",
    "CleanupService",
    "CleanupStatus",
    "FeedCleanupResult",
    "RetentionConfig",
]
