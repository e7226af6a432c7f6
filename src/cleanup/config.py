"""Retention thresholds read from the system_config table."""

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError


logger = structlog.get_logger()

# system_config keys, named like the RetentionConfig fields
CONFIG_KEYS: tuple[str, ...] = (
    "articles_retention_limit",
    "max_articles_per_cleanup_batch",
    "max_ids_per_delete_operation",
    "feed_deletion_safety_threshold",
    "deletion_tracking_enabled",
    "deletion_tracking_retention_days",
)

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off"})


class RetentionConfig(BaseModel):
    """Cleanup thresholds.

    Attributes:
        articles_retention_limit: Article count kept after cleanup.
        max_articles_per_cleanup_batch: Articles considered per run.
        max_ids_per_delete_operation: Ids per delete statement.
        feed_deletion_safety_threshold: Largest fraction of feeds one run
            may delete.
        deletion_tracking_enabled: Whether article cleanup runs at all.
        deletion_tracking_retention_days: Age at which tracking rows are
            pruned.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    articles_retention_limit: int = Field(default=1000, ge=0)
    max_articles_per_cleanup_batch: int = Field(default=1000, ge=1)
    max_ids_per_delete_operation: int = Field(default=200, ge=1)
    feed_deletion_safety_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    deletion_tracking_enabled: bool = True
    deletion_tracking_retention_days: int = Field(default=90, ge=1)

    @classmethod
    def from_system_config(cls, values: Mapping[str, str]) -> "RetentionConfig":
        """Build from raw system_config strings.

        Missing keys take their default. A value that fails to parse or
        validate is replaced by its default with a warning.

        Args:
            values: system_config key/value pairs.
        """
        log = logger.bind(component="cleanup")
        defaults = cls()
        parsed: dict[str, Any] = {}

        for key in CONFIG_KEYS:
            raw = values.get(key)
            if raw is None:
                continue
            value = _coerce(raw, type(getattr(defaults, key)))
            if value is None:
                log.warning("retention_config_invalid", key=key, value=raw)
                continue
            try:
                cls.model_validate({key: value})
            except ValidationError:
                log.warning("retention_config_invalid", key=key, value=raw)
                continue
            parsed[key] = value

        return cls(**parsed)


def _coerce(raw: str, target: type) -> Any:
    text = raw.strip()
    if target is bool:
        lowered = text.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        return None
    try:
        return target(text)
    except ValueError:
        return None
