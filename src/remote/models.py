"""Data models for remote API payloads and headers."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from src.remote.constants import (
    READ_TAG,
    RESET_AFTER_HEADER,
    STARRED_TAG,
    ZONE1_LIMIT_HEADER,
    ZONE1_USAGE_HEADER,
    ZONE2_LIMIT_HEADER,
    ZONE2_USAGE_HEADER,
)
from src.remote.errors import UnknownActionError


class ActionTag(BaseModel):
    """edit-tag parameters for one action type.

    Attributes:
        param: ``a`` to apply the tag, ``r`` to remove it.
        tag: Stream tag identifier.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    param: Annotated[str, Field(pattern="^[ar]$")]
    tag: Annotated[str, Field(min_length=1)]


ACTION_TAGS: dict[str, ActionTag] = {
    "read": ActionTag(param="a", tag=READ_TAG),
    "unread": ActionTag(param="r", tag=READ_TAG),
    "star": ActionTag(param="a", tag=STARRED_TAG),
    "unstar": ActionTag(param="r", tag=STARRED_TAG),
}


def tag_for_action(action_type: str) -> ActionTag:
    """Look up the edit-tag parameters for an action type.

    Raises:
        UnknownActionError: If the action type has no mapping.
    """
    try:
        return ACTION_TAGS[action_type]
    except KeyError as exc:
        raise UnknownActionError(action_type) from exc


def _parse_header_int(value: str | None) -> int | None:
    """Parse counters like ``"1,234"`` or ``"3600.52"``."""
    if value is None:
        return None
    cleaned = value.replace(",", "").strip().split(".", 1)[0]
    try:
        return int(cleaned)
    except ValueError:
        return None


class RateLimitSnapshot(BaseModel):
    """Quota counters advertised by the remote service on a response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    zone1_usage: int | None = None
    zone1_limit: int | None = None
    zone2_usage: int | None = None
    zone2_limit: int | None = None
    reset_after: int | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RateLimitSnapshot":
        """Parse the X-Reader-* quota headers.

        Missing or unparseable headers are left as None.
        """
        return cls(
            zone1_usage=_parse_header_int(headers.get(ZONE1_USAGE_HEADER)),
            zone1_limit=_parse_header_int(headers.get(ZONE1_LIMIT_HEADER)),
            zone2_usage=_parse_header_int(headers.get(ZONE2_USAGE_HEADER)),
            zone2_limit=_parse_header_int(headers.get(ZONE2_LIMIT_HEADER)),
            reset_after=_parse_header_int(headers.get(RESET_AFTER_HEADER)),
        )

    @property
    def is_empty(self) -> bool:
        """True when no quota header was present."""
        return not self.to_zone_columns()

    def to_zone_columns(self) -> dict[str, int]:
        """Return the populated counters keyed by api_usage column."""
        return {
            name: value
            for name, value in self.model_dump().items()
            if value is not None
        }


class RemoteSubscription(BaseModel):
    """Entry from the remote subscription list."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Annotated[str, Field(min_length=1)]
    title: str = ""


class RemoteItem(BaseModel):
    """Article as reported by the remote reading-list stream."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1)]
    feed_id: str | None = None
    title: str = ""
    published_at: datetime | None = None
    is_read: bool = False
    is_starred: bool = False

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "RemoteItem":
        """Build from one element of a stream/contents ``items`` array."""
        categories = payload.get("categories") or []
        published = payload.get("published")
        origin = payload.get("origin") or {}
        return cls(
            id=payload["id"],
            feed_id=origin.get("streamId"),
            title=payload.get("title") or "",
            published_at=(
                datetime.fromtimestamp(int(published), tz=UTC)
                if published is not None
                else None
            ),
            is_read=READ_TAG in categories,
            is_starred=STARRED_TAG in categories,
        )
