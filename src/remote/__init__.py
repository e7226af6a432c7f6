"""Remote feed-aggregation API access.

Provides the bearer-token requester, the reader API client, the error
taxonomy used by the retry policy, and quota header parsing.
"""

from src.remote.auth import AuthenticatedRequester, TokenManager
from src.remote.client import InoreaderClient
from src.remote.constants import INOREADER_SERVICE
from src.remote.errors import (
    RateLimitedError,
    RemoteApiError,
    RemoteAuthError,
    RemoteErrorClass,
    TokenRefreshError,
    UnknownActionError,
    classify_status,
)
from src.remote.models import (
    ACTION_TAGS,
    ActionTag,
    RateLimitSnapshot,
    RemoteItem,
    RemoteSubscription,
    tag_for_action,
)


__all__ = [
    # Auth
    "AuthenticatedRequester",
    "TokenManager",
    # Client
    "INOREADER_SERVICE",
    "InoreaderClient",
    # Errors
    "RateLimitedError",
    "RemoteApiError",
    "RemoteAuthError",
    "RemoteErrorClass",
    "TokenRefreshError",
    "UnknownActionError",
    "classify_status",
    # Models
    "ACTION_TAGS",
    "ActionTag",
    "RateLimitSnapshot",
    "RemoteItem",
    "RemoteSubscription",
    "tag_for_action",
]
