"""Constants for the remote feed-aggregation API."""

from http import HTTPStatus


# Service name used for api_usage rows
INOREADER_SERVICE = "inoreader"

DEFAULT_API_BASE = "https://www.inoreader.com/reader/api/0"
TOKEN_ENDPOINT = "https://www.inoreader.com/oauth2/token"  # noqa: S105

EDIT_TAG_PATH = "/edit-tag"
SUBSCRIPTION_LIST_PATH = "/subscription/list"
READING_LIST_PATH = "/stream/contents/user/-/state/com.google/reading-list"

READ_TAG = "user/-/state/com.google/read"
STARRED_TAG = "user/-/state/com.google/starred"

# Refresh the access token this many seconds before it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60

AUTH_ERROR_STATUS_CODES = frozenset({HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN})

ZONE1_USAGE_HEADER = "X-Reader-Zone1-Usage"
ZONE1_LIMIT_HEADER = "X-Reader-Zone1-Limit"
ZONE2_USAGE_HEADER = "X-Reader-Zone2-Usage"
ZONE2_LIMIT_HEADER = "X-Reader-Zone2-Limit"
RESET_AFTER_HEADER = "X-Reader-Limits-Reset-After"
