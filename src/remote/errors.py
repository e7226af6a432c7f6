"""Error taxonomy for remote API calls.

Every failure raised by the remote client carries a ``RemoteErrorClass`` so
the sync engine can decide between retrying on the next tick and
dead-lettering the affected queue rows.
"""

from enum import Enum
from http import HTTPStatus

from src.remote.constants import AUTH_ERROR_STATUS_CODES


class RemoteErrorClass(str, Enum):
    """Classification of a remote failure."""

    TRANSIENT = "transient"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    CLIENT = "client"
    PERMANENT = "permanent"


class RemoteApiError(Exception):
    """Remote API call failure.

    Attributes:
        status_code: HTTP status code (0 for network errors).
        error_class: Classification used by the retry policy.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_class: RemoteErrorClass = RemoteErrorClass.TRANSIENT,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_class = error_class

    @property
    def retryable(self) -> bool:
        """Whether the failed items may be attempted again."""
        return self.error_class != RemoteErrorClass.PERMANENT


class RemoteAuthError(RemoteApiError):
    """401/403 from the remote service."""

    def __init__(self, message: str, status_code: int = HTTPStatus.UNAUTHORIZED) -> None:
        super().__init__(message, status_code=status_code, error_class=RemoteErrorClass.AUTH)


class TokenRefreshError(RemoteAuthError):
    """OAuth refresh-token grant failure."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message, status_code=status_code)


class RateLimitedError(RemoteApiError):
    """429 from the remote service.

    Attributes:
        retry_after: Seconds until the quota resets, when advertised.
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(
            message,
            status_code=HTTPStatus.TOO_MANY_REQUESTS,
            error_class=RemoteErrorClass.RATE_LIMITED,
        )
        self.retry_after = retry_after


class UnknownActionError(RemoteApiError):
    """Queue row carries an action type with no tag mapping."""

    def __init__(self, action_type: str) -> None:
        super().__init__(
            f"Unknown action type: {action_type!r}",
            error_class=RemoteErrorClass.PERMANENT,
        )
        self.action_type = action_type


def classify_status(status_code: int) -> RemoteErrorClass:
    """Map a non-success HTTP status code to an error class."""
    if status_code in AUTH_ERROR_STATUS_CODES:
        return RemoteErrorClass.AUTH
    if status_code == HTTPStatus.TOO_MANY_REQUESTS:
        return RemoteErrorClass.RATE_LIMITED
    if HTTPStatus.BAD_REQUEST <= status_code < HTTPStatus.INTERNAL_SERVER_ERROR:
        return RemoteErrorClass.CLIENT
    return RemoteErrorClass.TRANSIENT


def error_for_status(
    status_code: int, context: str, retry_after: int | None = None
) -> RemoteApiError:
    """Build the exception matching a non-success HTTP status code.

    Args:
        status_code: HTTP status code of the response.
        context: Short description of the call for the message.
        retry_after: Seconds until quota reset, used for 429.
    """
    msg = f"{context} returned {status_code}"
    error_class = classify_status(status_code)
    if error_class == RemoteErrorClass.AUTH:
        return RemoteAuthError(msg, status_code=status_code)
    if error_class == RemoteErrorClass.RATE_LIMITED:
        return RateLimitedError(msg, retry_after=retry_after)
    return RemoteApiError(msg, status_code=status_code, error_class=error_class)
