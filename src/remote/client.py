"""Client for the remote feed-aggregation API."""

from collections.abc import Callable, Sequence
from http import HTTPStatus
from typing import Any

import httpx
import structlog

from src.remote.auth import AuthenticatedRequester
from src.remote.constants import (
    DEFAULT_API_BASE,
    EDIT_TAG_PATH,
    READ_TAG,
    READING_LIST_PATH,
    SUBSCRIPTION_LIST_PATH,
)
from src.remote.errors import RemoteApiError, error_for_status
from src.remote.models import (
    RateLimitSnapshot,
    RemoteItem,
    RemoteSubscription,
    tag_for_action,
)


logger = structlog.get_logger()


class InoreaderClient:
    """Thin wrapper over the reader API endpoints used by the sync engine.

    Every response (successful or not) is offered to ``rate_limit_listener``
    so quota headers can be recorded even when a call fails.
    """

    def __init__(
        self,
        requester: AuthenticatedRequester,
        api_base: str = DEFAULT_API_BASE,
        rate_limit_listener: Callable[[RateLimitSnapshot], None] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            requester: Source of authenticated requests.
            api_base: Reader API base URL.
            rate_limit_listener: Called with the parsed quota headers of
                every response.
        """
        self._requester = requester
        self._api_base = api_base.rstrip("/")
        self._rate_limit_listener = rate_limit_listener
        self._log = logger.bind(component="remote", subcomponent="client")

    def set_rate_limit_listener(
        self, listener: Callable[[RateLimitSnapshot], None] | None
    ) -> None:
        """Replace the quota header listener."""
        self._rate_limit_listener = listener

    def _request(
        self, method: str, path: str, context: str, **kwargs: Any
    ) -> httpx.Response:
        response = self._requester.make_authenticated_request(
            method, f"{self._api_base}{path}", **kwargs
        )

        snapshot = RateLimitSnapshot.from_headers(response.headers)
        if self._rate_limit_listener is not None and not snapshot.is_empty:
            self._rate_limit_listener(snapshot)

        if not response.is_success:
            self._log.warning(
                "remote_request_failed",
                context=context,
                status_code=response.status_code,
            )
            raise error_for_status(
                response.status_code, context, retry_after=snapshot.reset_after
            )
        return response

    def edit_tag(self, action_type: str, item_ids: Sequence[str]) -> None:
        """Apply or remove the read/starred tag on a set of items.

        Args:
            action_type: One of read, unread, star, unstar.
            item_ids: Remote item ids.

        Raises:
            ValueError: If ``item_ids`` is empty.
            UnknownActionError: If the action type has no tag mapping.
            RemoteApiError: If the call fails.
        """
        if not item_ids:
            msg = "edit_tag requires at least one item id"
            raise ValueError(msg)

        action_tag = tag_for_action(action_type)
        self._request(
            "POST",
            EDIT_TAG_PATH,
            "edit-tag",
            data={"i": list(item_ids), action_tag.param: action_tag.tag},
        )
        self._log.debug(
            "edit_tag_sent", action_type=action_type, item_count=len(item_ids)
        )

    def list_subscriptions(self) -> list[RemoteSubscription]:
        """Fetch the user's subscription list.

        Raises:
            RemoteApiError: If the call fails or the body is malformed.
        """
        response = self._request("GET", SUBSCRIPTION_LIST_PATH, "subscription/list")
        try:
            payload = response.json()
        except ValueError as exc:
            msg = "subscription/list returned invalid JSON"
            raise RemoteApiError(msg, status_code=HTTPStatus.OK) from exc
        return [
            RemoteSubscription.model_validate(sub)
            for sub in payload.get("subscriptions", [])
        ]

    def stream_items(self, count: int, exclude_read: bool = False) -> list[RemoteItem]:
        """Fetch the newest items of the reading list.

        Args:
            count: Maximum number of items.
            exclude_read: Ask the service to leave out read items.

        Raises:
            RemoteApiError: If the call fails or the body is malformed.
        """
        params: dict[str, str | int] = {"n": count}
        if exclude_read:
            params["xt"] = READ_TAG

        response = self._request(
            "GET", READING_LIST_PATH, "stream/contents", params=params
        )
        try:
            payload = response.json()
        except ValueError as exc:
            msg = "stream/contents returned invalid JSON"
            raise RemoteApiError(msg, status_code=HTTPStatus.OK) from exc
        return [RemoteItem.from_api(item) for item in payload.get("items", [])]
