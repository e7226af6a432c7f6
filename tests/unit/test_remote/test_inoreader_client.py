"""Unit tests for the remote API client."""

from typing import Any

import httpx
import pytest

from src.remote.client import InoreaderClient
from src.remote.errors import (
    RateLimitedError,
    RemoteApiError,
    RemoteAuthError,
    RemoteErrorClass,
    UnknownActionError,
)
from src.remote.models import RateLimitSnapshot
from tests.helpers.remote import FakeRequester, reader_handler


API_BASE = "https://reader.example.com/api/0"


class TestEditTag:
    """Tests for edit_tag."""

    def test_read_batch(self) -> None:
        """Test a read batch applies the read tag to every id."""
        requester = FakeRequester()
        client = InoreaderClient(requester, api_base=API_BASE)

        client.edit_tag("read", ["a", "b", "c"])

        assert len(requester.calls) == 1
        call = requester.calls[0]
        assert call.method == "POST"
        assert call.url == f"{API_BASE}/edit-tag"
        assert call.item_ids == ["a", "b", "c"]
        assert call.kwargs["data"]["a"] == "user/-/state/com.google/read"

    def test_unstar_removes_tag(self) -> None:
        """Test unstar uses the remove parameter."""
        requester = FakeRequester()
        client = InoreaderClient(requester, api_base=API_BASE)

        client.edit_tag("unstar", ["a"])

        data = requester.calls[0].kwargs["data"]
        assert data["r"] == "user/-/state/com.google/starred"
        assert "a" not in data

    def test_empty_ids_rejected(self) -> None:
        """Test an empty batch is refused before any request."""
        requester = FakeRequester()
        client = InoreaderClient(requester, api_base=API_BASE)

        with pytest.raises(ValueError, match="at least one"):
            client.edit_tag("read", [])
        assert requester.calls == []

    def test_unknown_action_sends_nothing(self) -> None:
        """Test an unmapped action fails before any request."""
        requester = FakeRequester()
        client = InoreaderClient(requester, api_base=API_BASE)

        with pytest.raises(UnknownActionError):
            client.edit_tag("archive", ["a"])
        assert requester.calls == []

    @pytest.mark.parametrize(
        ("status", "error_type", "error_class"),
        [
            (401, RemoteAuthError, RemoteErrorClass.AUTH),
            (429, RateLimitedError, RemoteErrorClass.RATE_LIMITED),
            (400, RemoteApiError, RemoteErrorClass.CLIENT),
            (502, RemoteApiError, RemoteErrorClass.TRANSIENT),
        ],
    )
    def test_error_status_raises(
        self,
        status: int,
        error_type: type[RemoteApiError],
        error_class: RemoteErrorClass,
    ) -> None:
        """Test non-success responses raise the matching error."""
        client = InoreaderClient(FakeRequester(status_code=status), api_base=API_BASE)

        with pytest.raises(error_type) as exc_info:
            client.edit_tag("read", ["a"])

        assert exc_info.value.error_class == error_class
        assert exc_info.value.status_code == status


class TestRateLimitListener:
    """Tests for quota header forwarding."""

    def test_listener_sees_headers_on_success(self) -> None:
        """Test quota headers are forwarded after a successful call."""
        seen: list[RateLimitSnapshot] = []
        requester = FakeRequester(
            headers={"X-Reader-Zone1-Usage": "10", "X-Reader-Zone1-Limit": "100"}
        )
        client = InoreaderClient(requester, api_base=API_BASE, rate_limit_listener=seen.append)

        client.edit_tag("read", ["a"])

        assert len(seen) == 1
        assert seen[0].zone1_usage == 10
        assert seen[0].zone1_limit == 100

    def test_listener_sees_headers_on_failure(self) -> None:
        """Test quota headers are forwarded even when the call fails."""
        seen: list[RateLimitSnapshot] = []
        requester = FakeRequester(
            status_code=429,
            headers={"X-Reader-Zone1-Usage": "100", "X-Reader-Limits-Reset-After": "60"},
        )
        client = InoreaderClient(requester, api_base=API_BASE)
        client.set_rate_limit_listener(seen.append)

        with pytest.raises(RateLimitedError) as exc_info:
            client.edit_tag("read", ["a"])

        assert seen[0].zone1_usage == 100
        assert exc_info.value.retry_after == 60

    def test_listener_skipped_without_headers(self) -> None:
        """Test responses without quota headers are not forwarded."""
        seen: list[RateLimitSnapshot] = []
        client = InoreaderClient(
            FakeRequester(), api_base=API_BASE, rate_limit_listener=seen.append
        )

        client.edit_tag("read", ["a"])

        assert seen == []


class TestReads:
    """Tests for subscription and stream fetches."""

    def test_list_subscriptions(self) -> None:
        """Test subscriptions are parsed and unknown fields ignored."""
        requester = FakeRequester(
            handler=reader_handler(
                [{"id": "feed/1", "title": "One", "htmlUrl": "http://x"}], []
            )
        )
        client = InoreaderClient(requester, api_base=API_BASE)

        subs = client.list_subscriptions()

        assert [(s.id, s.title) for s in subs] == [("feed/1", "One")]

    def test_stream_items_params(self) -> None:
        """Test count and read exclusion are passed as query params."""
        requester = FakeRequester(
            handler=reader_handler([], [{"id": "item/1", "title": "T"}])
        )
        client = InoreaderClient(requester, api_base=API_BASE)

        items = client.stream_items(50, exclude_read=True)

        assert [item.id for item in items] == ["item/1"]
        params = requester.calls[0].kwargs["params"]
        assert params == {"n": 50, "xt": "user/-/state/com.google/read"}

    def test_invalid_json(self) -> None:
        """Test a malformed body raises a remote error."""

        def handler(method: str, url: str, kwargs: dict[str, Any]) -> httpx.Response:
            return httpx.Response(200, text="not json")

        client = InoreaderClient(FakeRequester(handler=handler), api_base=API_BASE)

        with pytest.raises(RemoteApiError, match="invalid JSON"):
            client.list_subscriptions()
