"""Unit tests for the OAuth token manager."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from src.remote.auth import AuthenticatedRequester, TokenManager
from src.remote.errors import RemoteApiError, RemoteErrorClass, TokenRefreshError
from tests.helpers.time import FakeClock


API_URL = "https://www.inoreader.com/reader/api/0/subscription/list"
TOKEN_URL = "https://www.inoreader.com/oauth2/token"


class FakeOAuthServer:
    """MockTransport handler accepting only the current token."""

    def __init__(self, valid_token: str = "fresh", token_status: int = 200) -> None:
        self.valid_token = valid_token
        self.token_status = token_status
        self.token_requests: list[dict[str, list[str]]] = []
        self.api_auth_headers: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            self.token_requests.append(parse_qs(request.content.decode()))
            if self.token_status != 200:
                return httpx.Response(self.token_status)
            return httpx.Response(
                200,
                content=json.dumps({"access_token": self.valid_token, "expires_in": 3600}),
            )
        header = request.headers.get("Authorization", "")
        self.api_auth_headers.append(header)
        if header != f"Bearer {self.valid_token}":
            return httpx.Response(401)
        return httpx.Response(200, json={"subscriptions": []})


def make_manager(
    server: FakeOAuthServer,
    access_token: str | None = "stale",
    refresh_token: str | None = "refresh-me",
    clock: FakeClock | None = None,
) -> TokenManager:
    return TokenManager(
        access_token=access_token,
        refresh_token=refresh_token,
        client_id="client",
        client_secret="secret",
        http_client=httpx.Client(transport=httpx.MockTransport(server)),
        clock=clock or FakeClock(),
    )


class TestTokenManager:
    """Tests for make_authenticated_request."""

    def test_satisfies_requester_protocol(self) -> None:
        """Test the manager can be handed to the client."""
        manager = make_manager(FakeOAuthServer())
        assert isinstance(manager, AuthenticatedRequester)

    def test_valid_token_used_as_is(self) -> None:
        """Test no refresh happens when the token is accepted."""
        server = FakeOAuthServer(valid_token="stale")
        manager = make_manager(server)

        response = manager.make_authenticated_request("GET", API_URL)

        assert response.status_code == 200
        assert server.token_requests == []
        assert server.api_auth_headers == ["Bearer stale"]

    def test_refreshes_once_on_401(self) -> None:
        """Test a 401 triggers one refresh and one retry."""
        server = FakeOAuthServer(valid_token="fresh")
        manager = make_manager(server)

        response = manager.make_authenticated_request("GET", API_URL)

        assert response.status_code == 200
        assert len(server.token_requests) == 1
        assert server.token_requests[0]["grant_type"] == ["refresh_token"]
        assert server.api_auth_headers == ["Bearer stale", "Bearer fresh"]

    def test_missing_token_refreshed_up_front(self) -> None:
        """Test a missing access token is fetched before the first call."""
        server = FakeOAuthServer(valid_token="fresh")
        manager = make_manager(server, access_token=None)

        response = manager.make_authenticated_request("GET", API_URL)

        assert response.status_code == 200
        assert server.api_auth_headers == ["Bearer fresh"]

    def test_expired_token_refreshed_up_front(self) -> None:
        """Test a token past its expiry is refreshed before sending."""
        server = FakeOAuthServer(valid_token="fresh")
        clock = FakeClock()
        manager = make_manager(server, clock=clock)
        manager.refresh()
        server.valid_token = "fresher"
        clock.advance(seconds=3600)

        response = manager.make_authenticated_request("GET", API_URL)

        assert response.status_code == 200
        assert server.api_auth_headers == ["Bearer fresher"]
        assert len(server.token_requests) == 2

    def test_401_without_refresh_token_returned(self) -> None:
        """Test a 401 is passed back when no refresh is possible."""
        server = FakeOAuthServer(valid_token="fresh")
        manager = make_manager(server, refresh_token=None)

        response = manager.make_authenticated_request("GET", API_URL)

        assert response.status_code == 401
        assert server.token_requests == []

    def test_failed_refresh_raises(self) -> None:
        """Test a rejected refresh grant raises TokenRefreshError."""
        server = FakeOAuthServer(token_status=400)
        manager = make_manager(server, access_token=None)

        with pytest.raises(TokenRefreshError):
            manager.make_authenticated_request("GET", API_URL)

    def test_network_error_is_transient(self) -> None:
        """Test transport errors surface as transient remote errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        manager = TokenManager(
            access_token="token",
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )

        with pytest.raises(RemoteApiError) as exc_info:
            manager.make_authenticated_request("GET", API_URL)

        assert exc_info.value.error_class == RemoteErrorClass.TRANSIENT

    def test_refresh_without_refresh_token(self) -> None:
        """Test refresh() needs a refresh token."""
        manager = make_manager(FakeOAuthServer(), refresh_token=None)

        with pytest.raises(TokenRefreshError):
            manager.refresh()

    def test_expiry_margin(self) -> None:
        """Test a token inside the expiry margin counts as expired."""
        server = FakeOAuthServer(valid_token="fresh")
        clock = FakeClock()
        manager = make_manager(server, clock=clock)
        manager.refresh()
        clock.advance(seconds=3600 - 30)

        manager.make_authenticated_request("GET", API_URL)

        assert len(server.token_requests) == 2
        assert server.api_auth_headers == ["Bearer fresh"]
