"""OAuth bearer-token handling for the remote API."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from http import HTTPStatus
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from src.remote.constants import TOKEN_ENDPOINT, TOKEN_EXPIRY_MARGIN_SECONDS
from src.remote.errors import RemoteApiError, RemoteErrorClass, TokenRefreshError


logger = structlog.get_logger()


@runtime_checkable
class AuthenticatedRequester(Protocol):
    """Anything that can send an authenticated request to the remote API.

    The sync engine treats token refresh as opaque and only depends on
    this capability.
    """

    def make_authenticated_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Send a request with a valid bearer token attached.

        Raises:
            RemoteApiError: On network errors or failed token refresh.
        """
        ...


class TokenManager:
    """Keeps an access token fresh and signs requests with it.

    The token is refreshed via the refresh-token grant when it is missing,
    about to expire, or rejected with 401 (at most once per request).
    """

    def __init__(
        self,
        access_token: str | None = None,
        refresh_token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
        token_endpoint: str = TOKEN_ENDPOINT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the token manager.

        Args:
            access_token: Current access token, if any.
            refresh_token: Long-lived refresh token.
            client_id: OAuth client id.
            client_secret: OAuth client secret.
            http_client: Client used for all calls (created when omitted).
            timeout: Per-request timeout in seconds.
            token_endpoint: OAuth token URL.
            clock: Callable returning the current UTC time.
        """
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None
        self._token_endpoint = token_endpoint
        self._clock = clock or (lambda: datetime.now(UTC))
        self._expires_at: datetime | None = None
        self._log = logger.bind(component="remote", subcomponent="auth")

    @property
    def can_refresh(self) -> bool:
        """Whether a refresh token is configured."""
        return bool(self._refresh_token)

    def close(self) -> None:
        """Close the underlying HTTP client if this manager created it."""
        if self._owns_client:
            self._client.close()

    def _needs_refresh(self) -> bool:
        if not self._access_token:
            return True
        if self._expires_at is None:
            return False
        margin = timedelta(seconds=TOKEN_EXPIRY_MARGIN_SECONDS)
        return self._clock() + margin >= self._expires_at

    def refresh(self) -> str:
        """Exchange the refresh token for a new access token.

        Returns:
            Fresh access token.

        Raises:
            TokenRefreshError: If no refresh token is configured or the
                grant fails.
        """
        if not self._refresh_token:
            msg = "No refresh token configured"
            raise TokenRefreshError(msg)

        try:
            response = self._client.post(
                self._token_endpoint,
                data={
                    "client_id": self._client_id or "",
                    "client_secret": self._client_secret or "",
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as exc:
            self._log.warning("oauth_token_refresh_network_error", error=str(exc))
            msg = f"Network error during token refresh: {exc}"
            raise TokenRefreshError(msg) from exc

        if response.status_code != HTTPStatus.OK:
            self._log.warning(
                "oauth_token_refresh_failed", status_code=response.status_code
            )
            msg = f"Token refresh failed with status {response.status_code}"
            raise TokenRefreshError(msg, status_code=response.status_code)

        data = response.json()
        access_token: str | None = data.get("access_token")
        if not access_token:
            msg = "No access_token in refresh response"
            raise TokenRefreshError(msg)

        self._access_token = access_token
        # Providers may rotate the refresh token
        self._refresh_token = data.get("refresh_token") or self._refresh_token
        expires_in = data.get("expires_in")
        self._expires_at = (
            self._clock() + timedelta(seconds=int(expires_in))
            if expires_in is not None
            else None
        )

        self._log.info("oauth_token_refreshed", expires_in=expires_in)
        return access_token

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {self._access_token}"
        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            msg = f"{method} {url} failed: {exc}"
            raise RemoteApiError(msg, error_class=RemoteErrorClass.TRANSIENT) from exc

    def make_authenticated_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Send a request with a valid bearer token attached.

        Args:
            method: HTTP method.
            url: Absolute URL.
            **kwargs: Passed through to ``httpx.Client.request``.

        Returns:
            The HTTP response, whatever its status.

        Raises:
            RemoteApiError: On network errors.
            TokenRefreshError: If a needed refresh fails.
        """
        if self._needs_refresh() and self.can_refresh:
            self.refresh()

        response = self._send(method, url, **kwargs)

        if response.status_code == HTTPStatus.UNAUTHORIZED and self.can_refresh:
            self._log.info("oauth_token_auto_refresh_attempt", url=url)
            self.refresh()
            response = self._send(method, url, **kwargs)

        return response
