"""Refreshing token source shared by all API clients in a process."""

import logging
import threading
from collections.abc import Callable, Generator

import httpx
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from gworkspace_cli.auth.exceptions import RefreshFailedError
from gworkspace_cli.auth.models import OAuthToken, credentials_to_token

logger = logging.getLogger(__name__)


class RefreshingTokenSource:
    """Yields a currently valid token, refreshing it when it has expired.

    Refreshes are serialized so concurrent callers trigger at most one
    request to the token endpoint.

    Attributes:
        credentials: google-auth credentials being refreshed.
    """

    def __init__(
        self,
        credentials: Credentials,
        on_refresh: Callable[[OAuthToken], None] | None = None,
        request_factory: Callable[[], Request] = Request,
    ) -> None:
        """Initialize the token source.

        Args:
            credentials: Credentials built from the persisted token.
            on_refresh: Called with the new token whenever the access token changes.
            request_factory: Builds the transport used for refreshing.
        """
        self.credentials = credentials
        self._on_refresh = on_refresh
        self._request_factory = request_factory
        self._lock = threading.Lock()
        self._last_access_token = credentials.token

    def token(self) -> OAuthToken:
        """Return a valid token, refreshing first if needed.

        Raises:
            RefreshFailedError: If the token is expired and cannot be refreshed.
        """
        with self._lock:
            if not self.credentials.valid:
                self._refresh()

            token = credentials_to_token(self.credentials)
            changed = token.access_token != self._last_access_token
            self._last_access_token = token.access_token

        if changed and self._on_refresh is not None:
            self._on_refresh(token)
        return token

    def _refresh(self) -> None:
        if not self.credentials.refresh_token:
            raise RefreshFailedError("token expired and no refresh token is available")

        logger.info("Access token expired, refreshing")
        try:
            self.credentials.refresh(self._request_factory())
        except (RefreshError, TransportError) as e:
            raise RefreshFailedError(f"token refresh failed: {e}") from e


class TokenSourceAuth(httpx.Auth):
    """httpx auth that sets the bearer header from a token source."""

    def __init__(self, token_source: RefreshingTokenSource) -> None:
        self._token_source = token_source

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._token_source.token()
        request.headers["Authorization"] = f"{token.token_type} {token.access_token}"
        yield request
