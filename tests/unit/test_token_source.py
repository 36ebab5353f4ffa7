"""Unit tests for the refreshing token source and its httpx auth."""

import threading
import time
from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import pytest
from google.auth.exceptions import RefreshError, TransportError

from gworkspace_cli.auth.exceptions import RefreshFailedError
from gworkspace_cli.auth.models import OAuthToken
from gworkspace_cli.client.token_source import RefreshingTokenSource, TokenSourceAuth


@pytest.mark.unit
class TestRefreshingTokenSource:
    """Tests for RefreshingTokenSource.token()."""

    def test_should_return_valid_token_without_refresh(
        self, mock_google_credentials: MagicMock
    ) -> None:
        """Verify a valid token is returned as is and no callback fires."""
        on_refresh = MagicMock()
        source = RefreshingTokenSource(mock_google_credentials, on_refresh=on_refresh)

        token = source.token()

        assert token.access_token == "mock_access_token"
        mock_google_credentials.refresh.assert_not_called()
        on_refresh.assert_not_called()

    def test_should_refresh_expired_token(
        self, make_refreshing_credentials: Callable[..., MagicMock]
    ) -> None:
        """Verify an expired token is refreshed and reported to the callback."""
        creds = make_refreshing_credentials()
        refreshed: list[OAuthToken] = []
        source = RefreshingTokenSource(
            creds, on_refresh=refreshed.append, request_factory=MagicMock
        )

        token = source.token()

        assert token.access_token == "refreshed_access_token"
        assert len(refreshed) == 1
        assert refreshed[0].access_token == "refreshed_access_token"
        # The renewal response carried no refresh token.
        assert refreshed[0].refresh_token is None

    def test_should_fire_callback_once_per_change(
        self, make_refreshing_credentials: Callable[..., MagicMock]
    ) -> None:
        """Verify repeated calls after a refresh do not re-notify."""
        creds = make_refreshing_credentials()
        on_refresh = MagicMock()
        source = RefreshingTokenSource(creds, on_refresh=on_refresh, request_factory=MagicMock)

        source.token()
        source.token()

        assert creds.refresh.call_count == 1
        on_refresh.assert_called_once()

    def test_should_fail_without_refresh_token(
        self, make_refreshing_credentials: Callable[..., MagicMock]
    ) -> None:
        """Verify an expired token with no refresh token cannot be renewed."""
        creds = make_refreshing_credentials(refresh_token=None)
        source = RefreshingTokenSource(creds, request_factory=MagicMock)

        with pytest.raises(RefreshFailedError, match="no refresh token"):
            source.token()

        creds.refresh.assert_not_called()

    @pytest.mark.parametrize("error", [RefreshError("invalid_grant"), TransportError("down")])
    def test_should_wrap_refresh_errors(
        self, make_refreshing_credentials: Callable[..., MagicMock], error: Exception
    ) -> None:
        """Verify google-auth failures become RefreshFailedError."""
        creds = make_refreshing_credentials()
        creds.refresh.side_effect = error
        source = RefreshingTokenSource(creds, request_factory=MagicMock)

        with pytest.raises(RefreshFailedError) as exc_info:
            source.token()

        assert exc_info.value.remediation == "gws auth login"
        assert exc_info.value.__cause__ is error

    def test_concurrent_callers_should_refresh_once(
        self, make_refreshing_credentials: Callable[..., MagicMock]
    ) -> None:
        """Verify parallel token() calls trigger a single refresh."""
        creds = make_refreshing_credentials()
        original = creds.refresh.side_effect

        def slow_refresh(request: object) -> None:
            time.sleep(0.05)
            original(request)

        creds.refresh.side_effect = slow_refresh
        source = RefreshingTokenSource(creds, request_factory=MagicMock)
        results: list[str] = []

        def call() -> None:
            results.append(source.token().access_token)

        threads = [threading.Thread(target=call) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert creds.refresh.call_count == 1
        assert results == ["refreshed_access_token"] * 8


@pytest.mark.unit
class TestTokenSourceAuth:
    """Tests for TokenSourceAuth."""

    def test_should_set_bearer_header(self, mock_google_credentials: MagicMock) -> None:
        """Verify outgoing requests carry the current access token."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        auth = TokenSourceAuth(RefreshingTokenSource(mock_google_credentials))
        with httpx.Client(transport=httpx.MockTransport(handler), auth=auth) as client:
            client.get("https://example.test/resource")

        assert seen[0].headers["Authorization"] == "Bearer mock_access_token"

    def test_should_propagate_refresh_failure(
        self, make_refreshing_credentials: Callable[..., MagicMock]
    ) -> None:
        """Verify a failed refresh surfaces to the caller and sends nothing."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        creds = make_refreshing_credentials(refresh_token=None)
        auth = TokenSourceAuth(RefreshingTokenSource(creds, request_factory=MagicMock))
        with httpx.Client(transport=httpx.MockTransport(handler), auth=auth) as client:
            with pytest.raises(RefreshFailedError):
                client.get("https://example.test/resource")

        assert seen == []
