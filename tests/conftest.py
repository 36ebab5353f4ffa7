"""Shared pytest fixtures for gworkspace-cli tests.

This module provides reusable fixtures for OAuth tokens, token storage,
Google credentials and the CLI runner.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from gworkspace_cli.auth.models import OAuthToken

# =============================================================================
# Environment isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_config_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the gws config dir at a temp directory and clear GWS_* variables."""
    config_home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    for name in ("GWS_CLIENT_ID", "GWS_CLIENT_SECRET", "GWS_SERVICES"):
        monkeypatch.delenv(name, raising=False)
    return config_home


# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def valid_token() -> OAuthToken:
    """Create a valid, non-expired OAuth token."""
    return OAuthToken(
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        scopes=[
            "https://www.googleapis.com/auth/calendar.events",
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/userinfo.email",
        ],
        token_type="Bearer",
    )


@pytest.fixture
def expired_token() -> OAuthToken:
    """Create an expired OAuth token."""
    return OAuthToken(
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        scopes=["https://www.googleapis.com/auth/calendar.events"],
        token_type="Bearer",
    )


# =============================================================================
# Token Storage Fixtures
# =============================================================================


@pytest.fixture
def temp_token_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for token storage tests."""
    token_dir = tmp_path / "gws"
    token_dir.mkdir(parents=True, mode=0o700)
    return token_dir


@pytest.fixture
def temp_token_path(temp_token_dir: Path) -> Path:
    """Get the path for a temporary token.json file."""
    return temp_token_dir / "token.json"


@pytest.fixture
def token_storage(temp_token_path: Path):
    """Create a TokenStorage instance with temporary storage."""
    from gworkspace_cli.auth.token_storage import TokenStorage

    return TokenStorage(token_path=temp_token_path)


# =============================================================================
# OAuth Manager Fixtures
# =============================================================================


@pytest.fixture
def oauth_manager(token_storage):
    """Create an OAuthManager with temporary storage."""
    from gworkspace_cli.auth.oauth_manager import OAuthManager

    return OAuthManager(storage=token_storage)


# =============================================================================
# Mock Google Credentials
# =============================================================================


@pytest.fixture
def mock_google_credentials() -> MagicMock:
    """Create a mock Google OAuth2 Credentials object."""
    mock_creds = MagicMock()
    mock_creds.token = "mock_access_token"
    mock_creds.refresh_token = "mock_refresh_token"
    mock_creds.expiry = datetime.now(timezone.utc) + timedelta(hours=1)
    mock_creds.expired = False
    mock_creds.valid = True
    mock_creds.scopes = ["https://www.googleapis.com/auth/calendar.events"]
    return mock_creds


@pytest.fixture
def make_refreshing_credentials() -> Callable[..., MagicMock]:
    """Build mock credentials that start invalid and become valid on refresh()."""

    def _make(
        new_access_token: str = "refreshed_access_token",
        new_refresh_token: str | None = None,
        refresh_token: str | None = "test_refresh_token",
    ) -> MagicMock:
        creds = MagicMock()
        creds.token = "expired_access_token"
        creds.refresh_token = refresh_token
        creds.expiry = datetime.now(timezone.utc) - timedelta(hours=1)
        creds.valid = False
        creds.scopes = ["https://www.googleapis.com/auth/calendar.events"]

        def _refresh(request: object) -> None:
            creds.token = new_access_token
            creds.refresh_token = new_refresh_token
            creds.expiry = datetime.now(timezone.utc) + timedelta(hours=1)
            creds.valid = True

        creds.refresh.side_effect = _refresh
        return creds

    return _make


# =============================================================================
# CLI
# =============================================================================


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()
