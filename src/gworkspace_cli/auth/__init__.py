"""OAuth authentication for gws.

This package provides the OAuth2 + PKCE login flow and the credential
lifecycle for the Google Workspace CLI: locked atomic token storage,
refresh-token preservation, revocation, and per-service scopes.

Quick Start:
    ```python
    from gworkspace_cli.auth import OAuthManager

    manager = OAuthManager()

    # Authenticate
    token = await manager.authenticate(
        services=["gmail"],
        client_id="your-client-id",
        client_secret="your-client-secret"  # pragma: allowlist secret
    )

    # Describe the stored token
    report = manager.status_report(client_id, client_secret)
    ```
"""

from gworkspace_cli.auth.exceptions import (
    AuthFlowError,
    AuthorizationDeniedError,
    FlowTimeoutError,
    LockTimeoutError,
    NotAuthenticatedError,
    RefreshFailedError,
    RevocationError,
    StateMismatchError,
    TokenExchangeError,
    TokenParseError,
    WorkspaceAuthError,
)
from gworkspace_cli.auth.models import OAuthToken, TokenStatus
from gworkspace_cli.auth.oauth_manager import OAuthManager
from gworkspace_cli.auth.scopes import ScopeRegistry
from gworkspace_cli.auth.token_storage import TokenStorage, merge_tokens

__all__ = [
    "OAuthManager",
    "TokenStorage",
    "OAuthToken",
    "TokenStatus",
    "ScopeRegistry",
    "merge_tokens",
    "WorkspaceAuthError",
    "NotAuthenticatedError",
    "TokenParseError",
    "LockTimeoutError",
    "AuthFlowError",
    "AuthorizationDeniedError",
    "FlowTimeoutError",
    "StateMismatchError",
    "TokenExchangeError",
    "RefreshFailedError",
    "RevocationError",
]
