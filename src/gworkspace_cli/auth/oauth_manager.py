"""OAuth manager for gws authentication.

This module ties the pieces of the authentication subsystem together for the
``gws auth`` commands: interactive login, logout with server-side revocation,
and status reporting with transparent refresh.

Environment Variables:
    GWS_CLIENT_ID: Google OAuth client ID (required for login and refresh)
    GWS_CLIENT_SECRET: Google OAuth client secret (required for login and refresh)
"""

import logging
from typing import TYPE_CHECKING, Any

import httpx

from gworkspace_cli.auth.exceptions import (
    NotAuthenticatedError,
    RefreshFailedError,
    RevocationError,
    TokenParseError,
)
from gworkspace_cli.auth.models import OAuthToken, TokenStatus
from gworkspace_cli.auth.oauth_flow import AuthorizationFlow
from gworkspace_cli.auth.revoke import revoke_token
from gworkspace_cli.auth.scopes import USERINFO_SERVICE, ScopeRegistry
from gworkspace_cli.auth.token_storage import TokenStorage, merge_tokens

if TYPE_CHECKING:
    from gworkspace_cli.client.factory import ClientFactory

logger = logging.getLogger(__name__)


def _format_expiry(token: OAuthToken) -> str | None:
    return token.expires_at.isoformat() if token.expires_at else None


class OAuthManager:
    """OAuth authentication manager for gws.

    Handles the complete OAuth2 lifecycle including authorization,
    token storage, refresh, and revocation.

    Attributes:
        storage: Token storage instance for persisting credentials.
        registry: Scope registry used to resolve --services.

    Example:
        ```python
        manager = OAuthManager()

        # Authenticate with Google for Gmail and Calendar only
        token = await manager.authenticate(
            services=["gmail", "calendar"],
            client_id="your-client-id",
            client_secret="your-client-secret",  # pragma: allowlist secret
        )

        # Check token status
        status, token = manager.get_status()
        ```
    """

    def __init__(
        self,
        storage: TokenStorage | None = None,
        registry: ScopeRegistry | None = None,
    ) -> None:
        """Initialize OAuth manager.

        Args:
            storage: Token storage instance. Creates default if not provided.
            registry: Scope registry. Creates default if not provided.
        """
        self.storage = storage or TokenStorage()
        self.registry = registry or ScopeRegistry()

    def resolve_scopes(self, services: list[str] | None) -> list[str]:
        """Return the scopes to request for ``services``.

        Args:
            services: Services to authorize. None or empty requests everything.

        Raises:
            ValueError: If any service name is unknown.
        """
        if not services:
            return self.registry.all_scopes

        unknown = self.registry.validate_services(services)
        if unknown:
            raise ValueError(
                f"Unknown services: {', '.join(unknown)}. "
                f"Valid services: {', '.join(self.registry.services)}"
            )
        return self.registry.scopes_for_services(services)

    def _create_flow(
        self, client_id: str, client_secret: str, scopes: list[str]
    ) -> AuthorizationFlow:
        return AuthorizationFlow(client_id, client_secret, scopes)

    async def authenticate(
        self,
        services: list[str] | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> OAuthToken:
        """Perform the interactive OAuth2 login and persist the result.

        The new token is merged with any stored one so an existing refresh
        token survives a re-login that does not issue a new one.

        Args:
            services: Services to authorize. Requests all scopes if not given.
            client_id: Google OAuth client ID.
            client_secret: Google OAuth client secret.

        Returns:
            The stored token.

        Raises:
            ValueError: If client ID/secret are missing or a service is unknown.
            AuthFlowError: If the browser flow fails.
        """
        if not client_id or not client_secret:
            raise ValueError(
                "Client ID and secret required. "
                "Pass --client-id/--client-secret or set GWS_CLIENT_ID and "
                "GWS_CLIENT_SECRET environment variables."
            )

        scopes = self.resolve_scopes(services)
        flow = self._create_flow(client_id, client_secret, scopes)
        token = await flow.run()

        try:
            existing = self.storage.load()
        except (NotAuthenticatedError, TokenParseError):
            existing = None
        token = merge_tokens(existing, token)

        self.storage.save(token)
        self.storage.save_granted_services(list(services or []))
        logger.info(f"Stored token at {self.storage.token_path}")
        return token

    async def logout(self, client: httpx.AsyncClient | None = None) -> dict[str, Any]:
        """Revoke the stored token (best effort) and delete it locally.

        Returns:
            Result document with "status" and "message".

        Raises:
            LockTimeoutError: If the token file is locked by another process.
            OSError: If the token file cannot be removed.
        """
        if not self.storage.exists():
            return {"status": "success", "message": "Not authenticated (no token found)"}

        revoked = False
        try:
            token = self.storage.load()
        except TokenParseError as e:
            logger.warning(f"Skipping server-side revocation: {e}")
        else:
            try:
                await revoke_token(token, client=client)
                revoked = True
            except RevocationError as e:
                logger.warning(f"Failed to revoke token server-side: {e}")

        self.storage.delete()
        return {"status": "success", "message": "Logged out successfully", "revoked": revoked}

    def get_status(self) -> tuple[TokenStatus, OAuthToken | None]:
        """Get the status of the stored token.

        Returns:
            Tuple of (TokenStatus, OAuthToken or None).
        """
        status = self.storage.get_status()
        if status in (TokenStatus.MISSING, TokenStatus.INVALID):
            return (status, None)
        return (status, self.storage.load())

    def status_report(
        self, client_id: str | None = None, client_secret: str | None = None
    ) -> dict[str, Any]:
        """Describe the authentication state, refreshing the token if needed.

        Never raises for authentication problems: they are reported in the
        returned document.
        """
        from gworkspace_cli.client.factory import ClientFactory

        status, _ = self.get_status()

        if status == TokenStatus.MISSING:
            return {"authenticated": False, "message": "Not authenticated, run: gws auth login"}
        if status == TokenStatus.INVALID:
            return {
                "authenticated": False,
                "message": "Token file is corrupt, run: gws auth login",
            }

        try:
            factory = ClientFactory.from_storage(
                self.storage, client_id, client_secret, registry=self.registry
            )
        except RefreshFailedError as e:
            logger.info(f"Refresh failed: {e}")
            return {
                "authenticated": False,
                "message": "Token expired and refresh failed, run: gws auth login",
            }
        except (NotAuthenticatedError, TokenParseError) as e:
            return {"authenticated": False, "message": str(e)}

        try:
            token = factory.token_source.token()
            report: dict[str, Any] = {
                "authenticated": True,
                "expires": _format_expiry(token),
                "services": factory.granted_services or "all",
            }
            report.update(self._fetch_user(factory))
            return report
        finally:
            factory.close()

    def _fetch_user(self, factory: "ClientFactory") -> dict[str, Any]:
        try:
            response = factory.client(USERINFO_SERVICE).get("/userinfo")
            response.raise_for_status()
        except (httpx.HTTPError, RefreshFailedError) as e:
            logger.info(f"Failed to fetch user info: {e}")
            return {"user": "unknown (failed to fetch user info)"}
        return {"email": response.json().get("email")}
