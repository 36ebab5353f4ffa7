"""Server-side token revocation.

Revoking the refresh token invalidates both it and any access token issued
from it, so it is preferred. The access token is only revoked when there is
no refresh token.
"""

import logging

import httpx

from gworkspace_cli.auth.exceptions import RevocationError
from gworkspace_cli.auth.models import OAuthToken

logger = logging.getLogger(__name__)

GOOGLE_REVOKE_ENDPOINT = "https://oauth2.googleapis.com/revoke"
DEFAULT_REVOKE_TIMEOUT = 10.0


async def revoke_token(
    token: OAuthToken | None,
    *,
    endpoint: str = GOOGLE_REVOKE_ENDPOINT,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_REVOKE_TIMEOUT,
) -> None:
    """Revoke ``token`` at the provider.

    Args:
        token: Token to revoke.
        endpoint: Revocation endpoint URL.
        client: HTTP client to use. A short-lived one is created if omitted.
        timeout: Request timeout in seconds when creating our own client.

    Raises:
        RevocationError: If there is nothing to revoke, the request fails,
            or the provider answers with a non-200 status.
    """
    if token is None:
        raise RevocationError("no token to revoke")

    value = token.refresh_token or token.access_token
    if not value:
        raise RevocationError("token has no refresh or access token to revoke")

    if client is None:
        async with httpx.AsyncClient(timeout=timeout) as own_client:
            await _post_revocation(own_client, endpoint, value)
    else:
        await _post_revocation(client, endpoint, value)

    logger.info("Token revoked server-side")


async def _post_revocation(client: httpx.AsyncClient, endpoint: str, value: str) -> None:
    try:
        response = await client.post(
            endpoint,
            data={"token": value},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as e:
        raise RevocationError(f"revocation request failed: {e}") from e

    if response.status_code != 200:
        raise RevocationError(
            f"revocation failed (status {response.status_code}): {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
