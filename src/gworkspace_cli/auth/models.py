"""Token models for gws authentication."""

from datetime import datetime, timedelta, timezone
from enum import Enum

from google.oauth2.credentials import Credentials
from pydantic import BaseModel, Field, field_validator

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105 - public endpoint


class TokenStatus(str, Enum):
    """State of the persisted token."""

    VALID = "valid"
    EXPIRED = "expired"
    MISSING = "missing"
    INVALID = "invalid"


class OAuthToken(BaseModel):
    """OAuth2 token as persisted in token.json.

    Attributes:
        access_token: Opaque access token.
        refresh_token: Opaque refresh token. Renewal responses often omit it.
        token_type: Token type, normally "Bearer".
        expires_at: Absolute expiry in UTC, or None when unknown.
        scopes: Scopes requested for this token.
    """

    access_token: str = Field(default="", description="Access token")
    refresh_token: str | None = Field(default=None, description="Refresh token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_at: datetime | None = Field(default=None, description="Expiry (UTC)")
    scopes: list[str] = Field(default_factory=list, description="Requested scopes")

    @field_validator("expires_at")
    @classmethod
    def _ensure_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def can_refresh(self) -> bool:
        """Whether the token can be renewed without user interaction."""
        return bool(self.refresh_token)

    def is_expired(self, buffer_seconds: int = 60) -> bool:
        """Check whether the access token is expired or about to expire.

        A token with no known expiry is never considered expired locally;
        the provider rejects it when it stops being valid.

        Args:
            buffer_seconds: Treat the token as expired this many seconds early.
        """
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) + timedelta(seconds=buffer_seconds) >= self.expires_at


def credentials_to_token(credentials: Credentials, scopes: list[str] | None = None) -> OAuthToken:
    """Convert google-auth Credentials to an OAuthToken.

    Args:
        credentials: Google OAuth2 credentials.
        scopes: Scopes to record. Falls back to the credentials' own scopes.
    """
    # google-auth keeps expiry as a naive UTC datetime
    expires_at = credentials.expiry
    if expires_at is not None and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)

    if scopes is None:
        scopes = list(credentials.scopes or [])

    return OAuthToken(  # nosec B106 - "Bearer" is OAuth token type, not a password
        access_token=credentials.token or "",
        refresh_token=credentials.refresh_token or None,
        expires_at=expires_at,
        scopes=scopes,
        token_type="Bearer",
    )


def token_to_credentials(
    token: OAuthToken,
    client_id: str | None = None,
    client_secret: str | None = None,
) -> Credentials:
    """Convert an OAuthToken to google-auth Credentials that can refresh themselves."""
    expiry = None
    if token.expires_at is not None:
        expiry = token.expires_at.astimezone(timezone.utc).replace(tzinfo=None)

    return Credentials(  # nosec B106 - token_uri is public Google OAuth endpoint
        token=token.access_token or None,
        refresh_token=token.refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=client_id,
        client_secret=client_secret,
        scopes=token.scopes or None,
        expiry=expiry,
    )
