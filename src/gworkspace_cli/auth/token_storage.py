"""OAuth token storage for gws.

This module persists the OAuth token as JSON in the user's config directory.

Storage Location: ~/.config/gws/token.json (or $XDG_CONFIG_HOME/gws/token.json)

Writes are atomic and serialized across processes:

1. The sidecar lock (``token.json.lock``) is taken.
2. The token is written to a temp file in the same directory, with
   permissions set to 0600 before any data is written.
3. The temp file is renamed over ``token.json``.

Readers never take the lock. They see either the old file or the new one,
never a partial write.

The granted-services record (``services.json``) is stored next to the token
without locking. Losing it only disables the scope-mismatch warning.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from gworkspace_cli.auth.exceptions import NotAuthenticatedError, TokenParseError
from gworkspace_cli.auth.lock import file_lock
from gworkspace_cli.auth.models import OAuthToken, TokenStatus
from gworkspace_cli.config import ensure_config_dir, get_granted_services_path, get_token_path

logger = logging.getLogger(__name__)


def merge_tokens(existing: OAuthToken | None, incoming: OAuthToken | None) -> OAuthToken | None:
    """Merge a newly issued token with the one already stored.

    Google only issues a refresh token on the original grant, so renewal
    responses usually lack one. Dropping it would lose the ability to refresh
    after the very first renewal, so the existing refresh token is carried
    over whenever the incoming token has none.

    Args:
        existing: Token currently persisted, if any.
        incoming: Token just received, if any.

    Returns:
        The merged token. ``incoming`` is returned unchanged when it carries its
        own refresh token; ``existing`` when there is nothing incoming.
    """
    if incoming is None:
        return existing
    if existing is None:
        return incoming

    if not incoming.refresh_token and existing.refresh_token:
        return incoming.model_copy(update={"refresh_token": existing.refresh_token})

    return incoming


class TokenStorage:
    """JSON file storage for the OAuth token.

    Attributes:
        token_path: Path to the token.json file.
        granted_services_path: Path to the services.json file.

    Example:
        ```python
        storage = TokenStorage()

        storage.save(token)
        token = storage.load()  # raises NotAuthenticatedError if missing
        storage.delete()
        ```
    """

    def __init__(
        self,
        token_path: Path | None = None,
        granted_services_path: Path | None = None,
    ) -> None:
        """Initialize token storage.

        Args:
            token_path: Custom path for token.json. Defaults to the user config dir.
            granted_services_path: Custom path for services.json. Defaults to a
                file next to token.json when token_path is given, otherwise the
                user config dir.
        """
        self.token_path = token_path or get_token_path()
        if granted_services_path is None:
            if token_path is None:
                granted_services_path = get_granted_services_path()
            else:
                granted_services_path = self.token_path.parent / get_granted_services_path().name
        self.granted_services_path = granted_services_path
        self.credentials_dir = self.token_path.parent

    def _ensure_credentials_dir(self) -> None:
        """Create credentials directory with secure permissions if needed."""
        ensure_config_dir(self.credentials_dir)

    def exists(self) -> bool:
        """Check whether a token file exists."""
        return self.token_path.exists()

    def load(self) -> OAuthToken:
        """Load the persisted token.

        Returns:
            The stored token.

        Raises:
            NotAuthenticatedError: If no token file exists.
            TokenParseError: If the file exists but cannot be parsed.
            OSError: If the file cannot be read.
        """
        try:
            data = self.token_path.read_bytes()
        except FileNotFoundError:
            raise NotAuthenticatedError() from None

        try:
            return OAuthToken.model_validate_json(data)
        except (ValidationError, UnicodeDecodeError) as e:
            raise TokenParseError(f"failed to parse token {self.token_path}: {e}") from e

    def save(self, token: OAuthToken) -> None:
        """Atomically persist the token with owner-only permissions.

        Args:
            token: Token to store.

        Raises:
            LockTimeoutError: If another process holds the lock for too long.
            OSError: If the file cannot be written.
        """
        self._ensure_credentials_dir()
        data = token.model_dump_json(indent=2)

        with file_lock(self.token_path):
            fd, tmp_name = tempfile.mkstemp(
                dir=self.credentials_dir, prefix=".token-", suffix=".tmp"
            )
            try:
                os.fchmod(fd, 0o600)
                with os.fdopen(fd, "w") as f:
                    f.write(data)
                os.replace(tmp_name, self.token_path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise

        logger.debug(f"Saved token to {self.token_path}")

    def delete(self) -> bool:
        """Delete the persisted token.

        A missing token is not an error, so deleting twice succeeds twice.

        Returns:
            True if a token file was removed, False if there was none.

        Raises:
            LockTimeoutError: If another process holds the lock for too long.
            OSError: If the file exists but cannot be removed.
        """
        if not self.credentials_dir.exists():
            return False

        with file_lock(self.token_path):
            try:
                self.token_path.unlink()
            except FileNotFoundError:
                return False

        logger.debug(f"Deleted token {self.token_path}")
        return True

    def get_status(self) -> TokenStatus:
        """Get the status of the stored token.

        Returns:
            TokenStatus indicating the token's current state.
        """
        try:
            token = self.load()
        except NotAuthenticatedError:
            return TokenStatus.MISSING
        except TokenParseError:
            return TokenStatus.INVALID

        if token.is_expired():
            return TokenStatus.EXPIRED

        return TokenStatus.VALID

    def save_granted_services(self, services: list[str]) -> None:
        """Record the services granted at login.

        An empty list means the full scope superset was granted.
        """
        self._ensure_credentials_dir()
        fd = os.open(
            self.granted_services_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600
        )
        with os.fdopen(fd, "w") as f:
            json.dump(list(services), f)

    def load_granted_services(self) -> list[str]:
        """Load the services granted at the last login.

        Returns:
            Service names, or an empty list when nothing usable is recorded.
        """
        try:
            data = json.loads(self.granted_services_path.read_text())
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable {self.granted_services_path}: {e}")
            return []

        if not isinstance(data, list) or not all(isinstance(s, str) for s in data):
            logger.warning(f"Ignoring malformed {self.granted_services_path}")
            return []
        return data
