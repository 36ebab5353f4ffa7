"""Lazily constructed Google Workspace API clients.

One ``ClientFactory`` exists per process. It owns the refreshing token source
and builds at most one HTTP client per service, the first time that service
is used.

Services not recorded in the granted-services list of a scoped login produce a
one-time warning, but the client is still returned: the API itself decides
whether the token is good enough.
"""

import logging
import threading

import httpx

from gworkspace_cli.auth.exceptions import WorkspaceAuthError
from gworkspace_cli.auth.models import OAuthToken, token_to_credentials
from gworkspace_cli.auth.scopes import USERINFO_SERVICE, ScopeRegistry
from gworkspace_cli.auth.token_storage import TokenStorage, merge_tokens
from gworkspace_cli.client.token_source import RefreshingTokenSource, TokenSourceAuth

logger = logging.getLogger(__name__)

# Google API base URLs
SERVICE_API_BASES: dict[str, str] = {
    "gmail": "https://gmail.googleapis.com/gmail/v1",
    "calendar": "https://www.googleapis.com/calendar/v3",
    "drive": "https://www.googleapis.com/drive/v3",
    "docs": "https://docs.googleapis.com/v1",
    "sheets": "https://sheets.googleapis.com/v4",
    "slides": "https://slides.googleapis.com/v1",
    "tasks": "https://tasks.googleapis.com/tasks/v1",
    "chat": "https://chat.googleapis.com/v1",
    "forms": "https://forms.googleapis.com/v1",
    "contacts": "https://people.googleapis.com/v1",
    "groups": "https://admin.googleapis.com/admin/directory/v1",
    "keep": "https://keep.googleapis.com/v1",
    "driveactivity": "https://driveactivity.googleapis.com/v2",
    USERINFO_SERVICE: "https://www.googleapis.com/oauth2/v2",
}

DEFAULT_CLIENT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


class ClientFactory:
    """Provides lazily initialized, cached API clients.

    Attributes:
        token_source: Shared refreshing token source.
        granted_services: Services granted at login; empty means all.
        registry: Scope registry used for diagnostics.

    Example:
        ```python
        factory = ClientFactory.from_storage(TokenStorage(), client_id, client_secret)
        gmail = factory.client("gmail")
        gmail.get("/users/me/profile")
        ```
    """

    def __init__(
        self,
        token_source: RefreshingTokenSource,
        granted_services: list[str] | None = None,
        registry: ScopeRegistry | None = None,
        api_bases: dict[str, str] | None = None,
    ) -> None:
        self.token_source = token_source
        self.granted_services = list(granted_services or [])
        self.registry = registry or ScopeRegistry()
        self._api_bases = api_bases or SERVICE_API_BASES
        self._auth = TokenSourceAuth(token_source)

        self._clients: dict[str, httpx.Client] = {}
        self._service_locks: dict[str, threading.Lock] = {}
        self._scope_warned: set[str] = set()
        # Guards the two dicts/sets above, never held while building a client.
        self._mu = threading.Lock()

    @classmethod
    def from_storage(
        cls,
        storage: TokenStorage,
        client_id: str | None,
        client_secret: str | None,
        registry: ScopeRegistry | None = None,
    ) -> "ClientFactory":
        """Create a factory from the persisted token.

        The token is validated once up front, which refreshes it if it has
        expired. Any refreshed token, now or later in the process, is merged
        with the stored one and saved.

        Raises:
            NotAuthenticatedError: If no token is stored.
            TokenParseError: If the stored token is corrupt.
            RefreshFailedError: If the token is expired and cannot be refreshed.
        """
        loaded = storage.load()
        credentials = token_to_credentials(loaded, client_id, client_secret)

        def persist(refreshed: OAuthToken) -> None:
            merged = merge_tokens(loaded, refreshed)
            try:
                storage.save(merged)
            except (OSError, WorkspaceAuthError) as e:
                logger.warning(f"Failed to save refreshed token: {e}")

        token_source = RefreshingTokenSource(credentials, on_refresh=persist)
        token_source.token()

        return cls(
            token_source,
            granted_services=storage.load_granted_services(),
            registry=registry,
        )

    def _check_service_scopes(self, service: str) -> None:
        """Warn once if ``service`` was not part of a scoped login."""
        if not self.granted_services or service == USERINFO_SERVICE:
            return
        if service in self.granted_services:
            return

        with self._mu:
            if service in self._scope_warned:
                return
            self._scope_warned.add(service)

        all_services = ",".join([*self.granted_services, service])
        logger.warning(
            f"{service} requires additional permissions. Re-authorize with:\n"
            f"  gws auth login --services {all_services}"
        )

    def _build_client(self, service: str) -> httpx.Client:
        return httpx.Client(
            base_url=self._api_bases[service],
            auth=self._auth,
            timeout=DEFAULT_CLIENT_TIMEOUT,
        )

    def client(self, service: str) -> httpx.Client:
        """Return the API client for ``service``, building it on first use.

        Args:
            service: Logical service name, e.g. "gmail".

        Raises:
            ValueError: If the service is unknown.
        """
        if service not in self._api_bases:
            raise ValueError(f"Unknown service: {service}")

        self._check_service_scopes(service)

        with self._mu:
            existing = self._clients.get(service)
            if existing is not None:
                return existing
            service_lock = self._service_locks.setdefault(service, threading.Lock())

        with service_lock:
            with self._mu:
                existing = self._clients.get(service)
            if existing is not None:
                return existing

            logger.debug(f"Creating {service} client")
            built = self._build_client(service)
            with self._mu:
                self._clients[service] = built
            return built

    def close(self) -> None:
        """Close every cached client."""
        with self._mu:
            clients = list(self._clients.values())
            self._clients.clear()
        for c in clients:
            c.close()
