"""Google OAuth scopes for gws.

Scopes are grouped by logical service so that ``gws auth login --services``
can request only what is needed. A full login requests the union of all of
them, so users only need to authenticate once.
"""

import logging
from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

SCOPE_PREFIX = "https://www.googleapis.com/auth/"

# Always requested so `gws auth status` can show the signed-in account.
USERINFO_SERVICE = "userinfo"

SERVICE_SCOPES: dict[str, list[str]] = {
    "gmail": ["gmail.readonly", "gmail.send", "gmail.modify"],
    "calendar": ["calendar.readonly", "calendar.events"],
    "drive": ["drive.readonly", "drive.file"],
    "docs": ["documents.readonly", "documents"],
    "sheets": ["spreadsheets.readonly", "spreadsheets"],
    "slides": ["presentations.readonly", "presentations"],
    "tasks": ["tasks.readonly", "tasks"],
    "chat": [
        "chat.spaces.readonly",
        "chat.messages",
        "chat.messages.create",
        "chat.memberships",
    ],
    "forms": ["forms.body", "forms.responses.readonly"],
    "contacts": ["contacts.readonly"],
    "groups": ["admin.directory.group.readonly"],
    "keep": ["keep.readonly"],
    "driveactivity": ["drive.activity.readonly"],
    USERINFO_SERVICE: ["userinfo.email"],
}


def _dedupe(scopes: Iterable[str]) -> list[str]:
    """De-duplicate while keeping first-seen order."""
    return list(dict.fromkeys(scopes))


class ScopeRegistry:
    """Mapping between logical service names and OAuth scopes.

    Example:
        ```python
        registry = ScopeRegistry()
        registry.scopes_for_services(["gmail", "calendar"])
        registry.service_for_scope(SCOPE_PREFIX + "gmail.send")  # "gmail"
        ```
    """

    def __init__(self, service_scopes: Mapping[str, list[str]] | None = None) -> None:
        """Initialize the registry.

        Args:
            service_scopes: Service name to scope suffixes. Defaults to SERVICE_SCOPES.
        """
        table = service_scopes if service_scopes is not None else SERVICE_SCOPES
        self._service_scopes = {
            service: [SCOPE_PREFIX + suffix for suffix in suffixes]
            for service, suffixes in table.items()
        }
        self._scope_to_service = {
            scope: service
            for service, scopes in self._service_scopes.items()
            for scope in scopes
        }

    @property
    def services(self) -> list[str]:
        """All known service names."""
        return list(self._service_scopes)

    @property
    def all_scopes(self) -> list[str]:
        """Union of every service's scopes, de-duplicated."""
        return _dedupe(
            scope for scopes in self._service_scopes.values() for scope in scopes
        )

    def scopes_for_services(self, services: Iterable[str]) -> list[str]:
        """Return the scopes needed for ``services``.

        The userinfo scope is always included. Unknown services are ignored;
        use validate_services() to reject them up front.
        """
        scopes = list(self._service_scopes.get(USERINFO_SERVICE, []))
        for service in services:
            found = self._service_scopes.get(service)
            if found is None:
                logger.debug(f"No scopes registered for service {service!r}")
                continue
            scopes.extend(found)
        return _dedupe(scopes)

    def service_for_scope(self, scope: str) -> str | None:
        """Return the service that owns ``scope``, or None if unknown."""
        return self._scope_to_service.get(scope)

    def validate_services(self, services: Iterable[str]) -> list[str]:
        """Return the names in ``services`` that are not known services."""
        return [s for s in services if s not in self._service_scopes]
