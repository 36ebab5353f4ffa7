"""Exceptions raised by the gws authentication subsystem.

Every exception carries a human-readable ``message`` and, where the user can
do something about it, a ``remediation`` command. All of them inherit from
``WorkspaceAuthError`` so the CLI can render any failure the same way.
"""

LOGIN_HINT = "gws auth login"


class WorkspaceAuthError(Exception):
    """Base exception for all gws authentication errors.

    Attributes:
        message: Human-readable error description.
        remediation: Suggested command to fix the problem, if any.
    """

    remediation: str | None = LOGIN_HINT

    def __init__(self, message: str, remediation: str | None = None) -> None:
        self.message = message
        if remediation is not None:
            self.remediation = remediation
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message, appending the remediation if present."""
        if self.remediation:
            return f"{self.message}, run: {self.remediation}"
        return self.message


class NotAuthenticatedError(WorkspaceAuthError):
    """Raised when no token file exists."""

    def __init__(self, message: str = "not authenticated") -> None:
        super().__init__(message)


class TokenParseError(WorkspaceAuthError):
    """Raised when the token file exists but cannot be parsed."""


class LockTimeoutError(WorkspaceAuthError):
    """Raised when the token lock could not be acquired in time.

    Contention is transient, so the remediation is simply to retry.
    """

    remediation = None

    def __init__(self, lock_path: str) -> None:
        self.lock_path = lock_path
        super().__init__(f"timeout waiting for lock: {lock_path}")


class AuthFlowError(WorkspaceAuthError):
    """Raised when the interactive authorization flow fails."""


class FlowTimeoutError(AuthFlowError):
    """Raised when the browser step was not completed in time."""


class AuthorizationDeniedError(AuthFlowError):
    """Raised when the provider redirects back with an ``error`` parameter."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"authorization failed: {reason}")


class StateMismatchError(AuthFlowError):
    """Raised when the callback ``state`` does not match the one we sent."""

    def __init__(self) -> None:
        super().__init__("invalid state parameter")


class TokenExchangeError(AuthFlowError):
    """Raised when the authorization code could not be exchanged."""


class RefreshFailedError(WorkspaceAuthError):
    """Raised when the refresh token is missing or rejected."""


class RevocationError(WorkspaceAuthError):
    """Raised when server-side revocation fails.

    Attributes:
        status_code: HTTP status returned by the revocation endpoint, if any.
        body: Response body, kept for diagnostics.
    """

    remediation = None

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)
