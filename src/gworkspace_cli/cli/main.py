"""Command-line interface for gws authentication.

Every command prints a JSON document on stdout. Progress messages, the
authorization URL and warnings go to stderr.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from gworkspace_cli.__version__ import __version__
from gworkspace_cli.config import (
    ENV_CLIENT_ID,
    ENV_CLIENT_SECRET,
    Settings,
    load_settings,
    split_services,
)

logger = logging.getLogger(__name__)

MISSING_CREDENTIALS = (
    "missing credentials: set GWS_CLIENT_ID and GWS_CLIENT_SECRET environment "
    "variables, or use --client-id and --client-secret flags"
)


def _emit(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2))


def _fail(message: str, hint: str | None = None) -> NoReturn:
    error: dict[str, Any] = {"status": "error", "error": message}
    if hint:
        error["hint"] = hint
    _emit(error)
    sys.exit(1)


def _credentials(
    settings: Settings, client_id: str | None, client_secret: str | None
) -> tuple[str | None, str | None]:
    return (client_id or settings.client_id, client_secret or settings.client_secret)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default is ~/.config/gws/config.yaml)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """gws - Google Workspace CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = load_settings(config_path)


@main.group()
def auth() -> None:
    """Manage Google OAuth authentication."""


@auth.command()
@click.option(
    "--services",
    default=None,
    help="Comma-separated list of services to authorize (e.g. gmail,calendar,chat)",
)
@click.option("--client-id", envvar=ENV_CLIENT_ID, help="Google OAuth client ID")
@click.option("--client-secret", envvar=ENV_CLIENT_SECRET, help="Google OAuth client secret")
@click.pass_obj
def login(
    settings: Settings,
    services: str | None,
    client_id: str | None,
    client_secret: str | None,
) -> None:
    """Authenticate with Google.

    Opens the browser for the OAuth2 consent flow and stores the resulting
    token in ~/.config/gws/token.json. Without --services (or a services
    list in the config file) every supported scope is requested.
    """
    from gworkspace_cli.auth import OAuthManager, WorkspaceAuthError

    client_id, client_secret = _credentials(settings, client_id, client_secret)
    if not client_id or not client_secret:
        _fail(MISSING_CREDENTIALS)

    service_list = split_services(services) if services else list(settings.services)

    manager = OAuthManager()
    try:
        token = asyncio.run(
            manager.authenticate(
                services=service_list or None,
                client_id=client_id,
                client_secret=client_secret,
            )
        )
    except WorkspaceAuthError as e:
        _fail(e.message, e.remediation)
    except ValueError as e:
        _fail(str(e))
    except OSError as e:
        _fail(f"failed to save token: {e}")

    _emit(
        {
            "status": "success",
            "message": "Authentication successful",
            "expires": token.expires_at.isoformat() if token.expires_at else None,
            "services": service_list or "all",
        }
    )


@auth.command()
def logout() -> None:
    """Revoke and remove stored credentials."""
    from gworkspace_cli.auth import OAuthManager, WorkspaceAuthError

    manager = OAuthManager()
    try:
        result = asyncio.run(manager.logout())
    except WorkspaceAuthError as e:
        _fail(e.message, e.remediation)
    except OSError as e:
        _fail(f"failed to delete token: {e}")

    _emit(result)


@auth.command()
@click.option("--client-id", envvar=ENV_CLIENT_ID, help="Google OAuth client ID")
@click.option("--client-secret", envvar=ENV_CLIENT_SECRET, help="Google OAuth client secret")
@click.pass_obj
def status(settings: Settings, client_id: str | None, client_secret: str | None) -> None:
    """Show authentication status and user info.

    Refreshes an expired token when possible. Always exits 0; problems are
    reported in the output.
    """
    from gworkspace_cli.auth import OAuthManager, WorkspaceAuthError

    client_id, client_secret = _credentials(settings, client_id, client_secret)

    manager = OAuthManager()
    try:
        report = manager.status_report(client_id, client_secret)
    except (WorkspaceAuthError, OSError) as e:
        report = {"authenticated": False, "message": str(e)}

    _emit(report)


if __name__ == "__main__":
    main()
