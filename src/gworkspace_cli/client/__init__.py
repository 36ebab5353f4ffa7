"""Authenticated Google Workspace API clients."""

from gworkspace_cli.client.factory import SERVICE_API_BASES, ClientFactory
from gworkspace_cli.client.token_source import RefreshingTokenSource, TokenSourceAuth

__all__ = ["ClientFactory", "RefreshingTokenSource", "TokenSourceAuth", "SERVICE_API_BASES"]
