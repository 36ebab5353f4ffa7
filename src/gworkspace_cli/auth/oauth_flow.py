"""Interactive OAuth2 authorization-code flow with PKCE.

A desktop client cannot keep its client secret from the local user, so the
authorization code is bound to a locally generated verifier (PKCE, S256).
Only the process holding the verifier can redeem the code.

The flow, once per ``gws auth login``:

1. Generate the PKCE verifier/challenge and a CSRF ``state``.
2. Bind a loopback listener on an OS-assigned port and serve ``/callback``
   from a background thread.
3. Print the authorization URL and try to open the browser.
4. Wait for the first of: code received, callback error, timeout, or
   cancellation. The listener is shut down on every path.
5. Exchange the code (plus verifier) for a token.
"""

import asyncio
import base64
import hashlib
import logging
import os
import secrets
import threading
import webbrowser
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

import click
import requests
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from gworkspace_cli.auth.exceptions import (
    AuthFlowError,
    AuthorizationDeniedError,
    FlowTimeoutError,
    StateMismatchError,
    TokenExchangeError,
)
from gworkspace_cli.auth.models import GOOGLE_TOKEN_URI, OAuthToken, credentials_to_token

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
CALLBACK_HOST = "127.0.0.1"
CALLBACK_PATH = "/callback"
DEFAULT_FLOW_TIMEOUT = 300.0  # 5 minutes
RELAX_TOKEN_SCOPE_ENV = "OAUTHLIB_RELAX_TOKEN_SCOPE"

SUCCESS_HTML = b"""<!DOCTYPE html>
<html>
<head><title>gws - Authorization Successful</title></head>
<body style="font-family: system-ui; text-align: center; padding: 50px;">
<h1>&#10004; Authorization Successful</h1>
<p>You can close this window and return to the terminal.</p>
</body>
</html>"""


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier from 32 random bytes."""
    return _b64url(secrets.token_bytes(32))


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for ``verifier``."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_state() -> str:
    """Generate a CSRF state token from 16 random bytes."""
    return _b64url(secrets.token_bytes(16))


@dataclass(frozen=True)
class PKCEState:
    """Per-login PKCE material. Lives only in memory."""

    code_verifier: str
    code_challenge: str
    state: str

    @classmethod
    def generate(cls) -> "PKCEState":
        verifier = generate_code_verifier()
        return cls(
            code_verifier=verifier,
            code_challenge=generate_code_challenge(verifier),
            state=generate_state(),
        )


class _CallbackServer(HTTPServer):
    """Loopback HTTP server that hands the first callback outcome to a future."""

    def __init__(
        self,
        address: tuple[str, int],
        expected_state: str,
        loop: asyncio.AbstractEventLoop,
        outcome: "asyncio.Future[str]",
    ) -> None:
        super().__init__(address, _CallbackHandler)
        self.expected_state = expected_state
        self._loop = loop
        self._outcome = outcome

    @property
    def port(self) -> int:
        return self.server_address[1]

    def deliver(self, result: str | BaseException) -> None:
        """Pass a code or an error back to the waiting coroutine (thread-safe)."""
        self._loop.call_soon_threadsafe(_settle, self._outcome, result)


def _settle(outcome: "asyncio.Future[str]", result: str | BaseException) -> None:
    # First outcome wins; later callbacks and post-timeout results are dropped.
    if outcome.done():
        return
    if isinstance(result, BaseException):
        outcome.set_exception(result)
    else:
        outcome.set_result(result)


class _CallbackHandler(BaseHTTPRequestHandler):
    """HTTP handler for the OAuth redirect."""

    server: _CallbackServer

    def log_message(self, format: str, *args: Any) -> None:
        """Route request logs to the module logger instead of stderr."""
        logger.debug("callback server: " + format, *args)

    def _reply(self, status: int, body: bytes, content_type: str = "text/plain") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        """Handle GET request from OAuth redirect."""
        request_parsed = urlparse(self.path)

        if request_parsed.path != CALLBACK_PATH:
            self._reply(404, b"Not Found")
            return

        query_params = parse_qs(request_parsed.query)

        if query_params.get("state", [""])[0] != self.server.expected_state:
            self.server.deliver(StateMismatchError())
            self._reply(400, b"Invalid state parameter")
            return

        error = query_params.get("error", [""])[0]
        if error:
            self.server.deliver(AuthorizationDeniedError(error))
            self._reply(400, b"Authorization failed")
            return

        code = query_params.get("code", [""])[0]
        if not code:
            self.server.deliver(AuthFlowError("no authorization code received"))
            self._reply(400, b"No authorization code")
            return

        self._reply(200, SUCCESS_HTML, content_type="text/html")
        self.server.deliver(code)


@contextmanager
def _relaxed_token_scope() -> Iterator[None]:
    """Let oauthlib accept a granted scope set that differs from the request.

    Google may grant a superset of the requested scopes (e.g. openid), which
    oauthlib rejects unless ``OAUTHLIB_RELAX_TOKEN_SCOPE`` is set. The variable
    is restored on exit so the rest of the process is unaffected.
    """
    previous = os.environ.get(RELAX_TOKEN_SCOPE_ENV)
    os.environ[RELAX_TOKEN_SCOPE_ENV] = "1"
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop(RELAX_TOKEN_SCOPE_ENV, None)
        else:
            os.environ[RELAX_TOKEN_SCOPE_ENV] = previous


def _announce(message: str) -> None:
    click.echo(message, err=True)


class AuthorizationFlow:
    """Runs one interactive PKCE authorization-code exchange.

    Attributes:
        client_id: Google OAuth client ID.
        scopes: Scopes to request.
        timeout: Seconds to wait for the browser redirect.

    Example:
        ```python
        flow = AuthorizationFlow(client_id, client_secret, scopes)
        token = await flow.run()
        ```
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        scopes: list[str],
        *,
        timeout: float = DEFAULT_FLOW_TIMEOUT,
        host: str = CALLBACK_HOST,
        auth_uri: str = GOOGLE_AUTH_URI,
        token_uri: str = GOOGLE_TOKEN_URI,
        open_browser: Callable[[str], bool] = webbrowser.open,
        announce: Callable[[str], None] = _announce,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self.scopes = scopes
        self.timeout = timeout
        self.host = host
        self.auth_uri = auth_uri
        self.token_uri = token_uri
        self._open_browser = open_browser
        self._announce = announce

    def _build_flow(self, redirect_uri: str, pkce: PKCEState) -> Flow:
        client_config = {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self._client_secret,
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
                "redirect_uris": [redirect_uri],
            }
        }
        return Flow.from_client_config(
            client_config,
            scopes=self.scopes,
            redirect_uri=redirect_uri,
            code_verifier=pkce.code_verifier,
            autogenerate_code_verifier=False,
        )

    def _launch_browser(self, auth_url: str) -> None:
        self._announce("Opening browser for authorization...")
        self._announce(f"If the browser doesn't open, visit:\n{auth_url}\n")
        try:
            opened = self._open_browser(auth_url)
        except webbrowser.Error as e:
            logger.debug(f"Browser launch raised: {e}")
            opened = False
        if not opened:
            self._announce("Failed to open browser, please open the URL manually.")

    def _exchange_code(self, flow: Flow, code: str) -> Credentials:
        """Redeem the authorization code (blocking)."""
        try:
            with _relaxed_token_scope():
                flow.fetch_token(code=code)
        except (OAuth2Error, requests.RequestException) as e:
            raise TokenExchangeError(f"failed to exchange code for token: {e}") from e
        return flow.credentials

    async def run(self) -> OAuthToken:
        """Run the flow to completion.

        Returns:
            The token issued by the provider.

        Raises:
            StateMismatchError: If the callback carried the wrong state.
            AuthorizationDeniedError: If the user or provider denied access.
            FlowTimeoutError: If no callback arrived within ``timeout``.
            TokenExchangeError: If the code could not be redeemed.
            AuthFlowError: For any other flow failure.
        """
        pkce = PKCEState.generate()
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[str] = loop.create_future()

        try:
            server = _CallbackServer((self.host, 0), pkce.state, loop, outcome)
        except OSError as e:
            raise AuthFlowError(f"failed to start callback server: {e}") from e

        redirect_uri = f"http://{self.host}:{server.port}{CALLBACK_PATH}"
        thread = threading.Thread(
            target=server.serve_forever, name="gws-oauth-callback", daemon=True
        )
        thread.start()
        logger.debug(f"Callback server listening on {redirect_uri}")

        try:
            flow = self._build_flow(redirect_uri, pkce)
            auth_url, _ = flow.authorization_url(
                state=pkce.state,
                access_type="offline",
                prompt="consent",
                code_challenge=pkce.code_challenge,
                code_challenge_method="S256",
            )
            self._launch_browser(auth_url)

            try:
                code = await asyncio.wait_for(outcome, timeout=self.timeout)
            except asyncio.TimeoutError:
                raise FlowTimeoutError("authorization timeout") from None
        finally:
            server.shutdown()
            server.server_close()
            thread.join()
            logger.debug("Callback server stopped")

        credentials = await loop.run_in_executor(None, self._exchange_code, flow, code)
        return credentials_to_token(credentials, self.scopes)
