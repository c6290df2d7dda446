"""OAuth 2.0 Authorization Code flow with PKCE, end to end.

:class:`OAuthFlow` composes the PKCE generator, the loopback
:class:`~uxlint.auth.callback_server.CallbackServer`, a
:class:`~uxlint.auth.browser.BrowserLauncher`, and the
:class:`~uxlint.auth.http_client.OAuthHttpClient`:

1. Generates PKCE parameters.
2. Binds the callback listener (port from the redirect URI or an explicit
   range).
3. Builds the authorization URL with the actually bound port.
4. Opens the browser concurrently. A browser failure is reported but does
   not cancel the listener, so visiting the URL manually still works.
5. Waits for the redirect (or timeout) and exchanges the code for tokens.

Each attempt walks the :class:`FlowState` machine; any
:class:`~uxlint.exceptions.AuthenticationError` raised on the way is
annotated with ``context["step"]``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlencode, urlsplit

from uxlint.auth.browser import BrowserLauncher
from uxlint.auth.callback_server import CallbackServer, PortSpec
from uxlint.auth.constants import DEFAULT_CALLBACK_PATH, OAUTH_FLOW_TIMEOUT
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.pkce import generate_pkce_parameters
from uxlint.config import require_client_id
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import OAuthConfig, OAuthEndpoints, PKCEParameters, TokenSet

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    """States of a single :meth:`OAuthFlow.authorize` attempt."""

    IDLE = "idle"
    GENERATING_PKCE = "generating_pkce"
    LISTENER_STARTING = "listener_starting"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING_CODE = "exchanging_code"
    COMPLETE = "complete"
    FAILED = "failed"


StatusCallback = Callable[[FlowState], None]
BrowserFailedCallback = Callable[[AuthenticationError], None]


def build_authorization_url(
    config: OAuthConfig,
    redirect_uri: str,
    pkce: PKCEParameters,
) -> str:
    """Build the browser-facing authorization request URL.

    Args:
        config: OAuth configuration (client ID, endpoints, scopes).
        redirect_uri: Redirect URI including the bound listener port.
        pkce: The attempt's PKCE parameters.

    Returns:
        ``{base_url}{authorize_path}?client_id=...&code_challenge_method=S256``.
    """
    params = {
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": pkce.state,
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": pkce.code_challenge_method,
    }
    return f"{config.authorize_url}?{urlencode(params)}"


def _with_port(uri: str, port: int) -> str:
    parts = urlsplit(uri)
    host = parts.hostname or "localhost"
    if ":" in host:
        host = f"[{host}]"
    return parts._replace(netloc=f"{host}:{port}").geturl()


class OAuthFlow:
    """Drive the authorization code flow for one client.

    Args:
        http_client: Client for the token endpoint.
        callback_server: Loopback listener for the redirect.
        browser: Launcher used to open the authorization URL.
    """

    def __init__(
        self,
        http_client: OAuthHttpClient,
        callback_server: CallbackServer,
        browser: BrowserLauncher,
    ) -> None:
        self._http = http_client
        self._callback_server = callback_server
        self._browser = browser
        self._state = FlowState.IDLE

    @property
    def state(self) -> FlowState:
        """State of the most recent :meth:`authorize` attempt."""
        return self._state

    async def authorize(
        self,
        config: OAuthConfig,
        *,
        callback_ports: Optional[PortSpec] = None,
        timeout: Optional[float] = None,
        on_status: Optional[StatusCallback] = None,
        on_browser_failed: Optional[BrowserFailedCallback] = None,
    ) -> TokenSet:
        """Run the interactive flow and return the issued tokens.

        Args:
            config: OAuth configuration.
            callback_ports: Port or inclusive ``(start, end)`` range for the
                listener. Defaults to the port of ``config.redirect_uri``.
            timeout: Seconds to wait for the redirect. Defaults to
                :data:`~uxlint.auth.constants.OAUTH_FLOW_TIMEOUT`.
            on_status: Called with every state transition.
            on_browser_failed: Called with a ``BROWSER_FAILED`` error whose
                message contains the authorization URL. When omitted the
                failure is only logged.

        Returns:
            The :class:`~uxlint.models.TokenSet` from the code exchange.

        Raises:
            AuthenticationError: On any failure, with ``context["step"]``
                naming the state that failed.
        """
        client_id = require_client_id(config)
        wait_timeout = OAUTH_FLOW_TIMEOUT if timeout is None else timeout

        def advance(state: FlowState) -> None:
            self._state = state
            logger.debug("OAuth flow state: %s", state.value)
            if on_status is not None:
                on_status(state)

        self._state = FlowState.IDLE
        try:
            advance(FlowState.GENERATING_PKCE)
            pkce = generate_pkce_parameters()

            advance(FlowState.LISTENER_STARTING)
            redirect = urlsplit(config.redirect_uri)
            ports = callback_ports if callback_ports is not None else (redirect.port or 80)
            bound_port = await self._callback_server.start(
                ports, pkce.state, redirect.path or DEFAULT_CALLBACK_PATH
            )

            try:
                redirect_uri = _with_port(config.redirect_uri, bound_port)
                auth_url = build_authorization_url(config, redirect_uri, pkce)

                advance(FlowState.AWAITING_REDIRECT)
                wait_task = asyncio.ensure_future(self._callback_server.wait(wait_timeout))
                browser_task = asyncio.ensure_future(
                    self._open_browser(auth_url, on_browser_failed)
                )
                try:
                    callback = await wait_task
                finally:
                    if not browser_task.done():
                        browser_task.cancel()
                    await asyncio.gather(browser_task, return_exceptions=True)
            finally:
                await self._callback_server.stop()

            advance(FlowState.EXCHANGING_CODE)
            tokens = await self._http.exchange_code_for_tokens(
                token_endpoint=config.token_url,
                client_id=client_id,
                code=callback.code,
                redirect_uri=redirect_uri,
                code_verifier=pkce.code_verifier,
            )
        except AuthenticationError as exc:
            exc.context.setdefault("step", self._state.value)
            logger.warning(
                "Authorization failed during %s: %s", self._state.value, exc.code.value
            )
            advance(FlowState.FAILED)
            raise

        advance(FlowState.COMPLETE)
        return tokens

    async def refresh(
        self,
        refresh_token: str,
        client_id: str,
        base_url: str,
        token_path: str = OAuthEndpoints().token_path,
        scope: Optional[str] = None,
    ) -> TokenSet:
        """Exchange *refresh_token* for a new token set.

        Delegates to :meth:`OAuthHttpClient.refresh_access_token`; the flow
        keeps no state for refreshes.
        """
        return await self._http.refresh_access_token(
            token_endpoint=f"{base_url.rstrip('/')}{token_path}",
            client_id=client_id,
            refresh_token=refresh_token,
            scope=scope,
        )

    async def _open_browser(
        self,
        auth_url: str,
        on_browser_failed: Optional[BrowserFailedCallback],
    ) -> None:
        try:
            await self._browser.open_url(auth_url)
        except AuthenticationError as exc:
            failure = AuthenticationError(
                AuthErrorCode.BROWSER_FAILED,
                f"Failed to open browser. Please open this URL manually:\n{auth_url}",
                context={"step": "browser", "authorization_url": auth_url},
                cause=exc,
            )
            if on_browser_failed is not None:
                on_browser_failed(failure)
            else:
                logger.warning("Browser could not be opened; waiting for manual authorization")
