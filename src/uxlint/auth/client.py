"""Session facade used by the rest of uxlint.

:class:`UxlintClient` is the single entry point for authentication:
:meth:`~UxlintClient.login`, :meth:`~UxlintClient.logout`,
:meth:`~UxlintClient.get_status`, :meth:`~UxlintClient.is_authenticated`,
:meth:`~UxlintClient.get_user_profile`, and
:meth:`~UxlintClient.get_access_token`.

All collaborators are injected through the constructor;
:meth:`UxlintClient.create_default` wires the production ones. The process
instance used by the CLI is held behind :func:`get_client`, and tests swap
or drop it with :func:`set_client` and :func:`reset_client`.
"""

from __future__ import annotations

import logging
from typing import Optional

from uxlint.auth.browser import WebBrowserLauncher
from uxlint.auth.callback_server import CallbackServer, PortSpec
from uxlint.auth.credential_store import create_credential_store
from uxlint.auth.flow import BrowserFailedCallback, OAuthFlow, StatusCallback
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.identity import resolve_user_profile
from uxlint.auth.token_manager import TokenManager
from uxlint.config import get_credential_backend, load_oauth_config, require_client_id
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import AuthenticationSession, OAuthConfig, UserProfile

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED_MESSAGE = "Not authenticated. Please run `uxlint auth login` first."


class UxlintClient:
    """Authentication facade.

    Args:
        token_manager: Owns the persisted session.
        oauth_flow: Runs the interactive authorization.
        http_client: Used to resolve the user profile after login.
        config: OAuth configuration.

    Example::

        client = UxlintClient.create_default()
        if not await client.is_authenticated():
            profile = await client.login()
    """

    def __init__(
        self,
        token_manager: TokenManager,
        oauth_flow: OAuthFlow,
        http_client: OAuthHttpClient,
        config: OAuthConfig,
    ) -> None:
        self._token_manager = token_manager
        self._flow = oauth_flow
        self._http = http_client
        self._config = config

    @classmethod
    def create_default(
        cls,
        config: Optional[OAuthConfig] = None,
        credential_backend: Optional[str] = None,
    ) -> UxlintClient:
        """Build a client with the production collaborators.

        Args:
            config: OAuth configuration. Loaded from the environment when
                omitted.
            credential_backend: ``"keyring"``, ``"file"``, or ``"auto"``.
                Read from ``UXLINT_CREDENTIAL_STORE`` when omitted.
        """
        config = config or load_oauth_config()
        backend = credential_backend or get_credential_backend()
        http_client = OAuthHttpClient()
        flow = OAuthFlow(http_client, CallbackServer(), WebBrowserLauncher())
        token_manager = TokenManager(create_credential_store(backend), flow, config)
        return cls(token_manager, flow, http_client, config)

    @property
    def config(self) -> OAuthConfig:
        return self._config

    @property
    def token_manager(self) -> TokenManager:
        return self._token_manager

    async def login(
        self,
        *,
        callback_ports: Optional[PortSpec] = None,
        timeout: Optional[float] = None,
        on_status: Optional[StatusCallback] = None,
        on_browser_failed: Optional[BrowserFailedCallback] = None,
    ) -> UserProfile:
        """Authenticate interactively and persist the new session.

        Args:
            callback_ports: Port or ``(start, end)`` range for the loopback
                listener.
            timeout: Seconds to wait for the browser redirect.
            on_status: Receives each :class:`~uxlint.auth.flow.FlowState`.
            on_browser_failed: Receives the ``BROWSER_FAILED`` error
                carrying the URL to open manually.

        Returns:
            The signed-in user's profile.

        Raises:
            AuthenticationError: ``ALREADY_AUTHENTICATED`` when a valid
                session exists, ``INVALID_CONFIG`` without a client ID, or
                any flow failure.
        """
        require_client_id(self._config)
        if await self._token_manager.get_valid_session() is not None:
            raise AuthenticationError(
                AuthErrorCode.ALREADY_AUTHENTICATED,
                "Already authenticated. Run `uxlint auth logout` first to switch accounts.",
            )

        tokens = await self._flow.authorize(
            self._config,
            callback_ports=callback_ports,
            timeout=timeout,
            on_status=on_status,
            on_browser_failed=on_browser_failed,
        )
        profile = await resolve_user_profile(tokens, self._config, self._http)
        session = AuthenticationSession.create(
            user=profile, tokens=tokens, now=self._token_manager.now()
        )
        await self._token_manager.save_session(session)
        logger.info("Logged in as user %s", profile.id)
        return profile

    async def logout(self) -> None:
        """Remove the stored session. Succeeds when already logged out."""
        await self._token_manager.clear_session()
        logger.info("Logged out")

    async def get_status(self) -> Optional[AuthenticationSession]:
        """Return the current session, refreshing it when close to expiry."""
        return await self._token_manager.get_valid_session()

    async def is_authenticated(self) -> bool:
        return await self.get_status() is not None

    async def get_user_profile(self) -> UserProfile:
        """Return the signed-in user.

        Raises:
            AuthenticationError: ``NOT_AUTHENTICATED`` without a valid
                session.
        """
        session = await self.get_status()
        if session is None:
            raise AuthenticationError(AuthErrorCode.NOT_AUTHENTICATED, NOT_AUTHENTICATED_MESSAGE)
        return session.user

    async def get_access_token(self) -> str:
        """Return an access token usable for API calls.

        Raises:
            AuthenticationError: ``NOT_AUTHENTICATED`` without a session,
                ``TOKEN_EXPIRED`` if the token is already past its expiry.
        """
        session = await self.get_status()
        if session is None:
            raise AuthenticationError(AuthErrorCode.NOT_AUTHENTICATED, NOT_AUTHENTICATED_MESSAGE)
        if self._token_manager.is_session_expired(session, buffer=0):
            raise AuthenticationError(
                AuthErrorCode.TOKEN_EXPIRED,
                "Access token has expired. Please run `uxlint auth login` again.",
            )
        return session.tokens.access_token


# ------------------------------------------------------------------ #
# Process instance
# ------------------------------------------------------------------ #

_client: Optional[UxlintClient] = None


def get_client() -> UxlintClient:
    """Return the process :class:`UxlintClient`, creating a default one lazily."""
    global _client
    if _client is None:
        _client = UxlintClient.create_default()
    return _client


def set_client(client: UxlintClient) -> None:
    """Install *client* as the process instance."""
    global _client
    _client = client


def reset_client() -> None:
    """Drop the process instance so the next :func:`get_client` builds a new one."""
    global _client
    _client = None
