"""Session lifecycle: load, expiry policy, refresh, persist, clear.

The :class:`~uxlint.models.AuthenticationSession` lives in the credential
store as camelCase JSON; :class:`TokenManager` keeps a cached copy for the
lifetime of the process. A session counts as expired once
``expires_at <= now + refresh_buffer``, re-evaluated on every call.

Concurrent callers that find the session expiring share one refresh
request: providers rotate refresh tokens, so a second request with the
same token would fail and log the user out.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from uxlint.auth.constants import KEYCHAIN_ACCOUNT, KEYCHAIN_SERVICE, TOKEN_REFRESH_BUFFER
from uxlint.auth.credential_store import CredentialStore
from uxlint.auth.flow import OAuthFlow
from uxlint.config import require_client_id
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import AuthenticationSession, OAuthConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Own the persisted session for one service/account.

    Args:
        credential_store: Where the serialised session lives.
        flow: Used to refresh tokens.
        config: OAuth configuration (client ID, base URL, token path).
        refresh_buffer: Seconds before expiry at which the session is
            refreshed.
        service: Credential store service name.
        account: Credential store account name.
        clock: Returns the current aware UTC time. Injected by tests.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        flow: OAuthFlow,
        config: OAuthConfig,
        refresh_buffer: float = TOKEN_REFRESH_BUFFER,
        service: str = KEYCHAIN_SERVICE,
        account: str = KEYCHAIN_ACCOUNT,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = credential_store
        self._flow = flow
        self._config = config
        self._refresh_buffer = refresh_buffer
        self._service = service
        self._account = account
        self._clock = clock or _utcnow
        self._cached: Optional[AuthenticationSession] = None
        self._refresh_task: Optional[asyncio.Future[Optional[AuthenticationSession]]] = None
        # Bumped by clear_session so an in-flight refresh cannot restore a
        # session that was cleared while it ran.
        self._generation = 0

    @property
    def refresh_buffer(self) -> float:
        return self._refresh_buffer

    @property
    def credential_store(self) -> CredentialStore:
        return self._store

    def now(self) -> datetime:
        """Current time according to the injected clock."""
        return self._clock()

    def is_session_expired(
        self,
        session: AuthenticationSession,
        buffer: Optional[float] = None,
    ) -> bool:
        """Whether *session* expires within *buffer* seconds from now.

        Args:
            session: The session to check.
            buffer: Lead time in seconds. Defaults to the manager's refresh
                buffer.
        """
        lead = self._refresh_buffer if buffer is None else buffer
        return session.is_expired(buffer=lead, now=self.now())

    async def load_session(self) -> Optional[AuthenticationSession]:
        """Read the session from the credential store into the cache.

        A stored value that is not a valid session is deleted.

        Returns:
            The stored session, or ``None``.

        Raises:
            AuthenticationError: ``KEYCHAIN_ERROR`` if the store fails.
        """
        raw = await self._store.get_password(self._service, self._account)
        if raw is None:
            self._cached = None
            return None
        try:
            session = AuthenticationSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored session is corrupt or outdated; removing it")
            await self._store.delete_password(self._service, self._account)
            self._cached = None
            return None
        self._cached = session
        return session

    async def get_valid_session(self) -> Optional[AuthenticationSession]:
        """Return a session that is valid beyond the refresh buffer.

        Refreshes the session when it is within the buffer or already
        expired. A rejected refresh token clears the stored session and
        yields ``None``; transient failures propagate and leave the stored
        session untouched.

        Returns:
            The valid session, or ``None`` when not authenticated.

        Raises:
            AuthenticationError: ``NETWORK_ERROR``, ``INVALID_RESPONSE``,
                ``KEYCHAIN_ERROR``, or ``INVALID_CONFIG``.
        """
        session = self._cached or await self.load_session()
        if session is None:
            return None
        if not self.is_session_expired(session):
            return session

        if self._refresh_task is None or self._refresh_task.done():
            logger.info("Session expires at %s; refreshing", session.metadata.expires_at.isoformat())
            self._refresh_task = asyncio.ensure_future(self._refresh(session))
        else:
            logger.debug("Joining in-flight token refresh")
        return await asyncio.shield(self._refresh_task)

    async def save_session(self, session: AuthenticationSession) -> None:
        """Persist *session* and make it the cached session."""
        await self._store.set_password(self._service, self._account, session.to_json())
        self._cached = session
        logger.debug("Session saved (expires %s)", session.metadata.expires_at.isoformat())

    async def clear_session(self) -> None:
        """Delete the stored session and the cache. Idempotent.

        A refresh still in flight is discarded when it completes.
        """
        self._generation += 1
        self._cached = None
        deleted = await self._store.delete_password(self._service, self._account)
        if deleted:
            logger.info("Session cleared")
        else:
            logger.debug("No stored session to clear")

    async def is_keychain_available(self) -> bool:
        return await self._store.is_available()

    async def _refresh(self, session: AuthenticationSession) -> Optional[AuthenticationSession]:
        client_id = require_client_id(self._config)
        generation = self._generation
        try:
            tokens = await self._flow.refresh(
                session.tokens.refresh_token,
                client_id,
                self._config.base_url,
                token_path=self._config.endpoints.token_path,
            )
        except AuthenticationError as exc:
            if exc.code is AuthErrorCode.REFRESH_FAILED:
                logger.info("Refresh token rejected; clearing session")
                await self.clear_session()
                return None
            raise

        if generation != self._generation:
            logger.info("Session was cleared during refresh; discarding new tokens")
            return None

        refreshed = AuthenticationSession.create(user=session.user, tokens=tokens, now=self.now())
        await self.save_session(refreshed)
        if generation != self._generation:
            # Cleared while the new session was being written.
            await self.clear_session()
            return None
        return refreshed
