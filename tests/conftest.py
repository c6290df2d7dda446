"""Shared test fixtures for uxlint.

Provides reusable fixtures for isolated config environments, output and
client state, OAuth configuration, token/session factories, and CLI
runners. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from uxlint.auth.client import reset_client
from uxlint.auth.credential_store import MemoryCredentialStore
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import (
    AuthenticationSession,
    OAuthConfig,
    OIDCConfiguration,
    TokenSet,
    UserProfile,
)
from uxlint.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_client_between_tests() -> None:
    """Drop the process UxlintClient so no test sees another test's client."""
    reset_client()
    yield
    reset_client()


@pytest.fixture(autouse=True)
def _restore_uxlint_logger() -> None:
    """Undo configure_logging() so caplog keeps seeing uxlint records."""
    logger = logging.getLogger("uxlint")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config or credentials. Clears all
    UXLINT_* environment variables and changes the working directory to
    tmp_path (so no stray ``.env`` file is picked up).

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("uxlint.config._is_xdg_platform", lambda: True)

    for var in [
        "UXLINT_CLOUD_CLIENT_ID",
        "UXLINT_CLOUD_API_BASE_URL",
        "UXLINT_CLOUD_REDIRECT_URI",
        "UXLINT_CREDENTIAL_STORE",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# OAuth fixtures
# ---------------------------------------------------------------------------

TEST_BASE_URL = "https://auth.uxlint.test"
TEST_CLIENT_ID = "uxlint-test-client"


@pytest.fixture
def free_port() -> int:
    """A TCP port on 127.0.0.1 that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def oauth_config(free_port: int) -> OAuthConfig:
    """OAuth configuration pointing at a fake provider and a free loopback port."""
    return OAuthConfig(
        client_id=TEST_CLIENT_ID,
        base_url=TEST_BASE_URL,
        redirect_uri=f"http://localhost:{free_port}/callback",
    )


@pytest.fixture
def memory_store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def make_tokens() -> Callable[..., TokenSet]:
    """Factory for token sets with overridable fields."""

    def _make(**overrides: Any) -> TokenSet:
        fields: dict[str, Any] = {
            "access_token": "access-1",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": "refresh-1",
            "scope": "openid profile email uxlint:api",
        }
        fields.update(overrides)
        return TokenSet(**fields)

    return _make


class FakeHttpClient(OAuthHttpClient):
    """OAuthHttpClient double that records calls and returns canned tokens.

    Set ``exchange_error`` / ``refresh_error`` to make the respective call
    raise, and ``refresh_delay`` to keep a refresh in flight for a while.
    """

    def __init__(self, tokens: TokenSet) -> None:
        super().__init__(timeout=1.0)
        self.tokens = tokens
        self.exchange_error: Optional[Exception] = None
        self.refresh_error: Optional[Exception] = None
        self.refresh_delay = 0.0
        self.exchanges: list[dict[str, str]] = []
        self.refreshes: list[dict[str, Optional[str]]] = []

    async def exchange_code_for_tokens(
        self,
        token_endpoint: str,
        client_id: str,
        code: str,
        redirect_uri: str,
        code_verifier: str,
    ) -> TokenSet:
        self.exchanges.append(
            {
                "token_endpoint": token_endpoint,
                "client_id": client_id,
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            }
        )
        if self.exchange_error is not None:
            raise self.exchange_error
        return self.tokens

    async def refresh_access_token(
        self,
        token_endpoint: str,
        client_id: str,
        refresh_token: str,
        scope: Optional[str] = None,
    ) -> TokenSet:
        self.refreshes.append(
            {
                "token_endpoint": token_endpoint,
                "client_id": client_id,
                "refresh_token": refresh_token,
                "scope": scope,
            }
        )
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.tokens

    async def get_openid_configuration(self, url: str) -> OIDCConfiguration:
        raise AuthenticationError(AuthErrorCode.NETWORK_ERROR, "discovery disabled in tests")


@pytest.fixture
def fake_http(make_tokens: Callable[..., TokenSet]) -> FakeHttpClient:
    """A FakeHttpClient issuing ``access-2`` / ``refresh-2`` tokens."""
    return FakeHttpClient(make_tokens(access_token="access-2", refresh_token="refresh-2"))


@pytest.fixture
def user_profile() -> UserProfile:
    return UserProfile(
        id="user-123",
        email="ada@example.com",
        name="Ada Lovelace",
        organization="Analytical Engines",
        email_verified=True,
    )


@pytest.fixture
def make_session(
    make_tokens: Callable[..., TokenSet], user_profile: UserProfile
) -> Callable[..., AuthenticationSession]:
    """Factory for sessions expiring *expires_in_seconds* from *now*."""

    def _make(
        expires_in_seconds: float = 3600,
        now: Optional[datetime] = None,
        **token_overrides: Any,
    ) -> AuthenticationSession:
        reference = now or datetime.now(timezone.utc)
        tokens = make_tokens(**token_overrides)
        created_at = reference + timedelta(seconds=expires_in_seconds) - timedelta(
            seconds=tokens.expires_in
        )
        return AuthenticationSession.create(user=user_profile, tokens=tokens, now=created_at)

    return _make


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
