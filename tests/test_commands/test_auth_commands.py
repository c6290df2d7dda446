"""CLI tests for the ``uxlint auth`` command group.

Every test installs a memory-backed UxlintClient via ``set_client`` so no
keychain, browser, or identity provider is touched.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from typer.testing import CliRunner

from uxlint import __version__
from uxlint.app import app
from uxlint.auth.browser import RecordingBrowserLauncher
from uxlint.auth.callback_server import CallbackServer
from uxlint.auth.client import UxlintClient, set_client
from uxlint.auth.credential_store import MemoryCredentialStore
from uxlint.auth.flow import OAuthFlow
from uxlint.auth.token_manager import TokenManager
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_SUCCESS,
)
from uxlint.models import AuthenticationSession, OAuthConfig


async def _consent(auth_url: str) -> None:
    query = {k: v[0] for k, v in parse_qs(urlsplit(auth_url).query).items()}
    redirect = urlsplit(query["redirect_uri"])
    async with httpx.AsyncClient(timeout=5.0) as http:
        await http.get(
            f"http://127.0.0.1:{redirect.port}{redirect.path}",
            params={"code": "ABC", "state": query["state"]},
        )


class BrokenStore(MemoryCredentialStore):
    """Memory store whose delete always fails like a locked keychain."""

    async def delete_password(self, service: str, account: str) -> bool:
        raise AuthenticationError(AuthErrorCode.KEYCHAIN_ERROR, "Keychain is locked")


@pytest.fixture
def install_client(
    isolated_config: Path,
    oauth_config: OAuthConfig,
    memory_store: MemoryCredentialStore,
    fake_http: Any,
) -> Callable[..., UxlintClient]:
    """Build and install a UxlintClient around test doubles."""

    def _install(
        browser: Optional[RecordingBrowserLauncher] = None,
        store: Optional[MemoryCredentialStore] = None,
        config: Optional[OAuthConfig] = None,
    ) -> UxlintClient:
        cfg = config or oauth_config
        flow = OAuthFlow(fake_http, CallbackServer(), browser or RecordingBrowserLauncher())
        manager = TokenManager(store or memory_store, flow, cfg)
        client = UxlintClient(manager, flow, fake_http, cfg)
        set_client(client)
        return client

    return _install


@pytest.fixture
def signed_in(
    install_client: Callable[..., UxlintClient],
    make_session: Callable[..., AuthenticationSession],
) -> AuthenticationSession:
    client = install_client()
    session = make_session()
    asyncio.run(client.token_manager.save_session(session))
    return session


class TestVersion:
    def test_version_flag(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == EXIT_SUCCESS
        assert f"uxlint {__version__}" in result.output


class TestStatus:
    def test_not_logged_in(self, cli_runner: CliRunner, install_client: Any) -> None:
        install_client()
        result = cli_runner.invoke(app, ["--no-color", "auth", "status"])

        assert result.exit_code == EXIT_SUCCESS
        assert "Not logged in" in result.output

    def test_not_logged_in_json(self, cli_runner: CliRunner, install_client: Any) -> None:
        install_client()
        result = cli_runner.invoke(app, ["--json", "auth", "status"])

        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.output) == {"authenticated": False}

    def test_logged_in_json(
        self, cli_runner: CliRunner, signed_in: AuthenticationSession
    ) -> None:
        result = cli_runner.invoke(app, ["--json", "auth", "status"])

        assert result.exit_code == EXIT_SUCCESS
        record = json.loads(result.output)
        assert record["authenticated"] is True
        assert record["email"] == "ada@example.com"
        assert record["organization"] == "Analytical Engines"
        assert record["expiresAt"] == signed_in.metadata.expires_at.isoformat()
        assert "access-1" not in result.output

    def test_logged_in_plain(
        self, cli_runner: CliRunner, signed_in: AuthenticationSession
    ) -> None:
        result = cli_runner.invoke(app, ["--plain", "--no-color", "auth", "status"])

        assert result.exit_code == EXIT_SUCCESS
        assert "email\tada@example.com" in result.output


class TestWhoami:
    def test_not_logged_in_exits_3(self, cli_runner: CliRunner, install_client: Any) -> None:
        install_client()
        result = cli_runner.invoke(app, ["--no-color", "auth", "whoami"])

        assert result.exit_code == EXIT_AUTH_FAILURE
        assert "Not authenticated" in result.output
        assert "uxlint auth login" in result.output

    def test_prints_profile(
        self, cli_runner: CliRunner, signed_in: AuthenticationSession
    ) -> None:
        result = cli_runner.invoke(app, ["--json", "auth", "whoami"])

        assert result.exit_code == EXIT_SUCCESS
        profile = json.loads(result.output)
        assert profile["id"] == "user-123"
        assert profile["name"] == "Ada Lovelace"
        assert profile["emailVerified"] is True


class TestToken:
    def test_prints_access_token(
        self, cli_runner: CliRunner, signed_in: AuthenticationSession
    ) -> None:
        result = cli_runner.invoke(app, ["auth", "token"])

        assert result.exit_code == EXIT_SUCCESS
        assert result.output.strip() == "access-1"

    def test_not_logged_in(self, cli_runner: CliRunner, install_client: Any) -> None:
        install_client()
        result = cli_runner.invoke(app, ["--no-color", "auth", "token"])
        assert result.exit_code == EXIT_AUTH_FAILURE


class TestLogout:
    def test_logout(
        self,
        cli_runner: CliRunner,
        signed_in: AuthenticationSession,
        memory_store: MemoryCredentialStore,
    ) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "logout"])

        assert result.exit_code == EXIT_SUCCESS
        assert "Logged out." in result.output
        assert memory_store.entries == {}

    def test_logout_when_logged_out(self, cli_runner: CliRunner, install_client: Any) -> None:
        install_client()
        result = cli_runner.invoke(app, ["--no-color", "auth", "logout"])
        assert result.exit_code == EXIT_SUCCESS

    def test_store_failure_is_a_warning(
        self, cli_runner: CliRunner, install_client: Any
    ) -> None:
        install_client(store=BrokenStore())
        result = cli_runner.invoke(app, ["--no-color", "auth", "logout"])

        assert result.exit_code == EXIT_SUCCESS
        assert "Warning: Could not remove stored credentials" in result.output


class TestLogin:
    def test_login(
        self,
        cli_runner: CliRunner,
        install_client: Any,
        memory_store: MemoryCredentialStore,
    ) -> None:
        install_client(browser=RecordingBrowserLauncher(on_open=_consent))
        result = cli_runner.invoke(app, ["--no-color", "auth", "login", "--timeout", "5"])

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert "Logged in as UXLint User" in result.output
        assert "uxlint-cli:default" in memory_store.entries

    def test_already_authenticated(
        self, cli_runner: CliRunner, signed_in: AuthenticationSession
    ) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "login"])

        assert result.exit_code == EXIT_AUTH_FAILURE
        assert "Already authenticated" in result.output

    def test_missing_client_id(self, cli_runner: CliRunner, install_client: Any) -> None:
        install_client(config=OAuthConfig(client_id=""))
        result = cli_runner.invoke(app, ["--no-color", "auth", "login"])

        assert result.exit_code == EXIT_INVALID_USAGE
        assert "UXLINT_CLOUD_CLIENT_ID" in result.output

    def test_bad_port_range(self, cli_runner: CliRunner, install_client: Any) -> None:
        install_client()
        result = cli_runner.invoke(app, ["auth", "login", "--port-range", "abc"])
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_browser_failure_prints_url_then_times_out(
        self, cli_runner: CliRunner, install_client: Any
    ) -> None:
        browser = RecordingBrowserLauncher(fail=True)
        install_client(browser=browser)
        result = cli_runner.invoke(
            app, ["--no-color", "auth", "login", "--timeout", "1"]
        )

        assert result.exit_code == EXIT_CONNECTION_ERROR
        assert browser.last_url is not None
        assert browser.last_url in result.output
        assert "Timed out" in result.output
