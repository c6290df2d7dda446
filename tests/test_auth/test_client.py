"""Tests for the UxlintClient session facade."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from uxlint.auth import client as client_module
from uxlint.auth.browser import RecordingBrowserLauncher
from uxlint.auth.callback_server import CallbackServer
from uxlint.auth.client import UxlintClient, get_client, reset_client, set_client
from uxlint.auth.credential_store import FileCredentialStore, MemoryCredentialStore
from uxlint.auth.flow import OAuthFlow
from uxlint.auth.token_manager import TokenManager
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import AuthenticationSession, OAuthConfig

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _consent(auth_url: str) -> None:
    query = {k: v[0] for k, v in parse_qs(urlsplit(auth_url).query).items()}
    redirect = urlsplit(query["redirect_uri"])
    async with httpx.AsyncClient(timeout=5.0) as http:
        await http.get(
            f"http://127.0.0.1:{redirect.port}{redirect.path}",
            params={"code": "ABC", "state": query["state"]},
        )


def _build(
    config: OAuthConfig,
    store: MemoryCredentialStore,
    http: Any,
    browser: Optional[RecordingBrowserLauncher] = None,
) -> UxlintClient:
    flow = OAuthFlow(http, CallbackServer(), browser or RecordingBrowserLauncher())
    manager = TokenManager(store, flow, config, clock=lambda: NOW)
    return UxlintClient(manager, flow, http, config)


@pytest.fixture
def client(oauth_config: OAuthConfig, memory_store: MemoryCredentialStore, fake_http: Any) -> UxlintClient:
    return _build(oauth_config, memory_store, fake_http)


@pytest.fixture
def logged_in(
    client: UxlintClient, make_session: Callable[..., AuthenticationSession]
) -> Callable[..., Any]:
    async def _login(seconds: float = 3600, **overrides: Any) -> AuthenticationSession:
        session = make_session(expires_in_seconds=seconds, now=NOW, **overrides)
        await client.token_manager.save_session(session)
        return session

    return _login


class TestLogin:
    async def test_login_persists_session(
        self,
        oauth_config: OAuthConfig,
        memory_store: MemoryCredentialStore,
        fake_http: Any,
    ) -> None:
        browser = RecordingBrowserLauncher(on_open=_consent)
        client = _build(oauth_config, memory_store, fake_http, browser)

        profile = await client.login(timeout=5)

        # Discovery is unavailable in FakeHttpClient, so the placeholder profile is used.
        assert profile.id == "unknown"
        assert await client.is_authenticated() is True
        session = await client.get_status()
        assert session is not None
        assert session.tokens.access_token == "access-2"
        assert session.metadata.created_at == NOW
        assert "uxlint-cli:default" in memory_store.entries

    async def test_already_authenticated(
        self, client: UxlintClient, logged_in: Callable[..., Any], fake_http: Any
    ) -> None:
        await logged_in()

        with pytest.raises(AuthenticationError) as exc_info:
            await client.login(timeout=1)

        assert exc_info.value.code is AuthErrorCode.ALREADY_AUTHENTICATED
        assert fake_http.exchanges == []

    async def test_missing_client_id(
        self, memory_store: MemoryCredentialStore, fake_http: Any
    ) -> None:
        client = _build(OAuthConfig(client_id="  "), memory_store, fake_http)

        with pytest.raises(AuthenticationError) as exc_info:
            await client.login(timeout=1)

        assert exc_info.value.code is AuthErrorCode.INVALID_CONFIG
        assert "UXLINT_CLOUD_CLIENT_ID" in exc_info.value.message

    async def test_flow_failure_saves_nothing(
        self, client: UxlintClient, memory_store: MemoryCredentialStore
    ) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await client.login(timeout=0.05)

        assert exc_info.value.code is AuthErrorCode.TIMEOUT
        assert memory_store.entries == {}


class TestLogout:
    async def test_logout_is_idempotent(
        self,
        client: UxlintClient,
        logged_in: Callable[..., Any],
        memory_store: MemoryCredentialStore,
    ) -> None:
        await logged_in()

        await client.logout()
        await client.logout()
        await client.logout()

        assert memory_store.entries == {}
        assert await client.is_authenticated() is False


class TestStatusAndProfile:
    async def test_status_without_session(self, client: UxlintClient) -> None:
        assert await client.get_status() is None
        assert await client.is_authenticated() is False

    async def test_get_user_profile(
        self, client: UxlintClient, logged_in: Callable[..., Any]
    ) -> None:
        session = await logged_in()
        assert await client.get_user_profile() == session.user

    async def test_get_user_profile_not_authenticated(self, client: UxlintClient) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await client.get_user_profile()

        assert exc_info.value.code is AuthErrorCode.NOT_AUTHENTICATED
        assert "uxlint auth login" in exc_info.value.message

    async def test_status_refreshes_expiring_session(
        self, client: UxlintClient, logged_in: Callable[..., Any], fake_http: Any
    ) -> None:
        await logged_in(seconds=60)

        session = await client.get_status()

        assert session is not None
        assert session.tokens.access_token == "access-2"
        assert len(fake_http.refreshes) == 1


class TestAccessToken:
    async def test_returns_access_token(
        self, client: UxlintClient, logged_in: Callable[..., Any]
    ) -> None:
        await logged_in()
        assert await client.get_access_token() == "access-1"

    async def test_not_authenticated(self, client: UxlintClient) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await client.get_access_token()
        assert exc_info.value.code is AuthErrorCode.NOT_AUTHENTICATED

    async def test_refresh_yielding_expired_token(
        self,
        client: UxlintClient,
        logged_in: Callable[..., Any],
        fake_http: Any,
        make_tokens: Callable[..., Any],
    ) -> None:
        fake_http.tokens = make_tokens(access_token="access-2", expires_in=0)
        await logged_in(seconds=-5)

        with pytest.raises(AuthenticationError) as exc_info:
            await client.get_access_token()
        assert exc_info.value.code is AuthErrorCode.TOKEN_EXPIRED


class TestProcessClient:
    def test_set_and_reset(self, client: UxlintClient) -> None:
        set_client(client)
        assert get_client() is client

        reset_client()
        assert client_module._client is None

    def test_get_client_builds_default(
        self, isolated_config: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("UXLINT_CLOUD_CLIENT_ID", "from-env")
        monkeypatch.setenv("UXLINT_CREDENTIAL_STORE", "file")

        default = get_client()

        assert default is get_client()
        assert default.config.client_id == "from-env"
        assert isinstance(default.token_manager.credential_store, FileCredentialStore)
