"""Authentication core for uxlint: OAuth 2.0 Authorization Code + PKCE.

The main entry points are:

- :class:`UxlintClient` -- the session facade (login, logout, status,
  profile, access token). :func:`get_client` returns the process instance.
- :class:`OAuthFlow` -- the interactive authorization flow.
- :class:`TokenManager` -- session persistence, expiry, and refresh.
- :class:`CredentialStore` -- secure storage interface with keyring, file,
  and in-memory variants.

Typical usage::

    from uxlint.auth import get_client

    client = get_client()
    profile = await client.login()
    token = await client.get_access_token()
"""

from uxlint.auth.browser import BrowserLauncher, RecordingBrowserLauncher, WebBrowserLauncher
from uxlint.auth.callback_server import CallbackServer
from uxlint.auth.client import UxlintClient, get_client, reset_client, set_client
from uxlint.auth.credential_store import (
    CredentialStore,
    FileCredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
    create_credential_store,
)
from uxlint.auth.flow import FlowState, OAuthFlow, build_authorization_url
from uxlint.auth.http_client import OAuthHttpClient
from uxlint.auth.pkce import generate_pkce_parameters
from uxlint.auth.token_manager import TokenManager

__all__ = [
    "BrowserLauncher",
    "CallbackServer",
    "CredentialStore",
    "FileCredentialStore",
    "FlowState",
    "KeyringCredentialStore",
    "MemoryCredentialStore",
    "OAuthFlow",
    "OAuthHttpClient",
    "RecordingBrowserLauncher",
    "TokenManager",
    "UxlintClient",
    "WebBrowserLauncher",
    "build_authorization_url",
    "create_credential_store",
    "generate_pkce_parameters",
    "get_client",
    "reset_client",
    "set_client",
]
