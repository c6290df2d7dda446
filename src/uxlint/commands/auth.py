"""Auth commands -- sign in to uxlint cloud and inspect the session.

Provides the ``uxlint auth`` sub-command group. All commands go through the
process :class:`~uxlint.auth.client.UxlintClient` returned by
:func:`~uxlint.auth.client.get_client`.

Typical workflow::

    uxlint auth login            # opens the browser
    uxlint auth status           # who is signed in, until when
    uxlint auth token            # access token for scripts
    uxlint auth logout
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from uxlint.auth.client import get_client
from uxlint.auth.flow import FlowState
from uxlint.exceptions import AuthenticationError, AuthErrorCode, UxlintError
from uxlint.output import (
    OutputFormat,
    error,
    get_output,
    info,
    print_data,
    print_record,
    progress,
    success,
    suggest,
    warning,
)

auth_app = typer.Typer(no_args_is_help=True)

_STATUS_MESSAGES = {
    FlowState.LISTENER_STARTING: "Starting local callback listener...",
    FlowState.AWAITING_REDIRECT: "Waiting for authorization in your browser...",
    FlowState.EXCHANGING_CODE: "Exchanging authorization code for tokens...",
}

_SUGGESTIONS = {
    AuthErrorCode.INVALID_CONFIG: "Set UXLINT_CLOUD_CLIENT_ID (environment or .env file) and retry.",
    AuthErrorCode.NOT_AUTHENTICATED: "Sign in: uxlint auth login",
    AuthErrorCode.ALREADY_AUTHENTICATED: "Sign out first: uxlint auth logout",
    AuthErrorCode.TOKEN_EXPIRED: "Sign in again: uxlint auth login",
    AuthErrorCode.REFRESH_FAILED: "Sign in again: uxlint auth login",
    AuthErrorCode.NETWORK_ERROR: "Check your network connection and retry.",
    AuthErrorCode.TIMEOUT: "Re-run `uxlint auth login` and complete the sign-in in your browser.",
    AuthErrorCode.USER_DENIED: "Re-run `uxlint auth login` and approve access.",
    AuthErrorCode.INVALID_RESPONSE: "Re-run `uxlint auth login`.",
    AuthErrorCode.KEYCHAIN_ERROR: "Try UXLINT_CREDENTIAL_STORE=file on hosts without a keychain.",
}


def _fail(exc: UxlintError) -> typer.Exit:
    """Report *exc* on stderr and return the matching :class:`typer.Exit`."""
    error(exc.message)
    if isinstance(exc, AuthenticationError):
        hint = _SUGGESTIONS.get(exc.code)
        if hint:
            suggest(hint)
    return typer.Exit(code=exc.exit_code)


def _parse_port_range(value: str) -> tuple[int, int]:
    """Parse ``START-END`` (or a single port) into an inclusive range."""
    start_text, _, end_text = value.partition("-")
    try:
        start = int(start_text)
        end = int(end_text) if end_text else start
    except ValueError:
        raise typer.BadParameter(f"Expected START-END, got '{value}'") from None
    if not (1 <= start <= 65535 and 1 <= end <= 65535):
        raise typer.BadParameter("Ports must be between 1 and 65535")
    return start, end


def _on_status(state: FlowState) -> None:
    message = _STATUS_MESSAGES.get(state)
    if message:
        progress(message)


def _on_browser_failed(exc: AuthenticationError) -> None:
    # Not suppressed by --quiet: the URL is the only way to continue.
    url = exc.context.get("authorization_url")
    if url:
        warning(f"Could not open a browser. Open this URL to continue signing in:\n{url}")
    else:
        warning(exc.message)


@auth_app.command("login")
def auth_login(
    timeout: Optional[float] = typer.Option(
        None, "--timeout", min=1, help="Seconds to wait for the browser sign-in (default 300)."
    ),
    port_range: Optional[str] = typer.Option(
        None, "--port-range", help="Local callback port or range, e.g. 8080-8089."
    ),
) -> None:
    """Sign in to uxlint cloud in the browser.

    Starts a loopback listener, opens the authorization page, and stores
    the resulting session in the credential store. If the browser cannot
    be opened, the URL is printed so it can be opened manually.

    Example::

        uxlint auth login --port-range 8080-8089
    """
    ports = _parse_port_range(port_range) if port_range else None
    try:
        client = get_client()
        info("Opening your browser to sign in to uxlint cloud...")
        profile = asyncio.run(
            client.login(
                callback_ports=ports,
                timeout=timeout,
                on_status=_on_status,
                on_browser_failed=_on_browser_failed,
            )
        )
    except UxlintError as exc:
        raise _fail(exc) from None

    success(f"Logged in as {profile.name} <{profile.email}>")


@auth_app.command("logout")
def auth_logout() -> None:
    """Sign out and remove the stored session.

    Never fails: a credential store error is reported as a warning.
    """
    try:
        client = get_client()
        asyncio.run(client.logout())
    except UxlintError as exc:
        warning(f"Could not remove stored credentials: {exc.message}")
        return
    success("Logged out.")


@auth_app.command("status")
def auth_status() -> None:
    """Show who is signed in and when the session expires.

    Checking the status refreshes a session that is about to expire.
    """
    try:
        session = asyncio.run(get_client().get_status())
    except UxlintError as exc:
        raise _fail(exc) from None

    output = get_output()
    if session is None:
        if output.format == OutputFormat.JSON:
            output.print_json({"authenticated": False})
        else:
            print_data("Not logged in")
            suggest("Sign in: uxlint auth login")
        return

    print_record(
        {
            "authenticated": True,
            "id": session.user.id,
            "email": session.user.email,
            "name": session.user.name,
            "organization": session.user.organization,
            "expiresAt": session.metadata.expires_at.isoformat(),
            "scope": session.tokens.scope,
        },
        title="uxlint session",
    )


@auth_app.command("whoami")
def auth_whoami() -> None:
    """Print the signed-in user's profile. Exits 3 when not signed in."""
    try:
        profile = asyncio.run(get_client().get_user_profile())
    except UxlintError as exc:
        raise _fail(exc) from None

    print_record(profile.model_dump(by_alias=True), title="uxlint user")


@auth_app.command("token")
def auth_token() -> None:
    """Print a valid access token to stdout.

    Example::

        curl -H "Authorization: Bearer $(uxlint auth token)" https://app.uxlint.org/api/...
    """
    try:
        token = asyncio.run(get_client().get_access_token())
    except UxlintError as exc:
        raise _fail(exc) from None

    print_data(token)
