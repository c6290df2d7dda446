"""Loopback HTTP listener that captures the OAuth authorization redirect.

:class:`CallbackServer` binds an :mod:`aiohttp` application to the first free
port of a port or port range, waits for exactly one redirect to the callback
path, and resolves the pending wait with the authorization code or fails it
with an :class:`~uxlint.exceptions.AuthenticationError`. Every outcome
(success, provider error, state mismatch, timeout, explicit :meth:`stop`)
tears the listener down exactly once.

Usage::

    server = CallbackServer()
    port = await server.start((8080, 8089), expected_state=pkce.state)
    result = await server.wait(timeout=300)
"""

from __future__ import annotations

import asyncio
import hmac
import html
import logging
from typing import Optional, Union

from aiohttp import web

from uxlint.auth.constants import (
    DEFAULT_CALLBACK_PATH,
    MAX_AUTH_CODE_LENGTH,
    MAX_PORT_RANGE_SIZE,
    MAX_STATE_LENGTH,
    OAUTH_FLOW_TIMEOUT,
)
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.models import CallbackResult

logger = logging.getLogger(__name__)

PortSpec = Union[int, tuple[int, int]]

_PAGE_HTML = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title>
<style>
  body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f0f2f5; color: #1a1a2e; }}
  .card {{ text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }}
  h1 {{ font-size: 1.5rem; margin-bottom: 0.5rem; color: {color}; }}
  p {{ color: #666; }}
</style></head>
<body><div class="card">
  <h1>{title}</h1>
  <p>{message}</p>
</div></body></html>"""

_SECURITY_HEADERS = {
    "Cache-Control": "no-store",
    "Content-Security-Policy": "default-src 'none'; style-src 'unsafe-inline'",
    "X-Content-Type-Options": "nosniff",
    "Connection": "close",
}


def _page(title: str, message: str, *, failed: bool = False) -> web.Response:
    body = _PAGE_HTML.format(
        title=html.escape(title),
        message=html.escape(message),
        color="#cc0000" if failed else "#1a7f37",
    )
    return web.Response(
        text=body,
        content_type="text/html",
        charset="utf-8",
        headers=_SECURITY_HEADERS,
    )


def _candidate_ports(port: PortSpec) -> list[int]:
    """Expand a port or inclusive ``(start, end)`` range into the ports to try.

    Raises:
        AuthenticationError: ``INVALID_CONFIG`` for an inverted range or one
            spanning more than :data:`MAX_PORT_RANGE_SIZE` ports.
    """
    if isinstance(port, int):
        return [port]
    start, end = port
    if start > end:
        raise AuthenticationError(
            AuthErrorCode.INVALID_CONFIG,
            f"Invalid callback port range {start}-{end}: start is greater than end",
        )
    if end - start + 1 > MAX_PORT_RANGE_SIZE:
        raise AuthenticationError(
            AuthErrorCode.INVALID_CONFIG,
            f"Callback port range {start}-{end} is too large "
            f"(at most {MAX_PORT_RANGE_SIZE} ports)",
        )
    return list(range(start, end + 1))


def _states_match(received: str, expected: str) -> bool:
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


class CallbackServer:
    """Single-use loopback listener for the OAuth redirect.

    One instance serves one authorization attempt at a time. After
    :meth:`wait` returns or raises, the listener is closed and the instance
    may be started again.

    Args:
        host: Interface to bind. Loopback only.
    """

    def __init__(self, host: str = "127.0.0.1") -> None:
        self._host = host
        self._runner: Optional[web.AppRunner] = None
        self._future: Optional[asyncio.Future[CallbackResult]] = None
        self._expected_state = ""
        self._bound_port: Optional[int] = None
        self._waiting = False

    @property
    def bound_port(self) -> Optional[int]:
        """Port the listener is bound to, or ``None`` when not running."""
        return self._bound_port

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(
        self,
        port: PortSpec,
        expected_state: str,
        path: str = DEFAULT_CALLBACK_PATH,
    ) -> int:
        """Bind the listener without waiting for the redirect.

        Ports are tried in ascending order and the first one that binds is
        used. Binding happens before any timeout starts.

        Args:
            port: A single port or an inclusive ``(start, end)`` range.
            expected_state: The ``state`` value sent in the authorization
                request.
            path: Callback path, for example ``/callback``.

        Returns:
            The bound port.

        Raises:
            AuthenticationError: ``NETWORK_ERROR`` when no port in the range
                can be bound, ``INVALID_CONFIG`` for a malformed range.
            RuntimeError: If the listener is already running.
        """
        if self._runner is not None:
            raise RuntimeError("Callback server is already running")

        candidates = _candidate_ports(port)
        app = web.Application()
        app.router.add_get(path, self._handle_callback)

        # access_log is disabled: the request line carries the authorization code.
        runner = web.AppRunner(app, access_log=None, shutdown_timeout=1.0)
        await runner.setup()

        last_error: Optional[OSError] = None
        for candidate in candidates:
            site = web.TCPSite(runner, self._host, candidate)
            try:
                await site.start()
            except OSError as exc:
                logger.debug("Callback port %d unavailable: %s", candidate, exc)
                last_error = exc
                await site.stop()
                continue

            self._runner = runner
            self._bound_port = runner.addresses[0][1]
            self._expected_state = expected_state
            self._future = asyncio.get_running_loop().create_future()
            logger.info(
                "Callback listener bound to %s:%d%s", self._host, self._bound_port, path
            )
            return self._bound_port

        await runner.cleanup()
        span = str(candidates[0]) if len(candidates) == 1 else f"{candidates[0]}-{candidates[-1]}"
        raise AuthenticationError(
            AuthErrorCode.NETWORK_ERROR,
            f"Could not start the callback listener: all ports failed ({span})",
            context={"ports": span},
            cause=last_error,
        )

    async def wait(self, timeout: float = OAUTH_FLOW_TIMEOUT) -> CallbackResult:
        """Wait for the redirect, then close the listener.

        Args:
            timeout: Seconds to wait before failing.

        Returns:
            The captured :class:`~uxlint.models.CallbackResult`.

        Raises:
            AuthenticationError: ``USER_DENIED``, ``INVALID_RESPONSE``,
                ``TIMEOUT``, or ``CANCELLED`` (when :meth:`stop` is called
                while waiting).
            RuntimeError: If :meth:`start` has not been called.
        """
        future = self._future
        if future is None:
            raise RuntimeError("Callback server is not running")

        self._waiting = True
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise AuthenticationError(
                AuthErrorCode.TIMEOUT,
                f"Timed out after {timeout:g} seconds waiting for the authorization callback",
                context={"timeout": timeout},
            ) from None
        finally:
            self._waiting = False
            await self.stop()

    async def wait_for_callback(
        self,
        port: PortSpec,
        expected_state: str,
        path: str = DEFAULT_CALLBACK_PATH,
        timeout: float = OAUTH_FLOW_TIMEOUT,
    ) -> CallbackResult:
        """Start the listener and wait for the redirect in one call."""
        await self.start(port, expected_state, path)
        return await self.wait(timeout)

    async def stop(self) -> None:
        """Close the listener and cancel a pending wait.

        Safe to call any number of times. A pending :meth:`wait` fails with
        ``CANCELLED``.
        """
        runner, self._runner = self._runner, None
        future, self._future = self._future, None
        self._bound_port = None

        if future is not None and not future.done():
            if self._waiting:
                future.set_exception(
                    AuthenticationError(
                        AuthErrorCode.CANCELLED, "Authorization was cancelled"
                    )
                )
            else:
                future.cancel()
        elif future is not None and not future.cancelled():
            # Mark a callback error nobody waited for as retrieved.
            future.exception()

        if runner is not None:
            await runner.cleanup()
            logger.debug("Callback listener closed")

    async def _handle_callback(self, request: web.Request) -> web.Response:
        future = self._future
        if future is None or future.done():
            return _page(
                "Authorization already handled",
                "You can close this window and return to the terminal.",
            )

        query = request.query
        error = query.get("error")
        if error:
            description = query.get("error_description", "")
            logger.warning("Provider returned authorization error: %s", error)
            detail = f"{error}: {description}" if description else error
            future.set_exception(
                AuthenticationError(
                    AuthErrorCode.USER_DENIED,
                    f"Authorization was denied ({detail})",
                    context={"error": error, "error_description": description},
                )
            )
            return _page("Authorization failed", detail, failed=True)

        state = query.get("state", "")
        if len(state) > MAX_STATE_LENGTH or not _states_match(state, self._expected_state):
            logger.warning("Rejected callback with mismatched state")
            future.set_exception(
                AuthenticationError(
                    AuthErrorCode.INVALID_RESPONSE,
                    "Invalid state parameter in authorization callback",
                )
            )
            return _page(
                "Authorization failed",
                "The request could not be verified. Please try again.",
                failed=True,
            )

        code = query.get("code", "")
        if not code or len(code) > MAX_AUTH_CODE_LENGTH:
            future.set_exception(
                AuthenticationError(
                    AuthErrorCode.INVALID_RESPONSE,
                    "Missing or malformed authorization code in callback",
                )
            )
            return _page(
                "Authorization failed",
                "No authorization code was received. Please try again.",
                failed=True,
            )

        future.set_result(CallbackResult(code=code, state=state))
        return _page(
            "Authorization complete",
            "You can close this window and return to the terminal.",
        )
