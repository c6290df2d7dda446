"""Exception hierarchy for uxlint.

All exceptions inherit from :class:`UxlintError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`uxlint.exit_codes`.
The top-level error handler in :func:`uxlint.app.main` catches
``UxlintError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Authentication failures are all raised as :class:`AuthenticationError`; the
concrete failure *kind* lives in :attr:`AuthenticationError.code` so callers
can branch on ``exc.code`` instead of on a dozen exception classes::

    try:
        await client.login()
    except AuthenticationError as exc:
        if exc.code is AuthErrorCode.ALREADY_AUTHENTICATED:
            ...

Subclass hierarchy::

    UxlintError (exit 1)
    +-- ConfigError           (exit 2)
    +-- AuthenticationError   (exit code derived from AuthErrorCode)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from uxlint.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)


class UxlintError(Exception):
    """Base exception for all uxlint errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`uxlint.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(UxlintError):
    """Raised for configuration problems outside the auth core (bad CLI values, unreadable files)."""

    exit_code = EXIT_INVALID_USAGE


class AuthErrorCode(str, Enum):
    """Kinds of authentication failure.

    The values are stable strings so they can be logged, compared, and
    emitted in ``--json`` output.
    """

    INVALID_CONFIG = "AUTH_INVALID_CONFIG"
    NOT_AUTHENTICATED = "AUTH_NOT_AUTHENTICATED"
    ALREADY_AUTHENTICATED = "AUTH_ALREADY_AUTHENTICATED"
    TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    REFRESH_FAILED = "AUTH_REFRESH_FAILED"
    NETWORK_ERROR = "AUTH_NETWORK_ERROR"
    USER_DENIED = "AUTH_USER_DENIED"
    INVALID_RESPONSE = "AUTH_INVALID_RESPONSE"
    KEYCHAIN_ERROR = "AUTH_KEYCHAIN_ERROR"
    BROWSER_FAILED = "AUTH_BROWSER_FAILED"
    TIMEOUT = "AUTH_TIMEOUT"
    CANCELLED = "AUTH_CANCELLED"


_EXIT_CODES: dict[AuthErrorCode, int] = {
    AuthErrorCode.INVALID_CONFIG: EXIT_INVALID_USAGE,
    AuthErrorCode.NETWORK_ERROR: EXIT_CONNECTION_ERROR,
    AuthErrorCode.TIMEOUT: EXIT_CONNECTION_ERROR,
    AuthErrorCode.CANCELLED: EXIT_CANCELLED,
    AuthErrorCode.KEYCHAIN_ERROR: EXIT_GENERIC_FAILURE,
}


class AuthenticationError(UxlintError):
    """Raised by the authentication core for every expected failure.

    Args:
        code: The failure kind.
        message: Human-readable description. Must never contain tokens,
            authorization codes, or PKCE verifiers.
        context: Optional non-secret diagnostic details (HTTP status,
            provider error code, failing flow step, ...).
        cause: Optional lower-level exception. It is attached as
            ``__cause__`` so tracebacks show the original failure even when
            the error is created outside a ``raise ... from`` statement.

    Example::

        raise AuthenticationError(
            AuthErrorCode.NETWORK_ERROR,
            "Network error during token refresh",
            context={"status_code": 503},
        ) from exc
    """

    def __init__(
        self,
        code: AuthErrorCode,
        message: str,
        context: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, exit_code=_EXIT_CODES.get(code, EXIT_AUTH_FAILURE))
        self.code = code
        self.context: dict[str, Any] = dict(context or {})
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"AuthenticationError({self.code.value}, {self.message!r})"
