"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~uxlint.exceptions.UxlintError` subclass or
:class:`~uxlint.exceptions.AuthErrorCode`. External tooling (CI scripts,
shell wrappers) can inspect the exit code to determine the failure class
without parsing stderr.

Example::

    $ uxlint auth whoami
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- not signed in
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or the configuration is incomplete."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CANCELLED = 130
"""The operation was interrupted by the user (Ctrl-C)."""
