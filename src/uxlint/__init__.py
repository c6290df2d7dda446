"""uxlint -- authentication core of the uxlint command-line tool.

This package signs users of the ``uxlint`` CLI in to UXLint Cloud with the
OAuth 2.0 Authorization Code flow and PKCE, keeps the resulting session in
the operating system's credential store, and refreshes it transparently on
later invocations.

Typical workflow::

    uxlint auth login     # open the browser and sign in
    uxlint auth status    # show who is signed in and when the token expires
    uxlint auth logout    # forget the stored session

Modules:
    app: Typer application and CLI entry point.
    auth: PKCE, callback listener, token exchange, credential storage,
        token lifecycle and the session facade.
    models: Pydantic models shared across the package.
    config: XDG-aware directories and OAuth configuration loading.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    log: File logging setup.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.4.0"
