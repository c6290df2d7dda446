"""Built-in CLI sub-commands for uxlint.

* :mod:`~uxlint.commands.auth` -- sign in to uxlint cloud, inspect the
  current session, and print access tokens for scripting.

Each module exports a :class:`typer.Typer` sub-application that
:func:`uxlint.app.main` registers on the root app.
"""
