"""Tests for the console-script entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from uxlint import app as app_module
from uxlint.exceptions import AuthenticationError, AuthErrorCode
from uxlint.exit_codes import EXIT_CANCELLED, EXIT_CONNECTION_ERROR, EXIT_GENERIC_FAILURE


def _raising(exc: BaseException):
    def _app() -> None:
        raise exc

    return _app


class TestMain:
    def test_uxlint_error_exit_code(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setattr(
            app_module,
            "app",
            _raising(AuthenticationError(AuthErrorCode.NETWORK_ERROR, "Network unreachable")),
        )

        with pytest.raises(SystemExit) as exc_info:
            app_module.main()

        assert exc_info.value.code == EXIT_CONNECTION_ERROR
        assert "Network unreachable" in capsys.readouterr().err

    def test_keyboard_interrupt(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(app_module, "app", _raising(KeyboardInterrupt()))

        with pytest.raises(SystemExit) as exc_info:
            app_module.main()
        assert exc_info.value.code == EXIT_CANCELLED

    def test_unexpected_error_writes_crash_log(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(app_module, "app", _raising(ValueError("boom")))

        with pytest.raises(SystemExit) as exc_info:
            app_module.main()

        assert exc_info.value.code == EXIT_GENERIC_FAILURE
        logs = list((isolated_config / "data" / "uxlint" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "ValueError: boom" in logs[0].read_text()
