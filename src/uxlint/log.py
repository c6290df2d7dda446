"""File logging for uxlint.

Modules log through ``logging.getLogger(__name__)``; this module only wires
the ``uxlint`` logger hierarchy to a daily-rotating file under
``<data_dir>/logs/``. Nothing is ever logged to stdout, which is reserved
for command output, and user-facing diagnostics go through
:mod:`uxlint.output` instead.
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

_LOGGER_NAME = "uxlint"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_BACKUP_DAYS = 14


def configure_logging(verbose: bool = False, log_dir: Optional[Path] = None) -> Path:
    """Attach a rotating file handler to the ``uxlint`` logger.

    Calling this again replaces the previously installed handler, so it is
    safe to invoke once per CLI invocation and from tests.

    Args:
        verbose: Log at DEBUG level instead of INFO.
        log_dir: Directory for log files. Defaults to
            :func:`~uxlint.config.get_logs_dir`.

    Returns:
        Path of the active log file.
    """
    if log_dir is None:
        from uxlint.config import get_logs_dir

        log_dir = get_logs_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "uxlint.log"

    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_uxlint_handler", False):
            logger.removeHandler(handler)
            handler.close()

    handler = TimedRotatingFileHandler(
        log_path,
        when="midnight",
        backupCount=_BACKUP_DAYS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handler._uxlint_handler = True  # type: ignore[attr-defined]

    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
    return log_path
