from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

_CONSOLE_HANDLER: logging.Handler | None = None
_FILE_HANDLER: logging.Handler | None = None
_CONFIGURED_LOG_PATH: str | None = None

_CONSOLE_FORMAT = "%(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _level_from_name(name: str) -> int:
    try:
        return int(getattr(logging, name.upper()))
    except (AttributeError, TypeError, ValueError):
        return logging.INFO


def configure_logging(*, level: str = "INFO", log_path: Optional[Path] = None) -> None:
    """Configure stdlib logging for the CLI.

    Console diagnostics go to stderr (stdout stays clean for ``--json``
    output). When ``log_path`` is given, records are also appended to that
    file. Idempotent per-process: repeated calls adjust the level and swap the
    file handler without duplicating handlers.
    """
    global _CONSOLE_HANDLER, _FILE_HANDLER, _CONFIGURED_LOG_PATH

    root = logging.getLogger()
    root.setLevel(_level_from_name(level))

    if _CONSOLE_HANDLER is None:
        _CONSOLE_HANDLER = logging.StreamHandler(sys.stderr)
        _CONSOLE_HANDLER.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        root.addHandler(_CONSOLE_HANDLER)
    _CONSOLE_HANDLER.setLevel(_level_from_name(level))

    resolved = str(Path(log_path).resolve()) if log_path else None
    if resolved == _CONFIGURED_LOG_PATH:
        return

    # Replace the installed file handler when switching paths.
    if _FILE_HANDLER is not None:
        root.removeHandler(_FILE_HANDLER)
        _FILE_HANDLER.close()
        _FILE_HANDLER = None
        _CONFIGURED_LOG_PATH = None

    if resolved is None:
        return

    Path(resolved).parent.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(resolved, encoding="utf-8")
    fh.setLevel(_level_from_name(level))
    fh.setFormatter(logging.Formatter(_FILE_FORMAT))
    root.addHandler(fh)

    _FILE_HANDLER = fh
    _CONFIGURED_LOG_PATH = resolved


def reset_logging_for_tests() -> None:
    """Test-only: remove the handlers installed by :func:`configure_logging`."""
    global _CONSOLE_HANDLER, _FILE_HANDLER, _CONFIGURED_LOG_PATH
    root = logging.getLogger()
    for handler in (_CONSOLE_HANDLER, _FILE_HANDLER):
        if handler is not None:
            root.removeHandler(handler)
            handler.close()
    _CONSOLE_HANDLER = None
    _FILE_HANDLER = None
    _CONFIGURED_LOG_PATH = None
    root.setLevel(logging.WARNING)


__all__ = ["configure_logging", "reset_logging_for_tests"]
