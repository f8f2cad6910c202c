"""Logging setup shared by the CLI, the scheduler threads and the HTTP service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

_LOGGER_NAME = "ghostsite"
CONSOLE_FORMAT = "[ghostsite] %(levelname)s %(threadName)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"
# uvicorn logs under its own names; its errors belong next to ours.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error")


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``ghostsite`` or a child such as ``ghostsite.scheduler``."""
    if not name:
        return logging.getLogger(_LOGGER_NAME)
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install console (and optional file) handlers on the ghostsite logger.

    Calling it again replaces the handlers, so a config reload in ``dev`` does
    not duplicate lines. The uvicorn loggers share the same handlers at
    WARNING and above.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = [
        _handler(logging.StreamHandler(), level, CONSOLE_FORMAT)
    ]
    if log_file is not None:
        handlers.append(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), level, FILE_FORMAT)
        )

    logger = logging.getLogger(_LOGGER_NAME)
    for name, name_level in [(_LOGGER_NAME, level)] + [
        (server, logging.WARNING) for server in SERVER_LOGGERS
    ]:
        target = logging.getLogger(name)
        for old in list(target.handlers):
            target.removeHandler(old)
            old.close()
        target.setLevel(name_level)
        target.propagate = False
        for handler in handlers:
            target.addHandler(handler)
    return logger


__all__ = ["configure_logging", "get_logger"]
