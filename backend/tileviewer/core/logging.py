"""Logging configuration for the tile viewer package.

All modules obtain their logger through get_logger(__name__). Loggers live
under the ``tileviewer`` namespace, so a single handler attached to the
package logger formats every record. Fields passed through ``extra`` are
appended to the message as ``key=value`` pairs, which keeps per-layer
diagnostics (layer id, tile counts) greppable.

Example:
    >>> from tileviewer.core.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.warning("Tile dropped", extra={"layer_id": "ortho-1"})
"""

from __future__ import annotations

import functools
import logging
import os
import sys

PACKAGE_LOGGER = "tileviewer"

_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message", "asctime",
    }
)


class ExtraFieldsFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields to the rendered message."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        base_message = super().format(record)
        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if not extra_fields:
            return base_message

        extra_str = " ".join(f"{k}={v}" for k, v in extra_fields.items())
        return f"{base_message} | {extra_str}"


def resolve_level(level: str | int | None = None) -> int:
    """Translate a level name (or the LOG_LEVEL variable) to a level number.

    Unknown names fall back to INFO.
    """
    if isinstance(level, int):
        return level

    name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if name == "WARN":
        name = "WARNING"
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def _has_package_handler(logger: logging.Logger) -> bool:
    return any(getattr(h, "_tileviewer", False) for h in logger.handlers)


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Attach the package handler once and set the package level.

    Calling it again only updates the level, so the application factory can
    apply the configured level after modules have already logged.

    Args:
        level: Level name or number. Defaults to the LOG_LEVEL variable.

    Returns:
        The ``tileviewer`` package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(resolve_level(level))

    if not _has_package_handler(logger):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ExtraFieldsFormatter())
        handler._tileviewer = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger


@functools.lru_cache(maxsize=None)
def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        Configured logging.Logger instance.
    """
    if not _has_package_handler(logging.getLogger(PACKAGE_LOGGER)):
        configure_logging()
    if name != PACKAGE_LOGGER and not name.startswith(f"{PACKAGE_LOGGER}."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
