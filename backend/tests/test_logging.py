"""Tests for the package logging helpers in tileviewer.core.logging."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tileviewer.core import logging as app_logging

if TYPE_CHECKING:
    import pytest


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="tileviewer.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Tile dropped",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_extra_fields() -> None:
    formatter = app_logging.ExtraFieldsFormatter()
    output = formatter.format(_record(layer_id="ortho-1", tiles=4))
    assert output.endswith("Tile dropped | layer_id=ortho-1 tiles=4")
    assert "tileviewer.test - WARNING" in output


def test_formatter_without_extra_fields() -> None:
    formatter = app_logging.ExtraFieldsFormatter()
    assert formatter.format(_record()).endswith("Tile dropped")


def test_resolve_level_names(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test level names, aliases, numbers and the LOG_LEVEL fallback."""
    assert app_logging.resolve_level("debug") == logging.DEBUG
    assert app_logging.resolve_level("WARN") == logging.WARNING
    assert app_logging.resolve_level(logging.ERROR) == logging.ERROR
    assert app_logging.resolve_level("no-such-level") == logging.INFO

    monkeypatch.setenv("LOG_LEVEL", "error")
    assert app_logging.resolve_level() == logging.ERROR


def test_configure_logging_attaches_one_handler() -> None:
    """Test repeated configuration updates the level without new handlers."""
    logger = app_logging.configure_logging("DEBUG")
    handlers_before = list(logger.handlers)
    try:
        app_logging.configure_logging("WARNING")
        assert logger.level == logging.WARNING
        assert logger.handlers == handlers_before
        assert sum(
            1 for h in logger.handlers if getattr(h, "_tileviewer", False)
        ) == 1
    finally:
        app_logging.configure_logging("INFO")


def test_get_logger_uses_package_namespace() -> None:
    assert app_logging.get_logger("tileviewer.services.pipeline").name == (
        "tileviewer.services.pipeline"
    )
    assert app_logging.get_logger("tests").name == "tileviewer.tests"
    assert app_logging.get_logger("tests") is app_logging.get_logger("tests")
