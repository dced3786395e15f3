"""Tests for logging configuration."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from cadence_player.logging_utils import JsonLogFormatter, resolve_level, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    for handler in original_handlers:
        root.addHandler(handler)
    root.setLevel(original_level)


def _flush_root_handlers() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_setup_logging_default_path_writes_json(tmp_path, restore_root_logger) -> None:
    log_path = setup_logging(log_dir=tmp_path, level="INFO", console=False)
    assert log_path == tmp_path / "cadence-player.log"
    logging.getLogger("cadence_player.test").info(
        "default-log-path", extra={"track_id": "7"}
    )
    _flush_root_handlers()
    line = log_path.read_text(encoding="utf-8").strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["message"] == "default-log-path"
    assert payload["level"] == "INFO"
    assert payload["context"] == {"track_id": "7"}
    assert len(restore_root_logger.handlers) == 1


def test_setup_logging_custom_file_and_console(tmp_path, restore_root_logger) -> None:
    custom = tmp_path / "custom" / "player.log"
    log_path = setup_logging(log_dir=tmp_path, level="DEBUG", log_file=custom)
    assert log_path == custom
    logging.getLogger("cadence_player.test").debug("custom-log-path")
    _flush_root_handlers()
    assert "custom-log-path" in custom.read_text(encoding="utf-8")
    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 2


def test_formatter_includes_exception_text() -> None:
    formatter = JsonLogFormatter()
    try:
        raise RuntimeError("kaput")
    except RuntimeError:
        record = logging.getLogger("x").makeRecord(
            "x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
        )
    payload = json.loads(formatter.format(record))
    assert "kaput" in payload["exception"]
    assert "context" not in payload


def test_resolve_level_falls_back_to_info() -> None:
    assert resolve_level("warning") == logging.WARNING
    assert resolve_level("nonsense") == logging.INFO
    assert resolve_level(logging.ERROR) == logging.ERROR