"""Tests for logging setup."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

from dispatch.log import LOGGER_NAME, setup_logging


def test_installs_rich_handler() -> None:
    logger = setup_logging(logging.DEBUG)
    assert logger.name == LOGGER_NAME
    assert logger.level == logging.DEBUG
    assert [type(h) for h in logger.handlers] == [RichHandler]


def test_file_handler_writes_records(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "dispatch.log"
    logger = setup_logging(logging.INFO, log_file=log_file)
    assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)

    logging.getLogger("dispatch.engine.ledger").info("Task t1 assigned to a1")
    for handler in logger.handlers:
        handler.flush()

    text = log_file.read_text()
    assert "Task t1 assigned to a1" in text
    assert "[dispatch.engine.ledger]" in text


def test_repeat_setup_replaces_handlers(tmp_path: Path) -> None:
    setup_logging(log_file=tmp_path / "a.log")
    logger = setup_logging()
    assert len(logger.handlers) == 1
