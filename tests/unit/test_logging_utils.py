"""Tests for logging setup and stage timing."""

import logging

import cv2
import pytest
from rich.logging import RichHandler

from doc_scanner.config import LoggingConfig, ScannerConfig
from doc_scanner.parallel_pipeline import _init_worker
from doc_scanner.utils.logging_utils import (
    PERFORMANCE_LOGGER,
    get_logger,
    log_timing,
    setup_logging,
    setup_logging_from_config,
)


def test_rich_handler_installed():
    logger = setup_logging(level="INFO", use_rich=True)
    assert logger.name == "doc_scanner"
    assert any(isinstance(h, RichHandler) for h in logger.handlers)


def test_plain_handler_and_file(temp_dir):
    log_file = temp_dir / "logs" / "scan.log"
    logger = setup_logging(level="WARNING", log_file=log_file, use_rich=False)
    get_logger("doc_scanner.pipeline").debug("written to file only")
    for handler in logger.handlers:
        handler.flush()
    assert "written to file only" in log_file.read_text(encoding="utf-8")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_performance_logger_toggle():
    setup_logging(include_performance=False, use_rich=False)
    assert logging.getLogger(PERFORMANCE_LOGGER).disabled
    setup_logging(include_performance=True, use_rich=False)
    assert not logging.getLogger(PERFORMANCE_LOGGER).disabled


def test_setup_from_config():
    logger = setup_logging_from_config(LoggingConfig(level="ERROR", use_rich=False))
    assert logger.level == logging.ERROR


def test_log_timing_records_duration():
    with log_timing("unit operation") as stats:
        stats["items"] = 3
    assert stats["duration"] >= 0
    assert stats["items"] == 3


def test_log_timing_reraises():
    with pytest.raises(RuntimeError):
        with log_timing("failing operation"):
            raise RuntimeError("boom")


def test_setup_from_config_aligns_opencv(monkeypatch):
    levels = []
    monkeypatch.setattr(cv2, "setLogLevel", levels.append)
    setup_logging_from_config(LoggingConfig(level="DEBUG", use_rich=False))
    setup_logging_from_config(LoggingConfig(level="ERROR", use_rich=False))
    assert levels == [5, 2]


def test_worker_initializer_applies_logging_config():
    config = ScannerConfig(logging={"level": "WARNING", "use_rich": False})
    _init_worker(config)
    assert logging.getLogger("doc_scanner").level == logging.WARNING
