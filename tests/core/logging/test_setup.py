"""Tests for logging setup."""

import json
import logging

import pytest

from core.logging.context import clear_log_context, get_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import NOISY_LOGGERS, get_log_file_path, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    clear_log_context()


def test_get_log_file_path(tmp_path):
    path = get_log_file_path(tmp_path, "restlink")
    assert path.parent.parent == tmp_path
    assert path.name.startswith("restlink_")
    assert path.suffix == ".log"


def test_setup_logging_writes_json_file(tmp_path):
    logger = setup_logging(name="restlink", log_dir=tmp_path, api="ProjectsApi")

    root = logging.getLogger()
    file_handlers = [h for h in root.handlers if isinstance(h.formatter, JSONFormatter)]
    assert len(file_handlers) == 1
    assert any(isinstance(h.formatter, ConsoleFormatter) for h in root.handlers)
    assert get_log_context()["api"] == "ProjectsApi"

    logger.info("hello", extra={"operation_id": 3})
    file_handlers[0].flush()

    log_file = next(tmp_path.rglob("*.log"))
    lines = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert lines[-1]["message"] == "hello"
    assert lines[-1]["operation_id"] == 3


def test_stdout_only_mode(tmp_path):
    setup_logging(log_dir=tmp_path, log_to_stdout=True)

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, ConsoleFormatter)
    assert list(tmp_path.iterdir()) == []


def test_noisy_loggers_suppressed(tmp_path):
    setup_logging(log_dir=tmp_path, log_to_stdout=True)
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
