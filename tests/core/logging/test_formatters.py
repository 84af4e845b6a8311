"""Tests for JSON and console log formatters."""

import json
import logging
import sys

import pytest

from core.logging.context import clear_log_context, set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter


def _make_record(
    msg="test message",
    level=logging.INFO,
    name="test.logger",
    exc_info=None,
    **extras,
):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extras.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def clear_context():
    clear_log_context()
    yield
    clear_log_context()


class TestJSONFormatter:

    def test_formats_basic_json_with_required_fields(self):
        formatter = JSONFormatter()
        output = json.loads(formatter.format(_make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "test.logger"
        assert output["message"] == "test message"
        assert output["ts"].endswith("Z")
        assert "file" not in output

    def test_includes_context(self):
        set_log_context(operation_id=42, api="ProjectsApi")
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["operation_id"] == "42"
        assert output["api"] == "ProjectsApi"

    def test_explicit_extra_overrides_context(self):
        set_log_context(operation_id=1)
        output = json.loads(JSONFormatter().format(_make_record(operation_id=2)))
        assert output["operation_id"] == 2

    def test_numeric_fields_are_typed(self):
        record = _make_record(http_status="404", duration_ms="12.5", error_code="bad")
        output = json.loads(JSONFormatter().format(record))

        assert output["http_status"] == 404
        assert output["duration_ms"] == 12.5
        assert output["error_code"] is None

    def test_sensitive_query_parameters_are_redacted(self):
        record = _make_record(http_url="https://api.example.com/x?token=abc&page=2&password=p")
        output = json.loads(JSONFormatter().format(record))

        assert output["http_url"] == (
            "https://api.example.com/x?token=[REDACTED]&page=2&password=[REDACTED]"
        )

    def test_unknown_extras_are_ignored(self):
        output = json.loads(JSONFormatter().format(_make_record(something_else="x")))
        assert "something_else" not in output

    def test_error_records_include_location_and_exception(self):
        try:
            raise ValueError("broken")
        except ValueError:
            record = _make_record(level=logging.ERROR, exc_info=sys.exc_info())

        output = json.loads(JSONFormatter().format(record))

        assert output["file"] == "test.py:42"
        assert output["exception"]["type"] == "ValueError"
        assert output["exception"]["message"] == "broken"
        assert "Traceback" in output["exception"]["stacktrace"]


class TestConsoleFormatter:

    def test_plain_format(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = False

        output = formatter.format(_make_record(level=logging.WARNING))

        assert " - WARNING - test message" in output

    def test_operation_tag_from_context(self):
        set_log_context(operation_id=7, api="ProjectsApi")
        formatter = ConsoleFormatter()
        formatter._use_colors = False

        output = formatter.format(_make_record())

        assert "[ProjectsApi]" in output
        assert "[op:7] test message" in output

    def test_colors_when_tty(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = True

        output = formatter.format(_make_record(level=logging.ERROR))

        assert "\033[31mERROR\033[0m" in output
