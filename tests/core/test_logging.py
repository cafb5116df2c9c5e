"""Tests for structured logging configuration."""

import io
import json
import logging
from pathlib import Path

import pytest
import structlog

from bulkimport.contracts.records import Bunch
from bulkimport.core.logging import (
    bind_bunch_context,
    bind_run_context,
    configure_logging,
    enable_row_traces,
)


def _json_lines(text: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in text.splitlines() if line.startswith("{")]


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_json_output_goes_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_output=True)
        structlog.get_logger("test").info("test message", key="value")

        captured = capsys.readouterr()
        assert captured.out == ""
        data = _json_lines(captured.err)[-1]
        assert data["event"] == "test message"
        assert data["key"] == "value"
        assert data["level"] == "info"
        assert "_record" not in data
        assert "_from_structlog" not in data

    def test_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_output=False)
        structlog.get_logger("test").info("test message", key="value")

        captured = capsys.readouterr()
        assert "test message" in captured.err
        assert not captured.err.strip().startswith("{")

    def test_explicit_stream(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        structlog.get_logger("test").warning("to stream")

        assert _json_lines(stream.getvalue())[-1]["event"] == "to stream"

    def test_stdlib_loggers_share_format(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        logging.getLogger("some.library").warning("plain %s", "stdlib")

        assert _json_lines(stream.getvalue())[-1]["event"] == "plain stdlib"

    def test_level_filters_debug(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="INFO", stream=stream)

        structlog.get_logger("test").debug("hidden")

        assert "hidden" not in stream.getvalue()

    def test_noisy_loggers_stay_quiet_in_debug(self) -> None:
        configure_logging(level="DEBUG")

        assert logging.getLogger("dynaconf").level == logging.WARNING
        assert logging.getLogger("pluggy").level == logging.WARNING


class TestRowTraces:
    """debug_mode lets bulkimport's own DEBUG lines through."""

    def test_package_debug_lines_pass_at_info_level(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level="INFO", stream=stream)

        enable_row_traces()
        structlog.get_logger("bulkimport.observers.additional_attribute").debug("Extracted attribute column")
        structlog.get_logger("other.library").debug("still hidden")

        events = [line["event"] for line in _json_lines(stream.getvalue())]
        assert events == ["Extracted attribute column"]

    def test_reconfiguring_resets_row_traces(self) -> None:
        enable_row_traces()
        configure_logging(level="INFO")

        assert logging.getLogger("bulkimport").level == logging.NOTSET


class TestRunContext:
    """Run serial and bunch binding."""

    def test_serial_is_bound_inside_block(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        with bind_run_context("abc123"):
            structlog.get_logger("test").info("inside")
        structlog.get_logger("test").info("outside")

        lines = _json_lines(stream.getvalue())
        inside = next(line for line in lines if line["event"] == "inside")
        outside = next(line for line in lines if line["event"] == "outside")
        assert inside["serial"] == "abc123"
        assert "serial" not in outside
        assert structlog.contextvars.get_contextvars() == {}

    def test_bunch_is_bound_alongside_serial(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        bunch = Bunch(index=3, path=Path("bunches/products_04.csv"), start_line=32, row_count=10)

        with bind_run_context("abc123"), bind_bunch_context(bunch):
            structlog.get_logger("test").info("row")

        (line,) = _json_lines(stream.getvalue())
        assert (line["serial"], line["bunch"], line["bunch_file"]) == ("abc123", 3, "products_04.csv")
        assert structlog.contextvars.get_contextvars() == {}
