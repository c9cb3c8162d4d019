# tests/unit/logging/test_logger.py — v2
"""Tests for logging/logger.py — logger factory and formatters."""

from __future__ import annotations

import json
import logging

from mirbatch.logging.context import clear_context, set_batch_context, set_run_context
from mirbatch.logging.logger import JsonFormatter, TextFormatter, get_logger, setup_logging


def _record(msg: str = "Hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        set_run_context("run1")
        set_batch_context(3, "export")
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["context"] == {"run_id": "run1", "batch_id": 3, "stage": "export"}


class TestTextFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_plain(self):
        line = TextFormatter().format(_record("processing"))
        assert "[INFO    ]" in line
        assert line.endswith("processing")

    def test_batch_and_stage(self):
        set_batch_context(7, "upload")
        line = TextFormatter().format(_record())
        assert "[batch 007]" in line
        assert "(upload)" in line


class TestSetupLogging:
    def teardown_method(self):
        root = logging.getLogger("mirbatch")
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()

    def test_get_logger_namespace(self):
        assert get_logger("merge").name == "mirbatch.merge"

    def test_stderr_only(self):
        setup_logging(level="DEBUG")
        root = logging.getLogger("mirbatch")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_reinit_does_not_duplicate(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger("mirbatch").handlers) == 1

    def test_file_handler_json(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        setup_logging(level="INFO", log_format="json", log_file=log_file)
        get_logger("test").info("written")
        for handler in logging.getLogger("mirbatch").handlers:
            handler.flush()
        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["message"] == "written"
