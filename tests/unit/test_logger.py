"""
Unit tests for utils/logger.py
"""
import json
import logging
import sys

import pytest

from belto_grader.utils.logger import JSONFormatter, get_logger, setup_logger


@pytest.mark.unit
class TestJSONFormatter:
    def test_record_fields(self):
        record = logging.LogRecord("belto_grader.x", logging.WARNING, "mod.py", 12, "hello %s", ("you",), None)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "belto_grader.x"
        assert entry["message"] == "hello you"
        assert entry["location"].endswith(":12")
        assert "exception" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()
        record = logging.LogRecord("belto_grader", logging.ERROR, "mod.py", 1, "failed", None, exc_info)
        entry = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]


@pytest.mark.unit
class TestSetupLogger:
    def test_writes_json_lines_and_errors_file(self, tmp_path):
        log = setup_logger("belto_grader_test_setup", log_level="debug", log_dir=str(tmp_path))
        log.debug("detail")
        log.error("bad")
        for handler in log.handlers:
            handler.flush()

        main_log = next(tmp_path.glob("grader_2*.log"))
        errors_log = next(tmp_path.glob("grader_errors_*.log"))
        messages = [json.loads(line)["message"] for line in main_log.read_text(encoding="utf-8").splitlines()]
        assert messages == ["detail", "bad"]
        assert [json.loads(line)["message"] for line in errors_log.read_text(encoding="utf-8").splitlines()] == ["bad"]

        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)

    def test_child_logger_name(self):
        assert get_logger("grader").name == "belto_grader.grader"
