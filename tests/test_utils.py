"""Tests for toolgate.utils."""

import json
import logging

from toolgate.utils import StructuredFormatter, format_duration, setup_logging, truncate_lines


class TestTruncateLines:
    def test_within_limit(self):
        assert truncate_lines("a\nb\n", 5) == ("a\nb\n", 2, False)

    def test_over_limit(self):
        text, total, truncated = truncate_lines("1\n2\n3\n4\n", 2)
        assert text == "1\n2\n"
        assert total == 4
        assert truncated

    def test_empty(self):
        assert truncate_lines("", 10) == ("", 0, False)


def test_format_duration():
    assert format_duration(0.45) == "450ms"
    assert format_duration(2.5) == "2.5s"
    assert format_duration(150) == "2m 30s"


class TestStructuredFormatter:
    def test_includes_extra_fields(self):
        record = logging.LogRecord("toolgate.tools.done", logging.INFO, __file__, 1,
                                   "committed", None, None)
        record.tool = "done"
        record.event = "committed"

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "toolgate.tools.done"
        assert data["message"] == "committed"
        assert data["tool"] == "done"
        assert data["event"] == "committed"
        assert "metadata" not in data


def test_setup_logging_file(tmp_path):
    log_file = tmp_path / "logs" / "toolgate.log"
    logger = setup_logging("DEBUG", "structured", log_file=log_file, console_output=False)
    try:
        logging.getLogger("toolgate.execution").debug("ran", extra={"event": "exec"})
        for handler in logger.handlers:
            handler.flush()

        line = json.loads(log_file.read_text().splitlines()[-1])
        assert line["message"] == "ran"
        assert line["event"] == "exec"
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers = []
