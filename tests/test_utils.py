"""Tests for logging setup."""

import json
import logging
import sys

from rich.logging import RichHandler

from humboi.utils import StructuredFormatter, setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_pretty_uses_rich(self):
        logger = setup_logging("DEBUG", "pretty")

        assert logger.name == "humboi"
        assert logger.level == logging.DEBUG
        assert [type(h) for h in logger.handlers] == [RichHandler]

    def test_structured_uses_json(self):
        logger = setup_logging("WARNING", "structured")

        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, StructuredFormatter)

    def test_repeated_setup_replaces_handlers(self):
        setup_logging()
        logger = setup_logging()

        assert len(logger.handlers) == 1

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "humboi.log"
        logger = setup_logging("INFO", "structured", log_file=log_file)

        logging.getLogger("humboi.retry").info("written to file")
        for handler in logger.handlers:
            handler.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "written to file"


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_fields(self):
        record = logging.LogRecord("humboi.bootstrap", logging.INFO, __file__, 1, "step %s", ("A",), None)

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "humboi.bootstrap"
        assert data["message"] == "step A"
        assert "timestamp" in data

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("humboi", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        data = json.loads(StructuredFormatter().format(record))

        assert "ValueError: boom" in data["exception"]
