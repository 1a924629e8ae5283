"""Tests for logging configuration."""

import json
import logging

from imagedb.utils.logging_setup import (
    LOGGER_NAME,
    ConsoleFormatter,
    JSONFormatter,
    log_operation,
    setup_logging,
)


def make_record(level, message, **extra):
    record = logging.LogRecord(LOGGER_NAME, level, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Test console and JSON formatting."""

    def test_console_info_is_plain(self):
        assert ConsoleFormatter().format(make_record(logging.INFO, "Added x")) == "Added x"

    def test_console_tags_other_levels(self):
        text = ConsoleFormatter().format(make_record(logging.ERROR, "broken"))
        assert text.endswith("broken")
        assert "error" in text

    def test_json_fields(self):
        record = make_record(logging.INFO, "Added", path="image1.png", context={"config": "x.yml"})
        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == LOGGER_NAME
        assert entry["message"] == "Added"
        assert entry["path"] == "image1.png"
        assert entry["config"] == "x.yml"


class TestSetupLogging:
    """Test handler setup."""

    def test_console_only(self):
        logger = setup_logging(level="WARNING")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert logger.propagate is False

    def test_repeated_setup_replaces_handlers(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1

    def test_json_file(self, tmp_path):
        logger = setup_logging(log_dir=tmp_path / "logs", console=False)
        log_operation(logger, "lookup", tolerance=3)
        logging.getLogger("imagedb.core.database").info("Added", extra={"path": "a.png"})
        for handler in logger.handlers:
            handler.flush()

        files = list((tmp_path / "logs").glob("imagedb_*.jsonl"))
        assert len(files) == 1
        entries = [json.loads(line) for line in files[0].read_text().splitlines()]

        assert entries[0]["operation"] == "lookup"
        assert entries[0]["tolerance"] == 3
        assert entries[1]["path"] == "a.png"
        assert entries[1]["logger"] == "imagedb.core.database"
