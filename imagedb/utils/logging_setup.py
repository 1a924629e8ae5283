"""
Logging configuration for imagedb.

Progress messages ("Added ...", "Skipping ...") go through the ``imagedb``
logger so the command line shows them on stderr. A JSON-lines file can be
enabled for a record of every run.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER_NAME = 'imagedb'
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

# Attributes that callers may pass through ``extra=`` and that end up in JSON logs
RECORD_FIELDS = ('operation', 'path', 'distance')


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'time': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key in RECORD_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if hasattr(record, 'context'):
            entry.update(record.context)
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Plain messages for INFO, level-tagged messages for everything else.

    Tags are coloured when stderr is a terminal.
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if record.levelno == logging.INFO:
            return message

        tag = record.levelname.lower()
        if sys.stderr.isatty() and record.levelname in self.COLORS:
            tag = f"{self.COLORS[record.levelname]}{tag}{self.RESET}"
        return f"{tag}: {message}"


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"imagedb_{datetime.now():%Y%m%d}.jsonl"
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding='utf-8',
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(
    level: str = 'INFO',
    log_dir: Optional[Path] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the ``imagedb`` logger.

    Calling this again replaces the handlers from an earlier call.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ...)
        log_dir: Write JSON-lines logs to this directory when given
        console: Show messages on stderr

    Returns:
        The configured logger
    """
    console_level = getattr(logging, level.upper())
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    if console:
        logger.addHandler(_console_handler(console_level))
    if log_dir is not None:
        logger.addHandler(_file_handler(Path(log_dir)))
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(console_level)
    return logger


def log_operation(logger: logging.Logger, operation: str, **context) -> None:
    """Record the start of a command together with its arguments."""
    logger.debug(f"Running {operation}", extra={'operation': operation, 'context': context})
