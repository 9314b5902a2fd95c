"""Logging configuration for the catalog sync application."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

# Libraries that log per statement or per file at INFO/DEBUG
THIRD_PARTY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic",
    "mutagen",
    "concurrent.futures",
)

CONSOLE_FORMAT = "%(asctime)s - %(location)-30s - %(levelname)s - %(message)s"
# Enrichment and lyrics scans log from worker threads
FILE_FORMAT = (
    "%(asctime)s - %(threadName)-20s - %(location)-30s - %(levelname)-8s - %(message)s"
)


class LocationFormatter(logging.Formatter):
    """Formatter exposing ``file:line`` as a single ``location`` field."""

    def format(self, record: Any) -> str:
        """Format log record with combined location field."""
        record.location = f"{record.filename}:{record.lineno}"
        return super().format(record)


class ColoredFormatter(LocationFormatter):
    """Location formatter that colors the level name for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: Any) -> str:
        """Format log record with colors."""
        original_levelname = record.levelname
        color = self.COLORS.get(original_levelname)
        if color:
            # Pad before coloring so escape codes don't skew the column width
            record.levelname = f"{color}{original_levelname:<8}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def _level(log_level: str) -> int:
    return getattr(logging, log_level.upper(), logging.INFO)


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if sys.stderr.isatty():
        handler.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(LocationFormatter(fmt=CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    return handler


def _file_handler(
    log_file: Path, level: int, max_file_size: int, backup_count: int
) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(LocationFormatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    console_output: bool = True,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """Set up application logging.

    Console output goes to stderr so it does not interleave with the rich
    tables and progress bars printed on stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a rotating log file
        console_output: Whether to log to the console
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of backup log files to keep
    """
    level = _level(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console_output:
        root_logger.addHandler(_console_handler(level))
    if log_file:
        root_logger.addHandler(_file_handler(log_file, level, max_file_size, backup_count))

    configure_third_party_loggers()

    logger = logging.getLogger(__name__)
    logger.debug("Logging initialized - Level: %s", log_level)
    if log_file:
        logger.info("Log file: %s", log_file)


def configure_third_party_loggers(level: int = logging.WARNING) -> None:
    """Keep library loggers at ``level`` whatever the application level is."""
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(level)

