"""Logging configuration for the network diagnostic tool."""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)-8s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def level_for_verbosity(verbosity: int, default: str = "WARNING") -> int:
    """Map a -v count onto a logging level."""
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    level = logging.getLevelName(default.upper())
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(level: int = logging.WARNING,
                  log_file: Optional[Path] = None) -> logging.Logger:
    """
    Set up logging for the application.

    Console output goes to stderr; stdout is reserved for the report so
    that JSON output stays machine-readable.

    Args:
        level: Minimum log level to capture
        log_file: Optional file path to also write logs to

    Returns:
        The configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        # The file always gets the full detail
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        root_logger.setLevel(logging.DEBUG)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)
