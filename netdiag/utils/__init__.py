"""Utility modules."""

from .logging_config import setup_logging, get_logger, level_for_verbosity
from .config import Config

__all__ = ["setup_logging", "get_logger", "level_for_verbosity", "Config"]
