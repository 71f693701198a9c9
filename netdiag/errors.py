"""Error types shared across the diagnostic tool."""

from typing import Optional


class ConfigError(Exception):
    """Invalid configuration, endpoint file or command-line option.

    Raised before any probing begins.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(f"{field}: {message}" if field else message)


class InternalError(Exception):
    """Unexpected failure inside the pipeline. Always aborts the run."""
