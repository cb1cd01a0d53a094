"""
Error types and logging utilities for HARFLECT.
Distinguishes malformed archives (fatal for one source) from failed
decode attempts, which never leave the decoder.
"""

import logging
import sys
from typing import Optional


class HarflectError(Exception):
    """Base exception for analysis errors."""
    pass


class ArchiveError(HarflectError):
    """The input does not match the expected HAR schema."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source

    def __str__(self):
        message = super().__str__()
        if self.source:
            return f"{self.source}: {message}"
        return message


class InvalidURLError(ArchiveError):
    """A request URL in the archive cannot be parsed."""
    pass


class ConfigError(HarflectError):
    """Configuration file could not be loaded."""
    pass


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None, verbose: bool = False):
    """
    Configure logging with appropriate handlers and formatters.

    Console output goes to stderr; stdout is reserved for the report.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        verbose: If True, include detailed debug information
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    if verbose:
        fmt = '[%(asctime)s] [%(name)s] [%(levelname)s] [%(filename)s:%(lineno)d] %(message)s'
    else:
        fmt = '[%(levelname)s] %(message)s'

    formatter = logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_file else level)
    root_logger.handlers = []
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.warning(f"Failed to setup file logging: {e}")


class ErrorContext:
    """
    Context manager that logs and suppresses analysis errors for one source.

    Example:
        with ErrorContext("archive.har") as ctx:
            process(load_archive(...))
        if ctx.failed:
            ...
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[logging.Logger] = None,
        log_traceback: bool = False
    ):
        self.operation = operation
        self.logger = logger or logging.getLogger(__name__)
        self.log_traceback = log_traceback
        self.exception = None

    @property
    def failed(self) -> bool:
        return self.exception is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        if exc_type is None:
            return False

        # Only analysis and I/O failures are per-source; anything else is a bug
        if not issubclass(exc_type, (HarflectError, OSError)):
            return False

        self.exception = exc_value

        message = str(exc_value)
        if isinstance(exc_value, ArchiveError) and exc_value.source:
            prefix = ""
        else:
            prefix = f"{self.operation}: "

        if self.log_traceback:
            self.logger.error(
                f"{prefix}{message}",
                exc_info=(exc_type, exc_value, exc_traceback)
            )
        else:
            self.logger.error(f"{prefix}{message}")

        return True


def truncate_string(s: str, max_length: int = 100, suffix: str = "...") -> str:
    """Truncate string for display."""
    if not s or len(s) <= max_length:
        return s
    return s[:max_length - len(suffix)] + suffix
