"""
Logging utilities for ivfann.

All package loggers live under the ``ivfann`` namespace. Handlers are
attached only to the package root logger, so module loggers obtained
through :func:`get_logger` propagate to a single configured handler.
"""

import logging
import sys
from typing import Optional, Union


PACKAGE_LOGGER = "ivfann"

# Default format
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logger(
    level: Union[str, int] = "WARNING",
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the package root logger.

    Calling it again replaces the previous handlers, so it is safe to
    call whenever settings change.

    Args:
        level: Log level name or number
        format_string: Custom format string
        log_file: Optional file path for logging

    Returns:
        The configured ``ivfann`` logger
    """
    global _configured

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(_resolve_level(level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        format_string or DEFAULT_FORMAT,
        datefmt=DEFAULT_DATE_FORMAT,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _configured = True
    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Get a logger inside the ``ivfann`` namespace.

    The package root logger is configured with defaults on first use.

    Args:
        name: Logger name, usually ``__name__``

    Returns:
        Logger instance
    """
    if not _configured:
        setup_logger()

    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


class LogContext:
    """Context manager for temporary log level changes."""

    def __init__(self, logger: logging.Logger, level: Union[str, int]):
        self.logger = logger
        self.new_level = _resolve_level(level)
        self.old_level = logger.level

    def __enter__(self):
        self.logger.setLevel(self.new_level)
        return self.logger

    def __exit__(self, *args):
        self.logger.setLevel(self.old_level)
