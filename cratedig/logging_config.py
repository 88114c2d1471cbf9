"""
Logging configuration for cratedig.
"""
import logging
import sys
from pathlib import Path
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        reset = self.COLORS['RESET']
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{reset}"
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console: bool = True,
) -> None:
    """Setup logging configuration for cratedig.

    The interactive session owns stdout, so it runs with ``console=False``
    and logs only to ``log_file``.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        console: Whether to also log to stdout
    """
    logger = logging.getLogger('cratedig')
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, level.upper()))
        console_formatter = ColoredFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - '
            '%(funcName)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module.

    Args:
        name: Module name

    Returns:
        Logger instance
    """
    return logging.getLogger(f'cratedig.{name}')


# Custom exceptions for better error handling
class CrateDigError(Exception):
    """Base exception for cratedig."""
    pass


class ConfigurationError(CrateDigError):
    """Configuration or bootstrap errors. Fatal at startup."""
    pass


class CatalogError(CrateDigError):
    """Catalog store errors."""
    pass


class NotFoundError(CatalogError):
    """A collection, tag, user or export id that does not exist."""
    pass


class ExportError(CatalogError):
    """An export that cannot be materialized."""
    pass


class FilesystemError(CrateDigError):
    """Filesystem operation errors."""
    pass


class AudioPlayerError(CrateDigError):
    """Audio playback related errors."""
    pass


class DecodeError(AudioPlayerError):
    """A file that cannot be opened or decoded for preview."""
    pass


class StateError(CrateDigError):
    """Session state errors."""
    pass
