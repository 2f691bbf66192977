"""Logging configuration for the feed aggregator."""

import logging
import sys
from typing import Optional

from ..config import get_settings

CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers kept at WARNING regardless of the configured level
QUIET_LOGGERS = ('aiosqlite', 'asyncio', 'readability', 'chardet', 'urllib3')

# Operation statuses logged at INFO; 'failed' is an error, anything else debug
INFO_STATUSES = frozenset({'started', 'completed', 'not_modified'})


class ColoredFormatter(logging.Formatter):
    """Console formatter coloring the level name."""

    COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        # Work on a copy so other handlers see the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelno)
        if color:
            colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _console_formatter(use_colors: bool) -> logging.Formatter:
    if use_colors and sys.stdout.isatty():
        return ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None,
                  use_colors: bool = True) -> None:
    """
    Configure the root logger for CLI runs.

    Args:
        level: Log level name; defaults to ``settings.log_level``
        log_file: Extra plain-text log file; defaults to ``settings.log_file``
        use_colors: Color level names when stdout is a terminal
    """
    settings = get_settings()
    log_file = log_file or settings.log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(_console_formatter(use_colors))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    # SQL echo only while developing
    if not settings.development:
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def log_operation(logger: logging.Logger, operation: str, status: str, **context) -> str:
    """
    Log one step of an operation as ``operation | status | key=value | ...``.

    Returns the formatted message.
    """
    parts = [operation, status]
    parts.extend(f"{key}={value}" for key, value in context.items())
    message = " | ".join(parts)

    if status == 'failed':
        logger.error(message)
    elif status in INFO_STATUSES:
        logger.info(message)
    else:
        logger.debug(message)
    return message
