"""Utility modules for the feed aggregator."""

from .logging_config import setup_logging, log_operation

__all__ = [
    'setup_logging',
    'log_operation',
]
