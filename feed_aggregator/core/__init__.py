"""Core infrastructure: HTTP client and exceptions."""

from .exceptions import (
    FeedAggregatorError,
    ConfigurationError,
    DatabaseError,
    SourceError,
    FetchError,
    ParseError,
    ReconciliationError,
    ContentExtractionError,
    MediaError,
)

__all__ = [
    'FeedAggregatorError',
    'ConfigurationError',
    'DatabaseError',
    'SourceError',
    'FetchError',
    'ParseError',
    'ReconciliationError',
    'ContentExtractionError',
    'MediaError',
]
