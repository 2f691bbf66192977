"""Custom exceptions for the feed aggregator."""

from typing import Optional


class FeedAggregatorError(Exception):
    """Base exception for the feed aggregator."""
    pass


class ConfigurationError(FeedAggregatorError):
    """Configuration related errors."""
    pass


class DatabaseError(FeedAggregatorError):
    """Database related errors."""
    pass


class SourceError(FeedAggregatorError):
    """Feed source errors."""
    pass


class FetchError(SourceError):
    """Network failure or unexpected HTTP status while fetching a feed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(SourceError):
    """Malformed feed body."""
    pass


class ReconciliationError(FeedAggregatorError):
    """A single incoming item could not be merged into the store."""
    pass


class ContentExtractionError(FeedAggregatorError):
    """Readable article extraction errors."""
    pass


class MediaError(FeedAggregatorError):
    """Media cache errors."""
    pass
