"""Registry mapping feed types to their parsers."""

from typing import Callable, Dict, Optional

from .base import FeedType, ParsedFeed
from .html_source import parse_html_feed
from .rss_source import parse_standard_feed
from ..core.http_client import HttpResponse
from ..schemas import FeedDescriptor

FeedParser = Callable[[HttpResponse, FeedDescriptor], ParsedFeed]


def _standard_parser(response: HttpResponse, feed: FeedDescriptor) -> ParsedFeed:
    return parse_standard_feed(response.body)


def _html_parser(response: HttpResponse, feed: FeedDescriptor) -> ParsedFeed:
    return parse_html_feed(response.text, feed, base_url=response.url or feed.url)


class FeedParserRegistry:
    """Registry for feed parsers."""

    def __init__(self):
        self._parsers: Dict[FeedType, FeedParser] = {}
        self._register_default_parsers()

    def _register_default_parsers(self):
        """Register built-in feed types."""
        self.register(FeedType.STANDARD, _standard_parser)
        self.register(FeedType.HTML, _html_parser)

    def register(self, feed_type: FeedType, parser: FeedParser):
        """Register a parser for a feed type."""
        self._parsers[feed_type] = parser

    def get_parser(self, feed_type: FeedType) -> Optional[FeedParser]:
        return self._parsers.get(FeedType(feed_type))

    def parse(self, response: HttpResponse, feed: FeedDescriptor) -> ParsedFeed:
        """Parse a fetched response with the parser for the feed's type."""
        parser = self.get_parser(feed.type)
        if parser is None:
            raise ValueError(f"Unknown feed type: {feed.type}")
        return parser(response, feed)

    def is_supported(self, feed_type: FeedType) -> bool:
        """Check if feed type is supported."""
        return feed_type in self._parsers
