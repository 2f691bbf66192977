"""Feed sources: normalized structures and per-format parsers."""

from .base import FeedItem, FeedType, ParsedFeed
from .html_source import parse_html_feed
from .rss_source import parse_standard_feed
from .registry import FeedParserRegistry

__all__ = [
    'FeedItem',
    'FeedType',
    'ParsedFeed',
    'parse_html_feed',
    'parse_standard_feed',
    'FeedParserRegistry',
]
