"""Normalized feed structures shared by all feed parsers."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..schemas import FeedType  # noqa: F401


@dataclass
class FeedItem:
    """One item as produced by a feed parser, before reconciliation."""
    guid: Optional[str] = None
    link: Optional[str] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    content_snippet: Optional[str] = None
    encoded_content: Optional[str] = None
    encoded_snippet: Optional[str] = None
    enclosure: Optional[Dict[str, Any]] = None  # {"url": ..., "type": ...}
    media_thumbnail: List[str] = field(default_factory=list)
    media_description: List[str] = field(default_factory=list)
    iso_date: Optional[str] = None
    published: Optional[Any] = None
    author: Optional[str] = None
    image: Optional[str] = None
    video: Optional[str] = None


@dataclass
class ParsedFeed:
    """Normalized feed: metadata plus items."""
    title: Optional[str] = None
    description: Optional[str] = None
    items: List[FeedItem] = field(default_factory=list)
