"""Standard syndication format (RSS/Atom) adapter built on feedparser."""

import logging
from typing import Any, List, Optional, Union

import feedparser

from .base import FeedItem, ParsedFeed
from ..core.exceptions import ParseError
from ..utils.date_utils import parse_date
from ..utils.html_utils import html_to_text

logger = logging.getLogger(__name__)


def parse_standard_feed(body: Union[str, bytes]) -> ParsedFeed:
    """Parse an RSS/Atom document into a :class:`ParsedFeed`.

    feedparser flags many recoverable irregularities as ``bozo``; the body is
    only rejected when it yields neither feed metadata nor entries.
    """
    if isinstance(body, str):
        # feedparser treats short strings as URLs or file names
        body = body.encode('utf-8')
    parsed = feedparser.parse(body)

    if parsed.bozo and not parsed.entries and not parsed.feed.get('title'):
        raise ParseError(f"Feed parsing error: {parsed.get('bozo_exception')}")
    if parsed.bozo:
        logger.debug("Recoverable feed irregularity: %s", parsed.get('bozo_exception'))

    items = []
    for entry in parsed.entries:
        try:
            items.append(_parse_entry(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed feed entry: {e}")

    feed = parsed.feed
    return ParsedFeed(
        title=feed.get('title'),
        description=feed.get('subtitle') or feed.get('description'),
        items=items,
    )


def _parse_entry(entry) -> FeedItem:
    """Map a feedparser entry to the normalized item shape."""
    encoded_content = None
    if entry.get('content'):
        encoded_content = entry.content[0].get('value')

    description = entry.get('summary')
    published_raw = entry.get('published') or entry.get('updated')
    published = _parse_entry_date(entry)

    return FeedItem(
        guid=entry.get('id') or None,
        link=entry.get('link') or None,
        title=entry.get('title'),
        summary=_atom_summary(entry),
        content=description,
        content_snippet=html_to_text(description),
        encoded_content=encoded_content,
        encoded_snippet=html_to_text(encoded_content),
        enclosure=_first_enclosure(entry),
        media_thumbnail=_media_thumbnails(entry),
        media_description=_as_list(entry.get('media_description')),
        iso_date=published.isoformat() + 'Z' if published else None,
        published=published_raw,
        author=entry.get('author'),
    )


def _atom_summary(entry) -> Optional[str]:
    """Explicit plain summary; RSS descriptions are treated as content instead."""
    detail = entry.get('summary_detail') or {}
    if detail.get('type') == 'text/plain' and entry.get('summary'):
        return entry.summary
    return None


def _parse_entry_date(entry):
    for field in ('published_parsed', 'updated_parsed'):
        value = entry.get(field)
        if value:
            parsed = parse_date(value)
            if parsed:
                return parsed
    for field in ('published', 'updated', 'created'):
        parsed = parse_date(entry.get(field))
        if parsed:
            return parsed
    return None


def _first_enclosure(entry) -> Optional[dict]:
    for enclosure in entry.get('enclosures') or []:
        url = enclosure.get('href') or enclosure.get('url')
        if url:
            return {'url': url, 'type': enclosure.get('type') or '', 'length': enclosure.get('length')}
    for media in entry.get('media_content') or []:
        if media.get('url'):
            return {'url': media['url'], 'type': media.get('type') or media.get('medium', '') + '/', 'length': None}
    return None


def _media_thumbnails(entry) -> List[str]:
    return [thumb['url'] for thumb in entry.get('media_thumbnail') or [] if thumb.get('url')]


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item]
    return [str(value)]
