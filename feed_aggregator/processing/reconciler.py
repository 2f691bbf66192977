"""Merging of freshly fetched items into stored entries."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..core.exceptions import ContentExtractionError, FetchError, MediaError, ReconciliationError
from ..models import Entry, Feed
from ..services.media_cache_service import MediaCacheService, site_origin
from ..services.readability_service import ReadabilityService
from ..services.repository import EntryRepository
from ..sources.base import FeedItem
from ..utils.date_utils import parse_date
from ..utils.html_utils import get_media_from_html, youtube_embed_url

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class ReconcileResult:
    guid: str
    outcome: ReconcileOutcome
    entry: Entry


def derive_guid(item: FeedItem) -> Optional[str]:
    return item.guid or item.link or None


def derive_summary(item: FeedItem) -> Optional[str]:
    """Explicit summary, then content snippets, then the first media description."""
    media_description = item.media_description[0] if item.media_description else None
    return item.summary or item.content_snippet or item.encoded_snippet or media_description


def derive_content(item: FeedItem) -> Optional[str]:
    return item.encoded_content or item.content


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def check_entry_changed(new: Any, old: Any) -> bool:
    """Whether ``new`` differs materially from ``old``.

    Publication dates only count when both parse to valid dates; title,
    summary and content are compared as-is. Both arguments may be entries
    or plain dictionaries.
    """
    new_date = parse_date(_field(new, 'published'))
    old_date = parse_date(_field(old, 'published'))
    if new_date is not None and old_date is not None and new_date != old_date:
        return True
    return (
        _field(new, 'title') != _field(old, 'title')
        or _field(new, 'summary') != _field(old, 'summary')
        or _field(new, 'content') != _field(old, 'content')
    )


def resolve_media_url(url: Optional[str], feed_url: str, prefix: Optional[str]) -> Optional[str]:
    """
    Make a media URL found in item content usable outside of it.

    Protocol-relative and absolute URLs are kept. Root-relative URLs are
    joined to the feed's origin. Any other relative URL is appended to the
    item link (or guid) as a plain string; when that link ends with ``/``
    its parent path is appended first.
    """
    if not url:
        return url
    if url.startswith('//') or url.lower().startswith(('http://', 'https://')):
        return url
    if url.startswith('/'):
        return site_origin(feed_url) + url
    if prefix:
        parent = '/'.join(prefix.split('/')[:-1]) + '/' if prefix.endswith('/') else ''
        return prefix + parent + url
    return url


def get_media(feed_url: str, item: FeedItem, media_type: str, html: Optional[str] = None) -> Optional[str]:
    """
    Pick the image or video URL for an item.

    Order: enclosure of the matching MIME type, the media thumbnail (images
    only), the first matching element in the item's own content, then the
    first matching element in the reader-mode ``html``.
    """
    url = None
    enclosure = item.enclosure or {}
    if (enclosure.get('type') or '').startswith(f'{media_type}/'):
        url = enclosure.get('url')
    if not url and media_type == 'image' and item.media_thumbnail:
        url = item.media_thumbnail[0]
    if not url:
        item_html = item.encoded_content or item.content
        if item_html:
            url = get_media_from_html(item_html, media_type)
    if not url and html:
        url = get_media_from_html(html, media_type)
    return resolve_media_url(url, feed_url, item.link or item.guid)


class EntryReconciler:
    """Decides whether an incoming item is new or changed and stores it."""

    def __init__(self, reader: Optional[ReadabilityService] = None,
                 media_store: Optional[MediaCacheService] = None,
                 entries: Optional[EntryRepository] = None,
                 reader_mode: Optional[bool] = None):
        self.reader = reader
        self.media_store = media_store
        self.entries = entries or EntryRepository()
        self.reader_mode = get_settings().reader_mode if reader_mode is None else reader_mode

    def build_entry_data(self, feed: Feed, item: FeedItem) -> Dict[str, Any]:
        guid = derive_guid(item)
        if not guid:
            raise ReconciliationError(f"Item '{item.title}' in {feed.url} has neither guid nor link")

        raw_published = item.iso_date or item.published
        return {
            'guid': guid,
            'link': item.link,
            'title': item.title,
            'summary': derive_summary(item),
            'content': derive_content(item),
            'author': item.author,
            'published': parse_date(raw_published),
            'published_raw': None if raw_published is None else str(raw_published),
            'embed': youtube_embed_url(item.link or guid),
            'feed_id': feed.id,
        }

    async def reconcile(self, session: AsyncSession, feed: Feed, item: FeedItem) -> ReconcileResult:
        """Merge one item into the store and cache its image."""
        data = self.build_entry_data(feed, item)
        guid = data['guid']
        stored = await self.entries.find_by_guid(session, guid)
        changed = stored is None or check_entry_changed(data, stored)

        if changed and item.link:
            html = await self._readerify(item.link)
            if html:
                data['html'] = html

        html = data.get('html') or (stored.html if stored is not None else None)
        data['image'] = item.image or get_media(feed.url, item, 'image', html)
        data['video'] = item.video or get_media(feed.url, item, 'video', None if data['image'] else html)

        if stored is None:
            entry = await self.entries.create(session, data)
            outcome = ReconcileOutcome.CREATED
        else:
            entry = await self.entries.update(session, stored, data)
            outcome = ReconcileOutcome.UPDATED if changed else ReconcileOutcome.UNCHANGED

        await self._store_media(entry)
        return ReconcileResult(guid=guid, outcome=outcome, entry=entry)

    async def _readerify(self, link: str) -> Optional[str]:
        if not self.reader_mode or self.reader is None:
            return None
        try:
            article = await self.reader.readerify(link)
            return article.content
        except (FetchError, ContentExtractionError) as e:
            logger.warning(f"Reader mode unavailable for {link}: {e}")
            return None

    async def _store_media(self, entry: Entry):
        if self.media_store is None or not entry.image:
            return
        try:
            await self.media_store.store_entry_image(entry.feed_id, entry.id, entry.image)
        except (MediaError, FetchError) as e:
            logger.warning(f"Could not cache image for entry {entry.guid}: {e}")
