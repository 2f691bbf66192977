"""Read-side presentation of stored entries."""

import re
from dataclasses import dataclass
from datetime import datetime
from functools import cmp_to_key
from typing import Any, Iterable, List, Optional

from ..models import Entry
from ..services.media_cache_service import MediaCacheService
from ..utils.date_utils import format_relative
from ..utils.html_utils import patch_reader_content, sanitize_html


def slugify_url(url: str) -> str:
    """URL as a path-safe slug: protocol dropped, separators turned into hyphens."""
    slug = re.sub(r'^https?://', '', url.lower())
    slug = re.sub(r'[/?=&]', '-', slug)
    return re.sub(r'[^a-z0-9\-.]', '', slug)


def find_by_slug(objects: Iterable[Any], slug: str, key: str = 'url') -> Optional[Any]:
    """First object whose ``key`` attribute slugifies to ``slug``."""
    for obj in objects:
        value = getattr(obj, key, None)
        if value and slugify_url(value) == slug:
            return obj
    return None


@dataclass
class EntryView:
    """Display-ready copy of an entry."""
    id: int
    feed_id: int
    guid: str
    link: str
    slug: str
    title: Optional[str]
    summary: Optional[str]
    content: Optional[str]
    html: Optional[str]
    image: Optional[str]
    video: Optional[str]
    embed: Optional[str]
    author: Optional[str]
    published: Optional[datetime]
    iso_published: Optional[str]
    rel_published: Optional[str]


def _compare_entries(a: Entry, b: Entry) -> int:
    # Newest first when both dates are known, otherwise highest id first
    if a.published is not None and b.published is not None:
        return (b.published > a.published) - (b.published < a.published)
    return (b.id or 0) - (a.id or 0)


def sort_entries(entries: Iterable[Entry]) -> List[Entry]:
    return sorted(entries, key=cmp_to_key(_compare_entries))


def build_entry_view(entry: Entry, media_store: Optional[MediaCacheService] = None,
                     now: Optional[datetime] = None) -> EntryView:
    """
    Build the display form of an entry.

    The link falls back to the guid, the image points at the locally cached
    copy when there is one, and reader-mode markup has its links patched to
    open in a new tab. The stored entry is not modified.
    """
    link = entry.link or entry.guid
    image = entry.image
    if image and media_store is not None:
        try:
            cached = media_store.path_for(entry.feed_id, entry.id, image)
        except ValueError:
            cached = None
        if cached is not None and media_store.exists(cached):
            image = media_store.public_path(entry.feed_id, entry.id, image)

    return EntryView(
        id=entry.id,
        feed_id=entry.feed_id,
        guid=entry.guid,
        link=link,
        slug=slugify_url(link),
        title=entry.title,
        summary=entry.summary,
        content=sanitize_html(entry.content),
        html=patch_reader_content(entry.html),
        image=image,
        video=entry.video,
        embed=entry.embed,
        author=entry.author,
        published=entry.published,
        iso_published=entry.iso_published,
        rel_published=format_relative(entry.published, now),
    )


def build_entry_views(entries: Iterable[Entry], media_store: Optional[MediaCacheService] = None,
                      now: Optional[datetime] = None) -> List[EntryView]:
    """Sorted display forms of ``entries``."""
    return [build_entry_view(entry, media_store, now) for entry in sort_entries(entries)]
