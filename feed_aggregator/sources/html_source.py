"""HTML page adapter: turns an arbitrary page into a normalized feed."""

import logging
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .base import FeedItem, ParsedFeed
from ..core.exceptions import ParseError
from ..extraction import (
    StructuralExtractor,
    TEXT_FALLBACK,
    TEXT_OR_HTML_FALLBACK,
    HTML_OR_TEXT_FALLBACK,
    HREF_FALLBACK,
    SRC_FALLBACK,
)
from ..schemas import FeedDescriptor
from ..utils.date_utils import parse_date

logger = logging.getLogger(__name__)

# Names under which queries can reach the namespace element and the document
NAMESPACE = 'ns'
ROOT_NAMESPACE = 'root'


def document_base_url(soup: BeautifulSoup, base_url: Optional[str]) -> Optional[str]:
    """Base URL for resolving relative links, honouring ``<base href>``."""
    base_tag = soup.find('base', href=True)
    if base_tag:
        return urljoin(base_url or '', base_tag['href'].strip())
    return base_url


def parse_html_feed(html: str, feed: FeedDescriptor, base_url: Optional[str] = None,
                    allow_invalid: bool = False) -> ParsedFeed:
    """
    Extract a feed from an HTML page using the descriptor's queries.

    Args:
        html: Raw page markup
        feed: Descriptor carrying the ``css_*`` queries
        base_url: URL the page was fetched from; URL attributes are resolved
            against it (or the page's ``<base href>``). ``None`` reads them verbatim.
        allow_invalid: Diagnostic mode; run the entry query even without a
            link query and keep entries that have no link.

    Returns:
        ParsedFeed with one item per matched entry element
    """
    if html is None:
        raise ParseError(f"Empty HTML document for {feed.url}")

    soup = BeautifulSoup(html, 'html.parser')
    extractor = StructuralExtractor(base_url=document_base_url(soup, base_url))
    extractor.register_namespace(ROOT_NAMESPACE, soup)

    if feed.css_namespace:
        namespace = extractor.extract_node(feed.css_namespace, soup)
        if namespace is None:
            logger.debug("Namespace query '%s' matched nothing on %s", feed.css_namespace, feed.url)
        extractor.register_namespace(NAMESPACE, namespace)

    items = []
    if (feed.css_entries and feed.css_entry_link) or allow_invalid:
        for element in extractor.extract_all(feed.css_entries, soup):
            link = extractor.extract_text(feed.css_entry_link, element, HREF_FALLBACK)
            if not link and not allow_invalid:
                continue

            published_raw = extractor.extract_text(feed.css_entry_published, element, TEXT_FALLBACK)
            published = parse_date(published_raw)

            items.append(FeedItem(
                guid=link,
                link=link,
                title=extractor.extract_text(feed.css_entry_title, element, TEXT_OR_HTML_FALLBACK),
                summary=extractor.extract_text(feed.css_entry_summary, element, TEXT_OR_HTML_FALLBACK),
                content=extractor.extract_text(feed.css_entry_content, element, HTML_OR_TEXT_FALLBACK),
                author=extractor.extract_text(feed.css_entry_author, element, TEXT_OR_HTML_FALLBACK),
                published=published or published_raw,
                iso_date=published.isoformat() + 'Z' if published else None,
                image=extractor.extract_text(feed.css_entry_image, element, SRC_FALLBACK),
                video=extractor.extract_text(feed.css_entry_video, element, SRC_FALLBACK),
            ))
    else:
        logger.debug("Feed %s has no entry/link queries configured", feed.url)

    title = extractor.extract_text(feed.css_name, soup, TEXT_FALLBACK)
    if title is None and not feed.css_name and soup.title:
        title = soup.title.get_text(strip=True) or None

    description = extractor.extract_text(feed.css_description, soup, TEXT_FALLBACK)
    if description is None and not feed.css_description:
        meta = soup.find('meta', attrs={'name': 'description'})
        if meta and meta.get('content'):
            description = meta['content'].strip() or None

    return ParsedFeed(title=title, description=description, items=items)
