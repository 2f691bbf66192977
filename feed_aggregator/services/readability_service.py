"""Reader-mode extraction of linked articles."""

import logging
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup
from readability import Document

from ..core.exceptions import ContentExtractionError
from ..core.http_client import AsyncHTTPClient
from ..utils.html_utils import absolutize_urls, sanitize_html

logger = logging.getLogger(__name__)


@dataclass
class ReadableArticle:
    """Simplified article produced by reader-mode extraction."""
    url: str
    title: Optional[str]
    content: Optional[str]


def readerify_html(url: str, html: str) -> ReadableArticle:
    """Run readability on ``html`` after resolving relative links against ``url``."""
    try:
        soup = absolutize_urls(BeautifulSoup(html, 'html.parser'), url)
        document = Document(str(soup), url=url)
        content = document.summary(html_partial=True)
        title = document.short_title()
    except Exception as e:
        # readability raises bare lxml/parser errors on degenerate markup
        raise ContentExtractionError(f"Readability extraction failed for {url}: {e}") from e

    return ReadableArticle(url=url, title=title or None, content=sanitize_html(content))


class ReadabilityService:
    """Fetches a page (or reuses given HTML) and returns its reader-mode article."""

    def __init__(self, http_client: AsyncHTTPClient):
        self.http_client = http_client

    async def readerify(self, url: str, html: Optional[str] = None) -> ReadableArticle:
        if html is None:
            html = await self.http_client.fetch_text(url)
        return readerify_html(url, html)
