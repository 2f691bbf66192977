"""HTML utilities for feed content."""

import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

# Tags removed together with their content
DANGEROUS_TAGS = ('script', 'style', 'noscript', 'object', 'embed', 'applet', 'form', 'base', 'meta', 'link')

URL_ATTRIBUTES = ('href', 'src', 'action', 'formaction', 'poster', 'xlink:href')

MEDIA_SOURCE_SELECTOR = 'img[src], video[src], audio[src], iframe[src], source[src]'


def sanitize_html(html: Optional[str]) -> Optional[str]:
    """
    Strip scripts and other dangerous markup from an HTML fragment.

    Removes script-like elements, ``on*`` event handler attributes and
    ``javascript:`` URLs. Iframes are kept so embedded players survive.

    Args:
        html: Input HTML string

    Returns:
        Sanitized HTML or None for empty input
    """
    if not html or not html.strip():
        return None

    soup = BeautifulSoup(html, 'html.parser')

    for tag in soup.find_all(DANGEROUS_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            if attr.lower().startswith('on'):
                del tag[attr]
            elif attr.lower() in URL_ATTRIBUTES:
                value = tag.get(attr)
                if isinstance(value, str) and re.match(r'^\s*(javascript|vbscript|data:text/html)', value, re.I):
                    del tag[attr]

    return str(soup)


def absolutize_urls(soup: BeautifulSoup, base_url: str) -> BeautifulSoup:
    """Rewrite link targets and media sources in ``soup`` to absolute URLs."""
    for tag in soup.select('a[href]'):
        tag['href'] = urljoin(base_url, tag['href'].strip())
    for tag in soup.select(MEDIA_SOURCE_SELECTOR):
        tag['src'] = urljoin(base_url, tag['src'].strip())
    return soup


def patch_reader_content(html: Optional[str]) -> Optional[str]:
    """Make every link in reader-mode markup open in a new tab without referrer leaks."""
    if not html:
        return html
    soup = BeautifulSoup(html, 'html.parser')
    for tag in soup.select('a[href]'):
        tag['target'] = '_blank'
        tag['rel'] = 'nofollow noopener'
    return str(soup)


def get_media_from_html(html: Optional[str], media_type: str) -> Optional[str]:
    """Source URL of the first ``img`` (for images) or ``<media_type>`` element."""
    if not html:
        return None
    soup = BeautifulSoup(html, 'html.parser')
    tag_name = 'img' if media_type == 'image' else media_type
    for tag in soup.find_all(tag_name):
        src = tag.get('src')
        if src:
            return src
    return None


def html_to_text(html: Optional[str]) -> Optional[str]:
    """Plain text snippet of an HTML fragment."""
    if not html:
        return None
    text = BeautifulSoup(html, 'html.parser').get_text(separator=' ', strip=True)
    text = re.sub(r'\s+', ' ', text).strip()
    return text or None


def youtube_embed_url(link: Optional[str]) -> Optional[str]:
    """Privacy-enhanced embed URL for a YouTube watch link."""
    if not link or not link.startswith('https://www.youtube.com/'):
        return None
    tokens = link.rstrip('/').split('/')[-1].split('=')
    video_id = tokens[1] if len(tokens) > 1 and tokens[1] else tokens[0]
    video_id = video_id.split('&')[0]
    if not video_id:
        return None
    return f'https://www.youtube-nocookie.com/embed/{video_id}'
