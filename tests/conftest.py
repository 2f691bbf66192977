import asyncio
from typing import Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

import pytest
from multidict import CIMultiDict
from sqlalchemy.pool import NullPool

from feed_aggregator.core.exceptions import FetchError
from feed_aggregator.core.http_client import HttpResponse
from feed_aggregator.database import build_engine, build_session_factory, close_db_engine, init_db


class FakeHTTPClient:
    """Serves canned responses per URL and records every request."""

    def __init__(self, responses: Optional[Dict[str, object]] = None):
        self.responses = dict(responses or {})
        self.requests: List[Tuple[str, Dict[str, str]]] = []
        self.gate: Optional[asyncio.Event] = None

    def respond(self, url: str, status: int = 200, body=b'', headers=None):
        if isinstance(body, str):
            body = body.encode('utf-8')
        self.responses[url] = HttpResponse(
            status=status, headers=CIMultiDict(headers or {}), body=body, url=url, charset='utf-8'
        )

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        self.requests.append((url, dict(headers or {})))
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return HttpResponse(status=404, url=url)
        return response

    async def fetch_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        response = await self.fetch(url, headers)
        if not response.ok:
            raise FetchError(f"HTTP {response.status} for {url}", status_code=response.status)
        return response.body

    async def fetch_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        response = await self.fetch(url, headers)
        if not response.ok:
            raise FetchError(f"HTTP {response.status} for {url}", status_code=response.status)
        return response.text

    def fetch_count(self, url: str) -> int:
        return sum(1 for requested, _ in self.requests if requested == url)

    def last_headers(self, url: str) -> Dict[str, str]:
        return [headers for requested, headers in self.requests if requested == url][-1]


def make_rss(items, title='Example Feed', description='Example description', link='https://site.example/'):
    """Small RSS 2.0 document; each item is a dict of element name to text."""
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/" '
        'xmlns:media="http://search.yahoo.com/mrss/">',
        '<channel>',
        f'<title>{escape(title)}</title>',
        f'<link>{escape(link)}</link>',
        f'<description>{escape(description)}</description>',
    ]
    for item in items:
        parts.append('<item>')
        for name, value in item.items():
            if name == 'enclosure':
                parts.append(f'<enclosure url="{escape(value[0])}" type="{value[1]}" length="1"/>')
            elif name == 'media:thumbnail':
                parts.append(f'<media:thumbnail url="{escape(value)}"/>')
            elif name == 'guid':
                parts.append(f'<guid isPermaLink="false">{escape(value)}</guid>')
            else:
                parts.append(f'<{name}>{escape(value)}</{name}>')
        parts.append('</item>')
    parts.append('</channel></rss>')
    return '\n'.join(parts).encode('utf-8')


@pytest.fixture
def http_client():
    return FakeHTTPClient()


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}", poolclass=NullPool)
    asyncio.run(init_db(engine))
    yield build_session_factory(engine)
    asyncio.run(close_db_engine(engine))
