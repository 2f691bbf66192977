"""Async HTTP client with connection pooling, timeouts and retries."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Mapping

import aiohttp
from aiohttp import ClientConnectionError, ClientError, ClientTimeout
from multidict import CIMultiDict
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..config import settings
from .exceptions import FetchError

logger = logging.getLogger(__name__)

# Header set sent for feeds configured with ``fake_browser``.
BROWSER_HEADERS: Dict[str, str] = {
    'User-Agent': (
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
        '(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36'
    ),
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'none',
    'Upgrade-Insecure-Requests': '1',
}


@dataclass
class HttpResponse:
    """Fully read HTTP response."""
    status: int
    headers: Mapping[str, str] = field(default_factory=CIMultiDict)
    body: bytes = b''
    url: str = ''
    charset: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def not_modified(self) -> bool:
        return self.status == 304

    @property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset or 'utf-8')
        except (LookupError, UnicodeDecodeError):
            return self.body.decode('utf-8', errors='replace')


class AsyncHTTPClient:
    """Async HTTP client with bounded timeouts and connection pooling."""

    def __init__(self, timeout: Optional[float] = None, connect_timeout: Optional[float] = None):
        self.session: Optional[aiohttp.ClientSession] = None
        self.timeout = ClientTimeout(
            total=timeout or settings.http_timeout,
            connect=connect_timeout or settings.http_connect_timeout,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Start the HTTP client session."""
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,  # Total connection pool size
                limit_per_host=5,
                ttl_dns_cache=300,
            )
            self.session = aiohttp.ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers={'User-Agent': settings.user_agent},
            )

    async def close(self):
        """Close the HTTP client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    @retry(
        stop=stop_after_attempt(settings.http_retries),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        # Only transient failures; bad URLs and protocol errors fail at once
        retry=retry_if_exception_type((ClientConnectionError, asyncio.TimeoutError)),
        reraise=True,
    )
    async def _get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        if not self.session or self.session.closed:
            await self.start()

        async with self.session.get(url, headers=headers, allow_redirects=True) as response:
            body = await response.read()
            return HttpResponse(
                status=response.status,
                headers=CIMultiDict(response.headers),
                body=body,
                url=str(response.url),
                charset=response.charset,
            )

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        """GET ``url`` and return the response whatever its status.

        Network failures and timeouts are raised as :class:`FetchError`.
        """
        try:
            return await self._get(url, headers=headers)
        except (ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"Request to {url} failed: {e.__class__.__name__}: {e}") from e

    async def fetch_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        """Fetch URL and return text content, raising on non-2xx status."""
        response = await self.fetch(url, headers=headers)
        if not response.ok:
            raise FetchError(f"HTTP {response.status} for {url}", status_code=response.status)
        return response.text

    async def fetch_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        """Fetch URL and return raw bytes, raising on non-2xx status."""
        response = await self.fetch(url, headers=headers)
        if not response.ok:
            raise FetchError(f"HTTP {response.status} for {url}", status_code=response.status)
        return response.body
