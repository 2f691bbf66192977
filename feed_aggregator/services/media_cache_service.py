"""Local cache of entry images and feed icons.

Files are fetched once and kept forever, under
``<media_dir>/<feed_id>/<entry_id><ext>``.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote, urlparse

import aiofiles

from ..config import get_settings
from ..core.exceptions import FetchError, MediaError
from ..core.http_client import AsyncHTTPClient

logger = logging.getLogger(__name__)

FAVICON_SERVICE = 'https://www.google.com/s2/favicons?domain={domain}&sz=24'
ICON_FILENAME = 'icon.png'


def media_extension(url: str) -> str:
    """File extension of a media URL, ignoring query string and fragment."""
    return os.path.splitext(urlparse(url).path)[1]


def site_origin(url: str) -> str:
    """``scheme://host`` part of a URL."""
    return '/'.join(url.split('/')[:3])


class MediaCacheService:
    """Service for caching media files on local disk."""

    def __init__(self, http_client: AsyncHTTPClient, media_dir: Optional[Union[str, Path]] = None,
                 public_prefix: str = '/media'):
        self.http_client = http_client
        self.media_dir = Path(media_dir or get_settings().get_media_dir())
        self.public_prefix = public_prefix.rstrip('/')

    def relative_path(self, feed_id: int, entry_id: int, media_url: str) -> str:
        return f"{feed_id}/{entry_id}{media_extension(media_url)}"

    def path_for(self, feed_id: int, entry_id: int, media_url: str) -> Path:
        return self.media_dir / self.relative_path(feed_id, entry_id, media_url)

    def public_path(self, feed_id: int, entry_id: int, media_url: str) -> str:
        return f"{self.public_prefix}/{self.relative_path(feed_id, entry_id, media_url)}"

    def icon_path(self, feed_id: int) -> Path:
        return self.media_dir / str(feed_id) / ICON_FILENAME

    def public_icon_path(self, feed_id: int) -> Optional[str]:
        if self.icon_path(feed_id).exists():
            return f"{self.public_prefix}/{feed_id}/{ICON_FILENAME}"
        return None

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).exists()

    async def write(self, path: Path, data: bytes) -> Path:
        """Write ``data`` to ``path``, creating parent directories."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, 'wb') as f:
                await f.write(data)
        except OSError as e:
            raise MediaError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes to {path}")
        return path

    async def store(self, url: str, path: Path) -> Optional[Path]:
        """Download ``url`` to ``path`` unless it is already cached."""
        if self.exists(path):
            return path
        try:
            data = await self.http_client.fetch_bytes(url)
        except FetchError as e:
            logger.warning(f"Media download failed for {url}: {e}")
            return None
        return await self.write(path, data)

    async def store_entry_image(self, feed_id: int, entry_id: int, image_url: Optional[str]) -> Optional[Path]:
        if not image_url:
            return None
        if image_url.startswith('//'):
            image_url = 'https:' + image_url
        try:
            path = self.path_for(feed_id, entry_id, image_url)
        except ValueError as e:
            raise MediaError(f"Unusable image URL {image_url!r}: {e}") from e
        return await self.store(image_url, path)

    async def store_favicon(self, feed_id: int, feed_url: str) -> Optional[Path]:
        icon_url = FAVICON_SERVICE.format(domain=quote(site_origin(feed_url), safe=''))
        return await self.store(icon_url, self.icon_path(feed_id))
