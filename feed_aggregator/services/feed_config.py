"""Feed and profile configuration loaded from INI-style files."""

import configparser
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
from pydantic import ValidationError

from ..config import get_settings
from ..schemas import FeedDescriptor, PROFILE_FIELDS, merge_feed_settings

logger = logging.getLogger(__name__)

Profiles = Dict[str, Dict[str, str]]


def _read_ini(text: str, default_section: Optional[str] = None) -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None, delimiters=('=',), strict=False)
    parser.optionxform = lambda option: option.strip().lower()
    if default_section:
        text = f"[{default_section}]\n{text}"
    parser.read_string(text)
    return parser


def normalize_feed_url(url: str) -> str:
    url = url.strip()
    if not url.lower().startswith(('http://', 'https://')):
        url = 'https://' + url
    return url


def parse_feeds_file(text: str) -> List[Dict[str, Any]]:
    """
    Parse the feeds file into raw descriptor dictionaries.

    Blocks are separated by blank lines. The first line of a block is the
    feed URL (``https://`` is added when no scheme is given; a leading ``#``
    comments the whole block out); the remaining lines are ``key = value``
    settings.
    """
    feeds = []
    text = text.replace('\r', '').strip()
    if not text:
        return feeds

    for block in text.split('\n\n'):
        lines = block.strip().split('\n')
        url = lines[0].strip()
        if not url or url.startswith('#'):
            continue

        props: Dict[str, Any] = {}
        body = '\n'.join(lines[1:])
        if body.strip():
            try:
                props = dict(_read_ini(body, default_section='feed')['feed'])
            except configparser.Error as e:
                logger.warning(f"Ignoring malformed settings for feed {url}: {e}")
                props = {}

        props['url'] = normalize_feed_url(url)
        feeds.append(props)
    return feeds


def parse_profiles(text: str) -> Profiles:
    """Parse a profiles INI file: one section per profile."""
    if not text or not text.strip():
        return {}
    try:
        parser = _read_ini(text)
    except configparser.Error as e:
        logger.warning(f"Ignoring malformed profiles file: {e}")
        return {}
    return {
        section: {key: value for key, value in parser[section].items() if key in PROFILE_FIELDS}
        for section in parser.sections()
    }


def build_descriptor(raw: Dict[str, Any], system_profiles: Profiles,
                     user_profiles: Profiles) -> FeedDescriptor:
    """Apply profile defaults to inline settings: system, then user, then inline."""
    profile_name = raw.get('profile')
    system_profile = user_profile = None
    if profile_name:
        system_profile = system_profiles.get(profile_name)
        user_profile = user_profiles.get(profile_name)
        if system_profile is None and user_profile is None:
            logger.warning(f"Feed {raw.get('url')} references unknown profile '{profile_name}'")
    return FeedDescriptor(**merge_feed_settings(system_profile, user_profile, raw))


class FeedConfigSource:
    """Read-only source of feed descriptors; files are re-read on every load."""

    def __init__(self, feeds_path: Optional[Path] = None,
                 system_profiles_path: Optional[Path] = None,
                 user_profiles_path: Optional[Path] = None):
        settings = get_settings()
        self.feeds_path = Path(feeds_path or settings.get_feeds_path())
        self.system_profiles_path = Path(system_profiles_path or settings.system_profiles_path)
        self.user_profiles_path = Path(user_profiles_path or settings.get_user_profiles_path())

    @staticmethod
    async def _read_text(path: Path) -> str:
        if not path.exists():
            return ''
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            return await f.read()

    async def load_profiles(self) -> Dict[str, Profiles]:
        return {
            'system': parse_profiles(await self._read_text(self.system_profiles_path)),
            'user': parse_profiles(await self._read_text(self.user_profiles_path)),
        }

    async def load(self) -> List[FeedDescriptor]:
        """Load all configured feeds with their profile defaults applied."""
        text = await self._read_text(self.feeds_path)
        if not text:
            logger.warning(f"No feeds configured ({self.feeds_path} missing or empty)")
            return []

        profiles = await self.load_profiles()
        descriptors = []
        seen = set()
        for raw in parse_feeds_file(text):
            try:
                descriptor = build_descriptor(raw, profiles['system'], profiles['user'])
            except (ValidationError, ValueError) as e:
                logger.error(f"Invalid configuration for feed {raw.get('url')}: {e}")
                continue
            if descriptor.url in seen:
                logger.warning(f"Duplicate feed {descriptor.url} ignored")
                continue
            seen.add(descriptor.url)
            descriptors.append(descriptor)
        return descriptors

    async def get(self, url: str) -> Optional[FeedDescriptor]:
        """Descriptor for one feed URL, if configured."""
        url = normalize_feed_url(url)
        for descriptor in await self.load():
            if descriptor.url == url:
                return descriptor
        return None
