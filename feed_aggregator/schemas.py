"""Pydantic schemas for feed configuration."""

import json
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Descriptor fields a profile may provide defaults for
PROFILE_FIELDS = (
    'type',
    'css_namespace',
    'css_name',
    'css_description',
    'css_entries',
    'css_entry_link',
    'css_entry_title',
    'css_entry_summary',
    'css_entry_content',
    'css_entry_author',
    'css_entry_published',
    'css_entry_image',
    'css_entry_video',
    'http_headers',
    'fake_browser',
)


class FeedType(str, Enum):
    """Feed formats."""
    STANDARD = "standard"
    HTML = "html"


def parse_bool(value: Any) -> Optional[bool]:
    """Parse ``true/yes/1`` and ``false/no/0``; anything else is ``None``."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    value = str(value).strip().lower()
    if value in ('true', 'yes', '1', 'on'):
        return True
    if value in ('false', 'no', '0', 'off'):
        return False
    return None


class FeedDescriptor(BaseModel):
    """Configuration for one subscribed source."""
    model_config = ConfigDict(extra='ignore', frozen=True)

    url: str
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    type: FeedType = FeedType.STANDARD
    status: Optional[str] = None
    profile: Optional[str] = None

    css_namespace: Optional[str] = None
    css_name: Optional[str] = None
    css_description: Optional[str] = None
    css_entries: Optional[str] = None
    css_entry_link: Optional[str] = None
    css_entry_title: Optional[str] = None
    css_entry_summary: Optional[str] = None
    css_entry_content: Optional[str] = None
    css_entry_author: Optional[str] = None
    css_entry_published: Optional[str] = None
    css_entry_image: Optional[str] = None
    css_entry_video: Optional[str] = None

    http_headers: Dict[str, str] = Field(default_factory=dict)
    fake_browser: bool = False

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, FeedType):
            return v
        if v is None or v == '':
            return FeedType.STANDARD
        v = str(v).strip().lower()
        if v in ('rss', 'atom', 'xml', 'feed'):
            return FeedType.STANDARD
        return v

    @field_validator('http_headers', mode='before')
    @classmethod
    def parse_headers(cls, v):
        if v is None or v == '':
            return {}
        if isinstance(v, str):
            v = json.loads(v)
        if not isinstance(v, Mapping):
            raise ValueError("http_headers must be a JSON object")
        return {str(key): str(value) for key, value in v.items()}

    @field_validator('fake_browser', mode='before')
    @classmethod
    def parse_fake_browser(cls, v):
        return bool(parse_bool(v))

    @property
    def is_html(self) -> bool:
        return self.type == FeedType.HTML

    @property
    def is_disabled(self) -> bool:
        return (self.status or '').lower() == 'disabled'


def merge_feed_settings(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge setting layers field by field, later layers winning.

    Unset values (``None`` or empty strings) never overwrite an earlier value.
    The inputs are left untouched.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            merged[key] = value
    return merged
