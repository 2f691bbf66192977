"""Services used by the update pipeline."""

from .feed_config import FeedConfigSource
from .media_cache_service import MediaCacheService
from .notifier import Notification, Notifier, UpdateEvent
from .readability_service import ReadabilityService, ReadableArticle
from .repository import EntryRepository, FeedRepository, create_or_update

__all__ = [
    'FeedConfigSource',
    'MediaCacheService',
    'Notification',
    'Notifier',
    'UpdateEvent',
    'ReadabilityService',
    'ReadableArticle',
    'EntryRepository',
    'FeedRepository',
    'create_or_update',
]
