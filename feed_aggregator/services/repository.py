"""Keyed lookup and upsert operations on the feed and entry tables."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from sqlalchemy import and_, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConfigurationError, DatabaseError
from ..models import Entry, Feed

logger = logging.getLogger(__name__)

# Columns never overwritten when updating an existing entry
IMMUTABLE_ENTRY_FIELDS = frozenset({'id', 'guid'})


def identity_keys(model: Type) -> List[str]:
    """Primary key and unique columns of a model."""
    return [column.key for column in inspect(model).columns if column.primary_key or column.unique]


async def create_or_update(session: AsyncSession, model: Type, data: Mapping[str, Any]) -> Tuple[Any, bool]:
    """
    Insert ``data`` or update the row matching its identifying columns.

    Returns:
        Tuple of (record, created)

    Raises:
        ConfigurationError: the model has no primary or unique key, or
            ``data`` carries none of them
    """
    keys = identity_keys(model)
    if not keys:
        raise ConfigurationError(f"Model {model.__name__} has no primary or unique key defined.")

    conditions = [getattr(model, key) == data[key] for key in keys if data.get(key) is not None]
    if not conditions:
        raise ConfigurationError(f"No identifying value for {model.__name__} in {sorted(data)}")

    try:
        result = await session.execute(select(model).where(and_(*conditions)))
        record = result.scalar_one_or_none()
        created = record is None
        if created:
            record = model(**data)
            session.add(record)
        else:
            for key, value in data.items():
                setattr(record, key, value)
        await session.commit()
        await session.refresh(record)
        return record, created
    except SQLAlchemyError as e:
        await session.rollback()
        raise DatabaseError(f"Failed to store {model.__name__}: {e}") from e


class FeedRepository:
    """Feed table operations, keyed by URL."""

    async def get(self, session: AsyncSession, feed_id: int) -> Optional[Feed]:
        return await session.get(Feed, feed_id)

    async def get_by_url(self, session: AsyncSession, url: str) -> Optional[Feed]:
        result = await session.execute(select(Feed).where(Feed.url == url))
        return result.scalar_one_or_none()

    async def upsert(self, session: AsyncSession, url: str, **fields: Any) -> Tuple[Feed, bool]:
        """Create the feed row for ``url`` or update the given fields on it."""
        return await create_or_update(session, Feed, {'url': url, **fields})

    async def update(self, session: AsyncSession, feed: Feed, **fields: Any) -> Feed:
        try:
            for key, value in fields.items():
                setattr(feed, key, value)
            await session.commit()
            return feed
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError(f"Failed to update feed {feed.url}: {e}") from e

    async def list(self, session: AsyncSession) -> List[Feed]:
        result = await session.execute(select(Feed).order_by(Feed.id))
        return list(result.scalars().all())


class EntryRepository:
    """Entry table operations, keyed by guid."""

    async def find_by_guid(self, session: AsyncSession, guid: str) -> Optional[Entry]:
        result = await session.execute(select(Entry).where(Entry.guid == guid))
        return result.scalar_one_or_none()

    async def create(self, session: AsyncSession, data: Dict[str, Any]) -> Entry:
        if not data.get('guid'):
            raise ConfigurationError("Entry data has no guid")
        try:
            entry = Entry(**data)
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
            return entry
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError(f"Failed to create entry {data.get('guid')}: {e}") from e

    async def update(self, session: AsyncSession, entry: Entry, data: Dict[str, Any]) -> Entry:
        """Update an entry in place; its identity is never replaced."""
        try:
            for key, value in data.items():
                if key not in IMMUTABLE_ENTRY_FIELDS:
                    setattr(entry, key, value)
            await session.commit()
            await session.refresh(entry)
            return entry
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError(f"Failed to update entry {entry.guid}: {e}") from e

    async def list(self, session: AsyncSession, feed_id: Optional[int] = None,
                   limit: Optional[int] = None) -> List[Entry]:
        query = select(Entry).order_by(Entry.id.desc())
        if feed_id is not None:
            query = query.where(Entry.feed_id == feed_id)
        if limit:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())
