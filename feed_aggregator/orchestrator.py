"""Feed update orchestrator: fetch, parse, reconcile and persist each feed."""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .core.exceptions import (
    ConfigurationError,
    DatabaseError,
    FeedAggregatorError,
    FetchError,
    MediaError,
    ParseError,
    SourceError,
)
from .core.http_client import AsyncHTTPClient, BROWSER_HEADERS, HttpResponse
from .database import AsyncSessionLocal
from .models import Feed, FeedStatus
from .processing.reconciler import EntryReconciler, ReconcileOutcome, derive_guid
from .schemas import FeedDescriptor
from .services.feed_config import FeedConfigSource, normalize_feed_url
from .services.media_cache_service import MediaCacheService
from .services.notifier import Notifier, UpdateEvent
from .services.readability_service import ReadabilityService
from .services.repository import FeedRepository
from .sources.base import FeedItem, ParsedFeed
from .sources.registry import FeedParserRegistry
from .utils.logging_config import log_operation

logger = logging.getLogger(__name__)


class UpdateState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    ERROR = "error"


class UpdateOutcome(str, Enum):
    UPDATED = "updated"
    NOT_MODIFIED = "not_modified"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ReconcileSummary:
    """Per-batch counters of the reconciling stage."""
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0

    def add(self, outcome: ReconcileOutcome):
        if outcome == ReconcileOutcome.CREATED:
            self.created += 1
        elif outcome == ReconcileOutcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1

    @property
    def total(self) -> int:
        return self.created + self.updated + self.unchanged + self.failed

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0


@dataclass
class UpdateResult:
    """Result of one feed update."""
    url: str
    outcome: UpdateOutcome
    feed_id: Optional[int] = None
    message: Optional[str] = None
    summary: Optional[ReconcileSummary] = None

    @property
    def ok(self) -> bool:
        return self.outcome != UpdateOutcome.FAILED


class UpdateLockRegistry:
    """In-flight feed updates, keyed by feed id.

    Acquisition is a check-and-insert with no suspension point in between,
    so on a single event loop at most one update per feed id is running.
    """

    def __init__(self):
        self._active: Dict[int, UpdateState] = {}

    def try_acquire(self, feed_id: int) -> bool:
        if feed_id in self._active:
            return False
        self._active[feed_id] = UpdateState.IDLE
        return True

    def release(self, feed_id: int):
        self._active.pop(feed_id, None)

    def is_active(self, feed_id: int) -> bool:
        return feed_id in self._active

    def state(self, feed_id: int) -> UpdateState:
        return self._active.get(feed_id, UpdateState.IDLE)

    def set_state(self, feed_id: int, state: UpdateState):
        if feed_id in self._active:
            self._active[feed_id] = state

    @property
    def active(self) -> List[int]:
        return list(self._active)

    @contextmanager
    def hold(self, feed_id: int) -> Iterator[bool]:
        """Hold the lock for ``feed_id`` for the block; yields whether it was acquired."""
        acquired = self.try_acquire(feed_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(feed_id)


def build_request_headers(feed: Feed, descriptor: FeedDescriptor, force: bool = False) -> Dict[str, str]:
    """Request headers for a feed: browser set, custom headers, then cache validators."""
    headers: Dict[str, str] = {}
    if descriptor.fake_browser:
        headers.update(BROWSER_HEADERS)
    headers.update(descriptor.http_headers)
    if not force:
        if feed.etag:
            headers['If-None-Match'] = feed.etag
        if feed.last_modified:
            headers['If-Modified-Since'] = feed.last_modified
    return headers


def format_status(response: HttpResponse, summary: ReconcileSummary) -> str:
    status = (
        f"OK {response.status}: {summary.total} entries "
        f"({summary.created} new, {summary.updated} updated"
    )
    if summary.failed:
        status += f", {summary.failed} failed"
    return status + ")"


class FeedUpdateOrchestrator:
    """Runs feed updates, one pipeline per feed, guarded by a per-feed lock."""

    def __init__(self, session_factory=None,
                 http_client: Optional[AsyncHTTPClient] = None,
                 config_source: Optional[FeedConfigSource] = None,
                 reconciler: Optional[EntryReconciler] = None,
                 notifier: Optional[Notifier] = None,
                 media_store: Optional[MediaCacheService] = None,
                 parser_registry: Optional[FeedParserRegistry] = None,
                 lock_registry: Optional[UpdateLockRegistry] = None,
                 max_concurrent: Optional[int] = None,
                 fetch_favicons: Optional[bool] = None):
        settings = get_settings()
        self.session_factory = session_factory or AsyncSessionLocal
        self.http_client = http_client or AsyncHTTPClient()
        self.config_source = config_source or FeedConfigSource()
        self.media_store = media_store
        self.reconciler = reconciler or EntryReconciler(
            reader=ReadabilityService(self.http_client), media_store=media_store
        )
        self.notifier = notifier or Notifier()
        self.parsers = parser_registry or FeedParserRegistry()
        self.locks = lock_registry or UpdateLockRegistry()
        self.feeds = FeedRepository()
        self.max_concurrent = max_concurrent or settings.max_concurrent_updates
        self.fetch_favicons = settings.fetch_favicons if fetch_favicons is None else fetch_favicons

    async def update_all(self, force: bool = False) -> List[UpdateResult]:
        """Update every configured, non-disabled feed concurrently."""
        self.notifier.notify(UpdateEvent.SWEEP_STARTED)
        log_operation(logger, 'update_all', 'started', force=force)
        try:
            descriptors = await self.config_source.load()
            targets = []
            unavailable = []
            for descriptor in descriptors:
                if descriptor.is_disabled:
                    logger.debug(f"Skipping disabled feed {descriptor.url}")
                    continue
                try:
                    feed_id = await self._ensure_feed(descriptor)
                except (FeedAggregatorError, SQLAlchemyError) as e:
                    logger.error(f"Could not register feed {descriptor.url}: {e}")
                    unavailable.append(UpdateResult(descriptor.url, UpdateOutcome.FAILED, message=str(e)))
                    continue
                targets.append((feed_id, descriptor))

            semaphore = asyncio.Semaphore(self.max_concurrent)

            async def run(feed_id: int, descriptor: FeedDescriptor) -> UpdateResult:
                async with semaphore:
                    self.notifier.notify(UpdateEvent.SWEEP_FEED, descriptor.url)
                    return await self._update(feed_id, descriptor, force)

            gathered = await asyncio.gather(
                *(run(feed_id, descriptor) for feed_id, descriptor in targets),
                return_exceptions=True,
            )

            results = list(unavailable)
            for (feed_id, descriptor), result in zip(targets, gathered):
                if isinstance(result, BaseException):
                    logger.error(f"Update of {descriptor.url} crashed: {result}")
                    result = UpdateResult(descriptor.url, UpdateOutcome.FAILED, feed_id, str(result))
                results.append(result)

            failed = sum(1 for result in results if not result.ok)
            log_operation(logger, 'update_all', 'completed', feeds=len(results), failed=failed)
            return results
        finally:
            self.notifier.notify(UpdateEvent.SWEEP_FINISHED)

    async def update_feed(self, url: str, force: bool = False) -> UpdateResult:
        """Update exactly one configured feed."""
        url = normalize_feed_url(url)
        descriptor = await self.config_source.get(url)
        if descriptor is None:
            logger.warning(f"Feed {url} is not configured")
            return UpdateResult(url, UpdateOutcome.FAILED, message="Feed is not configured")

        try:
            feed_id = await self._ensure_feed(descriptor)
        except (FeedAggregatorError, SQLAlchemyError) as e:
            logger.error(f"Could not register feed {url}: {e}")
            return UpdateResult(url, UpdateOutcome.FAILED, message=str(e))
        if self.locks.is_active(feed_id):
            return self._skipped(feed_id, descriptor)

        self.notifier.notify(UpdateEvent.FEED_STARTED, descriptor.url)
        try:
            return await self._update(feed_id, descriptor, force)
        finally:
            self.notifier.notify(UpdateEvent.FEED_FINISHED, descriptor.url)

    async def _ensure_feed(self, descriptor: FeedDescriptor) -> int:
        """Id of the feed row for ``descriptor``, creating it on first sight."""
        async with self.session_factory() as session:
            feed = await self.feeds.get_by_url(session, descriptor.url)
            if feed is None:
                feed, _ = await self.feeds.upsert(
                    session, descriptor.url,
                    name=descriptor.name,
                    description=descriptor.description,
                    icon=descriptor.icon,
                    status=descriptor.status or FeedStatus.NORMAL,
                )
                logger.info(f"Discovered new feed {descriptor.url}")
            return feed.id

    def _skipped(self, feed_id: int, descriptor: FeedDescriptor) -> UpdateResult:
        logger.info(f"Update of {descriptor.url} already in progress")
        return UpdateResult(descriptor.url, UpdateOutcome.SKIPPED, feed_id, "Update already in progress")

    async def _update(self, feed_id: int, descriptor: FeedDescriptor, force: bool) -> UpdateResult:
        with self.locks.hold(feed_id) as acquired:
            if not acquired:
                return self._skipped(feed_id, descriptor)
            async with self.session_factory() as session:
                return await self._run_pipeline(session, feed_id, descriptor, force)

    async def _run_pipeline(self, session: AsyncSession, feed_id: int,
                            descriptor: FeedDescriptor, force: bool) -> UpdateResult:
        url = descriptor.url
        feed = await self.feeds.get(session, feed_id)
        if feed is None:
            return UpdateResult(url, UpdateOutcome.FAILED, feed_id, "Feed row disappeared")

        log_operation(logger, 'update_feed', 'started', url=url, force=force)
        try:
            self.locks.set_state(feed_id, UpdateState.FETCHING)
            response = await self.fetch_stage(feed, descriptor, force)
            if response.not_modified:
                log_operation(logger, 'update_feed', 'not_modified', url=url)
                return UpdateResult(url, UpdateOutcome.NOT_MODIFIED, feed_id, "Not modified")

            self.locks.set_state(feed_id, UpdateState.PARSING)
            parsed = self.parse_stage(response, descriptor)

            self.locks.set_state(feed_id, UpdateState.RECONCILING)
            summary = await self.reconcile_stage(session, feed, descriptor, parsed.items)

            self.locks.set_state(feed_id, UpdateState.PERSISTING)
            status = await self.persist_stage(session, feed, descriptor, parsed, response, summary)
        except SourceError as e:
            self.locks.set_state(feed_id, UpdateState.ERROR)
            log_operation(logger, 'update_feed', 'failed', url=url, error=e)
            await self._record_status(session, feed, f"Error: {e}")
            return UpdateResult(url, UpdateOutcome.FAILED, feed_id, str(e))
        except Exception as e:
            self.locks.set_state(feed_id, UpdateState.ERROR)
            logger.exception(f"Unexpected failure updating {url}")
            await self._record_status(session, feed, f"Error: {e.__class__.__name__}: {e}")
            return UpdateResult(url, UpdateOutcome.FAILED, feed_id, str(e))

        log_operation(logger, 'update_feed', 'completed', url=url, last_status=status)
        return UpdateResult(url, UpdateOutcome.UPDATED, feed_id, status, summary)

    async def fetch_stage(self, feed: Feed, descriptor: FeedDescriptor, force: bool = False) -> HttpResponse:
        """GET the feed; returns 2xx and 304 responses, raises FetchError otherwise."""
        headers = build_request_headers(feed, descriptor, force)
        response = await self.http_client.fetch(descriptor.url, headers=headers)
        if response.not_modified or response.ok:
            return response
        raise FetchError(f"HTTP {response.status} for {descriptor.url}", status_code=response.status)

    def parse_stage(self, response: HttpResponse, descriptor: FeedDescriptor) -> ParsedFeed:
        try:
            return self.parsers.parse(response, descriptor)
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Failed to parse {descriptor.url}: {e}") from e

    async def reconcile_stage(self, session: AsyncSession, feed: Feed, descriptor: FeedDescriptor,
                              items: List[FeedItem]) -> ReconcileSummary:
        """Reconcile items one by one; a failing item never stops its siblings."""
        summary = ReconcileSummary()
        for item in items:
            guid = derive_guid(item)
            self.notifier.notify(UpdateEvent.ENTRY_PROCESSING, descriptor.url, guid)
            try:
                result = await self.reconciler.reconcile(session, feed, item)
            except ConfigurationError:
                raise
            except FeedAggregatorError as e:
                summary.failed += 1
                logger.warning(f"Skipping entry {guid or item.title!r} of {descriptor.url}: {e}")
                if isinstance(e, DatabaseError):
                    # The rollback expired the feed row
                    await session.refresh(feed)
                continue
            summary.add(result.outcome)
        return summary

    async def persist_stage(self, session: AsyncSession, feed: Feed, descriptor: FeedDescriptor,
                            parsed: ParsedFeed, response: HttpResponse, summary: ReconcileSummary) -> str:
        """Store feed metadata and status; cache validators only after a clean batch."""
        status = format_status(response, summary)
        fields = {
            'name': descriptor.name or parsed.title or feed.name,
            'description': descriptor.description or parsed.description or feed.description,
            'status': descriptor.status or FeedStatus.NORMAL,
            'last_status': status,
        }
        if descriptor.icon:
            fields['icon'] = descriptor.icon
        if summary.all_succeeded:
            fields['etag'] = response.headers.get('ETag')
            fields['last_modified'] = response.headers.get('Last-Modified')
        else:
            logger.info(f"Keeping cache validators of {feed.url}: {summary.failed} entries failed")

        await self.feeds.update(session, feed, **fields)
        await self._store_favicon(session, feed)
        return status

    async def _store_favicon(self, session: AsyncSession, feed: Feed):
        if not self.fetch_favicons or self.media_store is None or feed.icon:
            return
        try:
            if await self.media_store.store_favicon(feed.id, feed.url):
                await self.feeds.update(session, feed, icon=self.media_store.public_icon_path(feed.id))
        except MediaError as e:
            logger.warning(f"Could not cache icon for {feed.url}: {e}")

    async def _record_status(self, session: AsyncSession, feed: Feed, status: str):
        try:
            await self.feeds.update(session, feed, last_status=status)
        except DatabaseError as e:
            logger.error(f"Could not record status for {feed.url}: {e}")
