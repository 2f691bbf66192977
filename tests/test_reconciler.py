import asyncio

import pytest

from feed_aggregator.core.exceptions import FetchError, ReconciliationError
from feed_aggregator.processing.reconciler import (
    EntryReconciler,
    ReconcileOutcome,
    check_entry_changed,
    derive_content,
    derive_guid,
    derive_summary,
    get_media,
    resolve_media_url,
)
from feed_aggregator.services.readability_service import ReadabilityService, ReadableArticle
from feed_aggregator.services.repository import EntryRepository, FeedRepository
from feed_aggregator.sources.base import FeedItem

FEED_URL = 'https://site.example/feed.xml'


def entry_fields(**overrides):
    fields = {'published': 'never', 'title': 'T', 'summary': 'S', 'content': 'C'}
    fields.update(overrides)
    return fields


def test_invalid_dates_alone_are_not_a_change():
    assert check_entry_changed(entry_fields(), entry_fields(published='unknown')) is False
    assert check_entry_changed(entry_fields(published=None), entry_fields(published=None)) is False


def test_title_change_is_detected_with_invalid_dates():
    assert check_entry_changed(entry_fields(title='New'), entry_fields()) is True


def test_summary_and_content_changes_are_detected():
    assert check_entry_changed(entry_fields(summary='S2'), entry_fields()) is True
    assert check_entry_changed(entry_fields(content='C2'), entry_fields()) is True


def test_dates_compare_by_instant():
    same_rfc = entry_fields(published='Tue, 02 Jan 2024 03:04:05 GMT')
    same_iso = entry_fields(published='2024-01-02T03:04:05Z')
    later = entry_fields(published='2024-01-02T04:04:05Z')
    assert check_entry_changed(same_rfc, same_iso) is False
    assert check_entry_changed(later, same_iso) is True
    # one valid date against an invalid one is not a change
    assert check_entry_changed(same_iso, entry_fields()) is False


def test_derived_fields():
    assert derive_guid(FeedItem(guid='g', link='l')) == 'g'
    assert derive_guid(FeedItem(link='l')) == 'l'
    assert derive_guid(FeedItem(title='t')) is None

    assert derive_summary(FeedItem(summary='s', content_snippet='c')) == 's'
    assert derive_summary(FeedItem(content_snippet='c', encoded_snippet='e')) == 'c'
    assert derive_summary(FeedItem(encoded_snippet='e', media_description=['m'])) == 'e'
    assert derive_summary(FeedItem(media_description=['m1', 'm2'])) == 'm1'
    assert derive_summary(FeedItem()) is None

    assert derive_content(FeedItem(encoded_content='<p>full</p>', content='plain')) == '<p>full</p>'
    assert derive_content(FeedItem(content='plain')) == 'plain'


def test_relative_media_url_is_joined_literally():
    item = FeedItem(link='https://site.example/posts/1', content='<p><img src="img.jpg"></p>')
    assert get_media(FEED_URL, item, 'image') == 'https://site.example/posts/1img.jpg'


def test_media_url_resolution_rules():
    link = 'https://site.example/posts/1'
    assert resolve_media_url('/a.png', FEED_URL, link) == 'https://site.example/a.png'
    assert resolve_media_url('//cdn.example/a.png', FEED_URL, link) == '//cdn.example/a.png'
    assert resolve_media_url('https://cdn.example/a.png', FEED_URL, link) == 'https://cdn.example/a.png'
    assert resolve_media_url('HTTP://cdn.example/a.png', FEED_URL, link) == 'HTTP://cdn.example/a.png'
    # a link ending in "/" gets its parent path inserted before the media path
    assert resolve_media_url('img.jpg', FEED_URL, 'https://site.example/posts/') == (
        'https://site.example/posts/https://site.example/posts/img.jpg'
    )
    assert resolve_media_url('img.jpg', FEED_URL, None) == 'img.jpg'
    assert resolve_media_url(None, FEED_URL, link) is None


def test_media_selection_order():
    enclosure = FeedItem(
        link='https://site.example/p',
        enclosure={'url': 'https://site.example/e.jpg', 'type': 'image/jpeg'},
        media_thumbnail=['https://site.example/t.jpg'],
        content='<img src="https://site.example/c.jpg">',
    )
    assert get_media(FEED_URL, enclosure, 'image') == 'https://site.example/e.jpg'
    # image enclosures are not videos
    assert get_media(FEED_URL, enclosure, 'video') is None

    thumbnail = FeedItem(media_thumbnail=['https://site.example/t.jpg'], content='<img src="/c.jpg">')
    assert get_media(FEED_URL, thumbnail, 'image') == 'https://site.example/t.jpg'

    encoded = FeedItem(encoded_content='<img src="/enc.jpg">', content='<img src="/c.jpg">')
    assert get_media(FEED_URL, encoded, 'image') == 'https://site.example/enc.jpg'

    reader_html = '<video src="https://site.example/v.mp4"></video>'
    assert get_media(FEED_URL, FeedItem(content='<p>no media</p>'), 'video', reader_html) == (
        'https://site.example/v.mp4'
    )


def make_feed(session_factory):
    async def create():
        async with session_factory() as session:
            feed, _ = await FeedRepository().upsert(session, FEED_URL, name='Example')
            return feed
    return asyncio.run(create())


def reconcile(session_factory, reconciler, feed, item):
    async def run():
        async with session_factory() as session:
            return await reconciler.reconcile(session, feed, item)
    return asyncio.run(run())


def stored_entry(session_factory, guid):
    async def load():
        async with session_factory() as session:
            return await EntryRepository().find_by_guid(session, guid)
    return asyncio.run(load())


def item(**overrides):
    fields = {
        'guid': 'post-1',
        'link': 'https://site.example/posts/1',
        'title': 'First',
        'content': '<p>Body</p>',
        'published': 'Tue, 02 Jan 2024 03:04:05 GMT',
    }
    fields.update(overrides)
    return FeedItem(**fields)


def test_reconcile_creates_then_detects_changes(session_factory):
    feed = make_feed(session_factory)
    reconciler = EntryReconciler(reader_mode=False)

    created = reconcile(session_factory, reconciler, feed, item())
    assert created.outcome == ReconcileOutcome.CREATED
    assert created.entry.feed_id == feed.id
    assert created.entry.published.isoformat() == '2024-01-02T03:04:05'
    assert created.entry.published_raw == 'Tue, 02 Jan 2024 03:04:05 GMT'

    again = reconcile(session_factory, reconciler, feed, item())
    assert again.outcome == ReconcileOutcome.UNCHANGED
    assert again.entry.id == created.entry.id

    changed = reconcile(session_factory, reconciler, feed, item(title='First (updated)'))
    assert changed.outcome == ReconcileOutcome.UPDATED
    entry = stored_entry(session_factory, 'post-1')
    assert entry.id == created.entry.id
    assert entry.guid == 'post-1'
    assert entry.title == 'First (updated)'


def test_reconcile_rejects_items_without_guid(session_factory):
    feed = make_feed(session_factory)
    with pytest.raises(ReconciliationError):
        reconcile(session_factory, EntryReconciler(reader_mode=False), feed, FeedItem(title='Orphan'))


def test_reader_mode_runs_for_new_and_changed_entries_only(session_factory, mocker):
    feed = make_feed(session_factory)
    reader = mocker.Mock(spec=ReadabilityService)
    reader.readerify = mocker.AsyncMock(return_value=ReadableArticle(
        url='https://site.example/posts/1', title='First',
        content='<div><img src="https://site.example/reader.jpg"></div>',
    ))
    reconciler = EntryReconciler(reader=reader, reader_mode=True)

    result = reconcile(session_factory, reconciler, feed, item())
    reader.readerify.assert_awaited_once_with('https://site.example/posts/1')
    assert 'reader.jpg' in result.entry.html
    # no media in the item itself, so the image comes from the reader markup
    assert result.entry.image == 'https://site.example/reader.jpg'

    reconcile(session_factory, reconciler, feed, item())
    assert reader.readerify.await_count == 1


def test_reader_failure_is_not_fatal(session_factory, mocker):
    feed = make_feed(session_factory)
    reader = mocker.Mock(spec=ReadabilityService)
    reader.readerify = mocker.AsyncMock(side_effect=FetchError('HTTP 500', status_code=500))
    reconciler = EntryReconciler(reader=reader, reader_mode=True)

    result = reconcile(session_factory, reconciler, feed, item())
    assert result.outcome == ReconcileOutcome.CREATED
    assert result.entry.html is None


def test_stored_reader_html_survives_unchanged_updates(session_factory, mocker):
    feed = make_feed(session_factory)
    reader = mocker.Mock(spec=ReadabilityService)
    reader.readerify = mocker.AsyncMock(return_value=ReadableArticle(
        url='https://site.example/posts/1', title=None, content='<p>Reader</p>',
    ))
    reconciler = EntryReconciler(reader=reader, reader_mode=True)
    reconcile(session_factory, reconciler, feed, item())

    reader.readerify.side_effect = FetchError('down')
    reconcile(session_factory, reconciler, feed, item(title='Changed'))
    assert stored_entry(session_factory, 'post-1').html == '<p>Reader</p>'


def test_entry_image_is_cached(session_factory, mocker):
    feed = make_feed(session_factory)
    media_store = mocker.Mock()
    media_store.store_entry_image = mocker.AsyncMock(return_value=None)
    reconciler = EntryReconciler(media_store=media_store, reader_mode=False)

    result = reconcile(session_factory, reconciler, feed, item(
        enclosure={'url': 'https://site.example/1.jpg?w=300', 'type': 'image/jpeg'},
    ))
    assert result.entry.image == 'https://site.example/1.jpg?w=300'
    media_store.store_entry_image.assert_awaited_once_with(
        feed.id, result.entry.id, 'https://site.example/1.jpg?w=300'
    )


def test_youtube_links_get_an_embed(session_factory):
    feed = make_feed(session_factory)
    result = reconcile(session_factory, EntryReconciler(reader_mode=False), feed, item(
        guid='yt:video:abc123', link='https://www.youtube.com/watch?v=abc123',
    ))
    assert result.entry.embed == 'https://www.youtube-nocookie.com/embed/abc123'
