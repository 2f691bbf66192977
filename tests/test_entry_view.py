from datetime import datetime
from types import SimpleNamespace

from feed_aggregator.models import Entry
from feed_aggregator.processing.entry_view import (
    build_entry_view,
    build_entry_views,
    find_by_slug,
    slugify_url,
    sort_entries,
)
from feed_aggregator.services.media_cache_service import MediaCacheService

NOW = datetime(2024, 1, 2, 6, 4, 5)


def make_entry(**fields):
    defaults = {'id': 1, 'feed_id': 1, 'guid': 'https://site.example/p/1'}
    defaults.update(fields)
    return Entry(**defaults)


def test_slugify_url():
    assert slugify_url('https://Site.example/a/b?x=1&y=2') == 'site.example-a-b-x-1-y-2'
    assert slugify_url('http://site.example/%7Euser/') == 'site.example-7euser-'


def test_find_by_slug():
    feeds = [SimpleNamespace(url='https://one.example/rss'), SimpleNamespace(url='https://two.example/rss')]
    assert find_by_slug(feeds, 'two.example-rss') is feeds[1]
    assert find_by_slug(feeds, 'three.example-rss') is None


def test_dated_entries_sort_newest_first():
    old = make_entry(id=1, published=datetime(2024, 1, 1))
    new = make_entry(id=2, published=datetime(2024, 1, 3))
    middle = make_entry(id=3, published=datetime(2024, 1, 2))
    assert [e.id for e in sort_entries([old, new, middle])] == [2, 3, 1]


def test_undated_entries_sort_by_id():
    assert [e.id for e in sort_entries([make_entry(id=1), make_entry(id=3), make_entry(id=2)])] == [3, 2, 1]


def test_view_fields():
    entry = make_entry(
        link=None,
        title='Title',
        content='<p onclick="x()">Body</p><script>alert(1)</script>',
        html='<p><a href="https://other.example/">more</a></p>',
        published=datetime(2024, 1, 2, 3, 4, 5),
    )

    view = build_entry_view(entry, now=NOW)

    assert view.link == 'https://site.example/p/1'
    assert view.slug == 'site.example-p-1'
    assert view.content == '<p>Body</p>'
    assert 'target="_blank"' in view.html
    assert view.iso_published == '2024-01-02T03:04:05Z'
    assert view.rel_published == '3 hours ago'
    # the stored entry is left as it was
    assert entry.link is None
    assert 'script' in entry.content


def test_cached_image_is_served_locally(tmp_path):
    store = MediaCacheService(http_client=None, media_dir=tmp_path)
    entry = make_entry(id=5, feed_id=2, image='https://site.example/i.jpg?w=1')
    assert build_entry_view(entry, store).image == 'https://site.example/i.jpg?w=1'

    (tmp_path / '2').mkdir()
    (tmp_path / '2' / '5.jpg').write_bytes(b'jpeg')
    assert build_entry_view(entry, store).image == '/media/2/5.jpg'


def test_build_entry_views_sorts():
    views = build_entry_views([make_entry(id=1), make_entry(id=2)], now=NOW)
    assert [view.id for view in views] == [2, 1]
    assert views[0].rel_published is None


def test_unusable_image_url_is_served_as_is(tmp_path):
    store = MediaCacheService(http_client=None, media_dir=tmp_path)
    entry = make_entry(image='http://[broken/pic.jpg')
    assert build_entry_view(entry, store, now=NOW).image == 'http://[broken/pic.jpg'
