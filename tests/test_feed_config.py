import asyncio
from pathlib import Path

from feed_aggregator.schemas import FeedDescriptor, FeedType, merge_feed_settings, parse_bool
from feed_aggregator.services.feed_config import (
    FeedConfigSource,
    build_descriptor,
    normalize_feed_url,
    parse_feeds_file,
    parse_profiles,
)

SYSTEM_PROFILES = Path(__file__).resolve().parent.parent / 'res' / 'profiles.ini'

FEEDS = """
https://site.example/feed.xml
name = Example

blog.example/news
type = html
profile = wordpress
css_entry_title = h2::text

# https://commented.example/feed
name = Commented

https://site.example/feed.xml
name = Duplicate
"""


def test_feeds_file_blocks():
    feeds = parse_feeds_file(FEEDS)
    assert [feed['url'] for feed in feeds] == [
        'https://site.example/feed.xml',
        'https://blog.example/news',
        'https://site.example/feed.xml',
    ]
    assert feeds[0] == {'name': 'Example', 'url': 'https://site.example/feed.xml'}
    assert feeds[1]['css_entry_title'] == 'h2::text'


def test_empty_feeds_file():
    assert parse_feeds_file('') == []
    assert parse_feeds_file('\n\n  \n') == []


def test_values_may_contain_equals_signs():
    [feed] = parse_feeds_file('site.example\ncss_entries = a[href="/x"]\n')
    assert feed['css_entries'] == 'a[href="/x"]'


def test_url_normalization():
    assert normalize_feed_url(' site.example/rss ') == 'https://site.example/rss'
    assert normalize_feed_url('http://site.example/rss') == 'http://site.example/rss'
    assert normalize_feed_url('HTTPS://site.example/rss') == 'HTTPS://site.example/rss'


def test_profiles_keep_profile_fields_only():
    profiles = parse_profiles('[custom]\ntype = html\nname = Ignored\ncss_entries = .post\n')
    assert profiles == {'custom': {'type': 'html', 'css_entries': '.post'}}
    assert parse_profiles('') == {}
    assert parse_profiles('not an ini file') == {}


def test_inline_settings_override_user_and_system_profiles():
    system = {'custom': {'type': 'html', 'css_entries': '.a', 'css_entry_title': 'h1'}}
    user = {'custom': {'css_entries': '.b', 'css_entry_link': 'a'}}
    raw = {'url': 'https://site.example/', 'profile': 'custom', 'css_entry_title': 'h3', 'css_entry_link': ''}

    descriptor = build_descriptor(raw, system, user)

    assert descriptor.type == FeedType.HTML
    assert descriptor.css_entries == '.b'
    assert descriptor.css_entry_title == 'h3'
    # empty inline values do not clear a profile value
    assert descriptor.css_entry_link == 'a'
    assert raw['css_entry_link'] == ''


def test_unknown_profile_is_ignored():
    descriptor = build_descriptor({'url': 'https://site.example/', 'profile': 'missing'}, {}, {})
    assert descriptor.type == FeedType.STANDARD
    assert descriptor.css_entries is None


def test_merge_feed_settings():
    assert merge_feed_settings(None, {'a': '1', 'b': '2'}, {'b': ' ', 'c': None}, {'a': '3'}) == {'a': '3', 'b': '2'}


def test_descriptor_coercions():
    descriptor = FeedDescriptor(url='https://x.example/', type='RSS', fake_browser='yes',
                                http_headers='{"Accept": "text/html"}', status='Disabled')
    assert descriptor.type == FeedType.STANDARD
    assert descriptor.fake_browser is True
    assert descriptor.http_headers == {'Accept': 'text/html'}
    assert descriptor.is_disabled
    assert not descriptor.is_html
    assert parse_bool('Off') is False
    assert parse_bool('maybe') is None


def test_descriptor_accepts_enum_types():
    assert FeedDescriptor(url='https://x.example/', type=FeedType.HTML).type == FeedType.HTML
    assert FeedDescriptor(url='https://x.example/', type=FeedType.STANDARD).type == FeedType.STANDARD
    assert FeedDescriptor(url='https://x.example/', type='HTML').is_html


def test_bundled_profiles(tmp_path):
    feeds = tmp_path / 'feeds.ini'
    feeds.write_text(FEEDS, encoding='utf-8')
    source = FeedConfigSource(feeds_path=feeds, system_profiles_path=SYSTEM_PROFILES,
                              user_profiles_path=tmp_path / 'profiles.ini')

    descriptors = asyncio.run(source.load())

    assert [d.url for d in descriptors] == ['https://site.example/feed.xml', 'https://blog.example/news']
    # the first block wins over its duplicate
    assert descriptors[0].name == 'Example'
    blog = descriptors[1]
    assert blog.is_html
    assert blog.css_entries == 'article.post, article.type-post'
    assert blog.css_entry_title == 'h2::text'


def test_user_profiles_override_bundled_ones(tmp_path):
    feeds = tmp_path / 'feeds.ini'
    feeds.write_text('blog.example\nprofile = wordpress\n', encoding='utf-8')
    user = tmp_path / 'profiles.ini'
    user.write_text('[wordpress]\ncss_entries = .my-post\n', encoding='utf-8')
    source = FeedConfigSource(feeds_path=feeds, system_profiles_path=SYSTEM_PROFILES, user_profiles_path=user)

    descriptor = asyncio.run(source.get('blog.example'))

    assert descriptor.css_entries == '.my-post'
    assert descriptor.css_entry_link == '.entry-title a::attr(href)'


def test_invalid_feed_is_skipped(tmp_path):
    feeds = tmp_path / 'feeds.ini'
    feeds.write_text('bad.example\nhttp_headers = {not json\n\ngood.example\n', encoding='utf-8')
    source = FeedConfigSource(feeds_path=feeds, system_profiles_path=tmp_path / 'none.ini',
                              user_profiles_path=tmp_path / 'none.ini')
    assert [d.url for d in asyncio.run(source.load())] == ['https://good.example']


def test_missing_feeds_file(tmp_path):
    source = FeedConfigSource(feeds_path=tmp_path / 'feeds.ini', system_profiles_path=tmp_path / 'none.ini',
                              user_profiles_path=tmp_path / 'none.ini')
    assert asyncio.run(source.load()) == []
    assert asyncio.run(source.get('site.example')) is None
