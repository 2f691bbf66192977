import time
from datetime import datetime, timedelta

import pytz

from feed_aggregator.utils.date_utils import format_relative, from_epoch, is_valid_date, parse_date, utc_now

NOW = datetime(2024, 6, 1, 12, 0, 0)


def test_strings_are_converted_to_naive_utc():
    assert parse_date('Tue, 02 Jan 2024 03:04:05 GMT') == datetime(2024, 1, 2, 3, 4, 5)
    assert parse_date('2024-01-02T05:04:05+02:00') == datetime(2024, 1, 2, 3, 4, 5)
    assert parse_date('2024-01-02') == datetime(2024, 1, 2)


def test_datetimes_and_struct_times():
    aware = pytz.timezone('Europe/Berlin').localize(datetime(2024, 1, 2, 4, 4, 5))
    assert parse_date(aware) == datetime(2024, 1, 2, 3, 4, 5)
    assert parse_date(time.struct_time((2024, 1, 2, 3, 4, 5, 1, 2, 0))) == datetime(2024, 1, 2, 3, 4, 5)


def test_epoch_values():
    expected = datetime(2023, 11, 14, 22, 13, 20)
    assert parse_date(1700000000) == expected
    assert parse_date(1700000000000) == expected
    assert parse_date('1700000000') == expected
    assert from_epoch(0) == datetime(1970, 1, 1)


def test_short_digit_strings_are_not_epochs():
    assert parse_date('2024').year == 2024


def test_invalid_values():
    for value in (None, '', '   ', 'never', True):
        assert parse_date(value) is None
    assert not is_valid_date('unknown')
    assert is_valid_date('2024-01-02')


def test_relative_formatting():
    assert format_relative(None) is None
    assert format_relative(NOW - timedelta(seconds=30), NOW) == 'less than a minute ago'
    assert format_relative(NOW - timedelta(minutes=2), NOW) == '2 minutes ago'
    assert format_relative(NOW - timedelta(hours=1), NOW) == 'about 1 hour ago'
    assert format_relative(NOW - timedelta(hours=5), NOW) == '5 hours ago'
    assert format_relative(NOW - timedelta(days=3), NOW) == '3 days ago'
    assert format_relative(NOW + timedelta(days=2), NOW) == 'in 2 days'


def test_utc_now_is_naive_utc():
    now = utc_now()
    assert now.tzinfo is None
    assert abs(datetime.now(pytz.UTC).replace(tzinfo=None) - now) < timedelta(seconds=5)
