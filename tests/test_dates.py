"""Tests for report date ranges."""

from datetime import date, datetime, timezone

import pytest

from cardtime.core.errors import InvalidInput
from cardtime.util.dates import day_range, noon_of, parse_day, preset_range

# Wednesday
NOW = datetime(2024, 3, 6, 15, 30, tzinfo=timezone.utc)


class TestPresets:
    def test_all_is_unbounded(self):
        assert preset_range("all", NOW) == (None, None)

    def test_today(self):
        start, end = preset_range("today", NOW)
        assert start == datetime(2024, 3, 6, tzinfo=timezone.utc)
        assert end == NOW

    def test_week_starts_monday(self):
        start, _ = preset_range("this-week", NOW)
        assert start == datetime(2024, 3, 4, tzinfo=timezone.utc)

    def test_last_week(self):
        start, end = preset_range("last-week", NOW)
        assert start == datetime(2024, 2, 26, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 4, tzinfo=timezone.utc)

    def test_last_month(self):
        start, end = preset_range("last-month", NOW)
        assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_local_midnight(self):
        start, _ = preset_range("today", NOW, "Europe/Oslo")
        # Oslo is UTC+1 in March before DST
        assert start == datetime(2024, 3, 5, 23, 0, tzinfo=timezone.utc)

    def test_unknown_preset(self):
        with pytest.raises(InvalidInput):
            preset_range("fortnight", NOW)


class TestDays:
    def test_noon_of_day(self):
        assert noon_of(date(2024, 3, 6)) == datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)

    def test_parse_day_rejects_garbage(self):
        with pytest.raises(InvalidInput):
            parse_day("06/03/2024")

    def test_day_range_includes_end_day(self):
        start, end = day_range("2024-03-01", "2024-03-02")
        assert start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert end.date() == date(2024, 3, 2)
        assert end.hour == 23

    def test_day_range_rejects_reversed_bounds(self):
        with pytest.raises(InvalidInput):
            day_range("2024-03-05", "2024-03-01")
