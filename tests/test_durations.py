"""Tests for duration formatting and parsing."""

from datetime import datetime, timedelta, timezone

import pytest

from cardtime.core.errors import InvalidInput
from cardtime.util.durations import (
    elapsed_ms,
    format_deviation,
    format_duration,
    format_pct,
    format_timer,
    live_total,
    parse_duration,
    require_duration,
)


class TestFormatDuration:
    def test_full_form(self):
        assert format_duration(5_025_000) == "1h 23m 45s"

    def test_drops_zero_units(self):
        assert format_duration(3_600_000) == "1h"
        assert format_duration(60_000 + 5_000) == "1m 5s"

    def test_zero_and_negative_render_as_zero(self):
        assert format_duration(0) == "0m 0s"
        assert format_duration(None) == "0m 0s"
        assert format_duration(-60_000) == "0m 0s"

    def test_short_form(self):
        assert format_duration(2 * 3_600_000 + 34 * 60_000 + 10_000, short=True) == "2h 34m"
        assert format_duration(45 * 60_000, short=True) == "45m"
        assert format_duration(30_000, short=True) == "30s"
        assert format_duration(0, short=True) == "0m"

    def test_timer_clock(self):
        assert format_timer(3_723_000) == "01:02:03"
        assert format_timer(0) == "00:00:00"


class TestParseDuration:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1h 30m", 5_400_000),
            ("90m", 5_400_000),
            ("2t 5s", 7_205_000),
            ("1H 30M", 5_400_000),
            ("45s", 45_000),
            ("", 0),
            ("soon", 0),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_duration(text) == expected

    def test_require_duration_rejects_nothing(self):
        with pytest.raises(InvalidInput):
            require_duration("later")

    def test_require_duration_passes_value_through(self):
        assert require_duration("2h") == 7_200_000


class TestDerivedDisplays:
    def test_deviation_is_signed(self):
        assert format_deviation(0) == "0m"
        assert format_deviation(600_000) == "+10m"
        assert format_deviation(-90_000) == "-1m 30s"

    def test_percent(self):
        assert format_pct(None) == "—"
        assert format_pct(0.3) == "0%"
        assert format_pct(100 / 3) == "+33%"
        assert format_pct(-20.0) == "-20%"

    def test_live_total_adds_open_interval(self):
        start = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        now = start + timedelta(seconds=5)
        assert elapsed_ms(start, now) == 5_000
        assert live_total(1_000, start, now) == 6_000
        assert live_total(1_000, None, now) == 1_000


class TestRoundTrip:
    @pytest.mark.parametrize("ms", [1, 999, 1_000, 59_999, 61_500, 3_599_999, 3_600_000, 5_025_678, 36_000_001, 86_399_999, 360_000_000])
    def test_formatted_value_parses_back_within_a_second(self, ms):
        assert 0 <= ms - parse_duration(format_duration(ms)) < 1_000

    def test_sweep(self):
        for ms in range(0, 30 * 3_600_000, 7_919_113):
            assert abs(parse_duration(format_duration(ms)) - ms) < 1_000
