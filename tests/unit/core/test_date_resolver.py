"""Tests for desksearch.core.date_resolver."""
from __future__ import annotations

from datetime import date, datetime, time

import pytest

from desksearch.core.date_resolver import DateExpressionResolver, shift_months


# Friday
NOW = datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def resolver():
    return DateExpressionResolver()


class TestResolve:
    """Single-date resolution used by after: and before:."""

    @pytest.mark.parametrize(
        "token, expected",
        [
            ("today", date(2024, 3, 15)),
            ("yesterday", date(2024, 3, 14)),
            ("tomorrow", date(2024, 3, 16)),
            ("week", date(2024, 3, 11)),
            ("lastweek", date(2024, 3, 4)),
            ("month", date(2024, 3, 1)),
            ("lastmonth", date(2024, 2, 1)),
            ("year", date(2024, 1, 1)),
            ("lastyear", date(2023, 1, 1)),
            ("7days", date(2024, 3, 8)),
            ("1day", date(2024, 3, 14)),
            ("2weeks", date(2024, 3, 1)),
            ("1month", date(2024, 2, 15)),
            ("1year", date(2023, 3, 15)),
            ("2024-02-29", date(2024, 2, 29)),
            ("2024/02/01", date(2024, 2, 1)),
            ("01.02.2024", date(2024, 2, 1)),
        ],
    )
    def test_known_tokens(self, resolver, token, expected):
        assert resolver.resolve(token, NOW) == expected

    def test_weekday_is_strictly_in_the_past(self, resolver):
        # Today is Friday, so "friday" means a week ago.
        assert resolver.resolve("friday", NOW) == date(2024, 3, 8)
        assert resolver.resolve("thursday", NOW) == date(2024, 3, 14)
        assert resolver.resolve("sat", NOW) == date(2024, 3, 9)

    @pytest.mark.parametrize("token", ["", "soon", "2024-13-01", "99999999years", "32.01.2024"])
    def test_unrecognized_tokens_return_none(self, resolver, token):
        assert resolver.resolve(token, NOW) is None

    def test_case_insensitive(self, resolver):
        assert resolver.resolve("YESTERDAY", NOW) == date(2024, 3, 14)


class TestResolveRange:
    """Whole-day or whole-period ranges used by last:."""

    def test_single_day(self, resolver):
        rng = resolver.resolve_range("yesterday", NOW)
        assert rng.start == datetime(2024, 3, 14, 0, 0, 0)
        assert rng.end == datetime.combine(date(2024, 3, 14), time.max)

    def test_week_is_previous_calendar_week(self, resolver):
        rng = resolver.resolve_range("week", NOW)
        assert rng.start.date() == date(2024, 3, 4)
        assert rng.end.date() == date(2024, 3, 10)

    def test_month_is_previous_calendar_month(self, resolver):
        rng = resolver.resolve_range("month", NOW)
        assert rng.start.date() == date(2024, 2, 1)
        assert rng.end.date() == date(2024, 2, 29)

    def test_year_is_previous_calendar_year(self, resolver):
        rng = resolver.resolve_range("lastyear", NOW)
        assert rng.start.date() == date(2023, 1, 1)
        assert rng.end.date() == date(2023, 12, 31)

    def test_this_month_runs_until_today(self, resolver):
        rng = resolver.resolve_range("thismonth", NOW)
        assert rng.start.date() == date(2024, 3, 1)
        assert rng.end.date() == date(2024, 3, 15)

    def test_relative_range(self, resolver):
        rng = resolver.resolve_range("3days", NOW)
        assert rng.start.date() == date(2024, 3, 12)
        assert rng.end.date() == date(2024, 3, 15)
        assert rng.contains(datetime(2024, 3, 13, 9, 30))

    def test_unknown_returns_none(self, resolver):
        assert resolver.resolve_range("someday", NOW) is None


class TestPresetStart:
    @pytest.mark.parametrize(
        "preset, expected",
        [
            ("today", date(2024, 3, 15)),
            ("week", date(2024, 3, 11)),
            ("month", date(2024, 3, 1)),
            ("quarter", date(2024, 1, 1)),
            ("year", date(2024, 1, 1)),
        ],
    )
    def test_presets(self, resolver, preset, expected):
        assert resolver.preset_start(preset, NOW) == datetime.combine(expected, time.min)

    def test_unknown_preset(self, resolver):
        assert resolver.preset_start("decade", NOW) is None


def test_shift_months_clamps_day():
    assert shift_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
    assert shift_months(date(2024, 1, 15), -1) == date(2023, 12, 15)
    assert shift_months(date(2023, 11, 30), 3) == date(2024, 2, 29)
