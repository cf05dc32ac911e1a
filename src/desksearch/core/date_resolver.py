"""Resolution of the date expressions used by `after:`, `before:` and `last:`."""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time, timedelta

from desksearch.models import DateRange


_RELATIVE_RE = re.compile(r"^(\d{1,6})(day|week|month|year)s?$")

_WEEKDAYS: dict[str, int] = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

_CALENDAR_FORMATS = ("%Y/%m/%d", "%d.%m.%Y", "%Y%m%d")

_CURRENT_PERIODS = {"week", "thisweek", "month", "thismonth", "year", "thisyear"}
_PREVIOUS_PERIODS = {"lastweek", "lastmonth", "lastyear"}


def start_of_day(value: date | datetime) -> datetime:
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.min)


def end_of_day(value: date | datetime) -> datetime:
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.max)


def shift_months(day: date, months: int) -> date:
    """Move ``day`` by whole months, clamping to the target month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


class DateExpressionResolver:
    """Turns tokens like ``yesterday``, ``lastmonth``, ``7days``, ``friday``
    or ``2024-03-01`` into calendar dates.

    Resolution never raises: an unrecognized or out-of-range token yields
    ``None`` and the caller drops the operator that carried it.
    """

    def resolve(self, token: str, now: datetime) -> date | None:
        """Resolve a token to a single date (period tokens give the period start)."""
        key = token.strip().lower()
        if not key:
            return None
        today = now.date()
        try:
            instant = self._named_instant(key, today)
            if instant is not None:
                return instant

            if key in _CURRENT_PERIODS or key in _PREVIOUS_PERIODS:
                return self._period_start(key, today)

            match = _RELATIVE_RE.match(key)
            if match:
                return self._relative(int(match.group(1)), match.group(2), today)

            if key in _WEEKDAYS:
                return self._last_weekday(_WEEKDAYS[key], today)

            return self._calendar_date(token.strip())
        except (OverflowError, ValueError):
            return None

    def resolve_range(self, token: str, now: datetime) -> DateRange | None:
        """Resolve a token for `last:`: one whole day or one whole period."""
        key = token.strip().lower()
        today = now.date()
        try:
            if key in ("week", "lastweek"):
                start = _week_start(today) - timedelta(days=7)
                return DateRange(start_of_day(start), end_of_day(start + timedelta(days=6)))
            if key in ("month", "lastmonth"):
                start = shift_months(today.replace(day=1), -1)
                return DateRange(start_of_day(start), end_of_day(_month_end(start)))
            if key in ("year", "lastyear"):
                start = date(today.year - 1, 1, 1)
                return DateRange(start_of_day(start), end_of_day(date(today.year - 1, 12, 31)))
            if key in ("thisweek", "thismonth", "thisyear"):
                start = self._period_start(key, today)
                return DateRange(start_of_day(start), end_of_day(today))
            if _RELATIVE_RE.match(key):
                start = self.resolve(key, now)
                if start is None:
                    return None
                return DateRange(start_of_day(start), end_of_day(today))
        except (OverflowError, ValueError):
            return None

        day = self.resolve(key, now)
        if day is None:
            return None
        return DateRange(start_of_day(day), end_of_day(day))

    def preset_start(self, preset: str, now: datetime) -> datetime | None:
        """Start of a caller-supplied ``date_range`` preset (today/week/month/quarter/year)."""
        key = preset.strip().lower()
        today = now.date()
        if key == "today":
            return start_of_day(today)
        if key == "week":
            return start_of_day(_week_start(today))
        if key == "month":
            return start_of_day(today.replace(day=1))
        if key == "quarter":
            first_month = 3 * ((today.month - 1) // 3) + 1
            return start_of_day(date(today.year, first_month, 1))
        if key == "year":
            return start_of_day(date(today.year, 1, 1))
        return None

    def _named_instant(self, key: str, today: date) -> date | None:
        if key == "today":
            return today
        if key == "yesterday":
            return today - timedelta(days=1)
        if key == "tomorrow":
            return today + timedelta(days=1)
        return None

    def _period_start(self, key: str, today: date) -> date:
        if key in ("week", "thisweek"):
            return _week_start(today)
        if key == "lastweek":
            return _week_start(today) - timedelta(days=7)
        if key in ("month", "thismonth"):
            return today.replace(day=1)
        if key == "lastmonth":
            return shift_months(today.replace(day=1), -1)
        if key in ("year", "thisyear"):
            return date(today.year, 1, 1)
        if key == "lastyear":
            return date(today.year - 1, 1, 1)
        raise ValueError(f"Unknown period: {key!r}")

    def _relative(self, amount: int, unit: str, today: date) -> date:
        if unit == "day":
            return today - timedelta(days=amount)
        if unit == "week":
            return today - timedelta(weeks=amount)
        if unit == "month":
            return shift_months(today, -amount)
        return shift_months(today, -12 * amount)

    def _last_weekday(self, weekday: int, today: date) -> date:
        delta = (today.weekday() - weekday) % 7 or 7
        return today - timedelta(days=delta)

    def _calendar_date(self, token: str) -> date | None:
        try:
            return datetime.fromisoformat(token).date()
        except ValueError:
            pass
        for fmt in _CALENDAR_FORMATS:
            try:
                return datetime.strptime(token, fmt).date()
            except ValueError:
                continue
        return None
