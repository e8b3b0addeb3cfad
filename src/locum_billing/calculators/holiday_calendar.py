"""Bank holiday date resolution, including recurring patterns."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

_ORDINALS = {"first": 1, "second": 2, "third": 3, "fourth": 4, "last": -1}
_WEEKDAYS = {name.lower(): idx for idx, name in enumerate(calendar.day_name)}
_MONTHS = {name.lower(): idx for idx, name in enumerate(calendar.month_name) if name}

FIXED_PATTERN = "fixed"


class InvalidHolidayPatternError(Exception):
    """Raised when a recurring pattern cannot be interpreted."""

    def __init__(self, pattern: str, reason: str | None = None):
        self.pattern = pattern
        msg = f"Invalid bank holiday pattern '{pattern}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def easter_sunday(year: int) -> date:
    """Gregorian Easter Sunday (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """The n-th weekday of a month; n=-1 means the last one."""
    if n == -1:
        last_day = calendar.monthrange(year, month)[1]
        d = date(year, month, last_day)
        return d - timedelta(days=(d.weekday() - weekday) % 7)
    d = date(year, month, 1)
    d += timedelta(days=(weekday - d.weekday()) % 7)
    return d + timedelta(weeks=n - 1)


def validate_pattern(pattern: str | None) -> None:
    """Raise InvalidHolidayPatternError unless the pattern is understood."""
    if pattern is None or pattern == FIXED_PATTERN:
        return
    if pattern in ("good-friday", "easter-monday"):
        return
    parts = pattern.split("-")
    if len(parts) != 3:
        raise InvalidHolidayPatternError(pattern, "expected '<ordinal>-<weekday>-<month>'")
    ordinal, weekday, month = parts
    if ordinal not in _ORDINALS:
        raise InvalidHolidayPatternError(pattern, f"unknown ordinal '{ordinal}'")
    if weekday not in _WEEKDAYS:
        raise InvalidHolidayPatternError(pattern, f"unknown weekday '{weekday}'")
    if month not in _MONTHS:
        raise InvalidHolidayPatternError(pattern, f"unknown month '{month}'")


def resolve_pattern(pattern: str | None, anchor: date, year: int) -> date:
    """Resolve a recurring holiday to its date in ``year``.

    ``anchor`` is the stored holiday date; fixed holidays reuse its month
    and day.
    """
    validate_pattern(pattern)
    if pattern is None or pattern == FIXED_PATTERN:
        if anchor.month == 2 and anchor.day == 29 and not calendar.isleap(year):
            return date(year, 2, 28)
        return date(year, anchor.month, anchor.day)
    if pattern == "good-friday":
        return easter_sunday(year) - timedelta(days=2)
    if pattern == "easter-monday":
        return easter_sunday(year) + timedelta(days=1)
    ordinal, weekday, month = pattern.split("-")
    return nth_weekday(year, _MONTHS[month], _WEEKDAYS[weekday], _ORDINALS[ordinal])


@dataclass(frozen=True)
class HolidayRule:
    """Immutable copy of a bank holiday row."""

    name: str
    holiday_date: date
    region: str | None
    is_recurring: bool
    recurring_pattern: str | None = None

    def applies_to_region(self, region: str | None) -> bool:
        return self.region is None or region is None or self.region == region

    def occurs_on(self, day: date) -> bool:
        if not self.is_recurring:
            return self.holiday_date == day
        return resolve_pattern(self.recurring_pattern, self.holiday_date, day.year) == day


class HolidayCalendar:
    """Answers 'is this date a bank holiday in this region?'."""

    def __init__(self, rules: list[HolidayRule]):
        for rule in rules:
            if rule.is_recurring:
                validate_pattern(rule.recurring_pattern)
        self._rules = list(rules)

    def holiday_name(self, day: date, region: str | None) -> str | None:
        """Return the matching holiday's name, or None."""
        for rule in self._rules:
            if rule.applies_to_region(region) and rule.occurs_on(day):
                return rule.name
        return None

    def is_bank_holiday(self, day: date, region: str | None) -> bool:
        return self.holiday_name(day, region) is not None
