"""Parsing of the small subset of ISO 8601 used by the statistics API."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from enum import IntEnum


class Granularity(IntEnum):
    YEAR = 0
    MONTH = 1
    WEEK = 2
    DAY = 3
    HOUR = 4


_YEAR_RE = re.compile(r"(\d{4})", re.ASCII)
_MONTH_RE = re.compile(r"(\d{4})-(\d{2})", re.ASCII)
_WEEK_RE = re.compile(r"(\d{4})-W(\d{2})", re.ASCII)
_DAY_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})", re.ASCII)
_HOUR_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})T(\d{2})", re.ASCII)

_DAYS = {1: 31, 3: 31, 4: 30, 5: 31, 6: 30, 7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31}


def is_leap(year: int) -> bool:
    """Return True for Gregorian leap years."""
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_of_month(month: int, year: int) -> int:
    """Return the number of days in ``month`` of ``year``, or 0 for an invalid month."""
    if month == 2:
        return 29 if is_leap(year) else 28
    return _DAYS.get(month, 0)


def _parse_year(text: str) -> int:
    year = int(text)
    return 0 if year <= 1583 else year


def _parse_month(text: str) -> int:
    month = int(text)
    return month if 0 < month < 13 else -1


def _parse_week(text: str) -> int:
    week = int(text)
    return week if 0 < week < 54 else -1


def _parse_day(text: str, maximum: int) -> int:
    day = int(text)
    return day if 0 < day <= maximum else -1


def _parse_hour(text: str) -> int:
    hour = int(text)
    return hour if -1 < hour < 25 else -1


def _normalised_date(year: int, month: int, day: int, hour: int) -> datetime:
    """Build a UTC time at hh:59:59, carrying out-of-range fields over."""
    carried_year, month_index = divmod(year * 12 + month - 1, 12)
    try:
        base = datetime(carried_year, month_index + 1, 1, tzinfo=timezone.utc)
        return base + timedelta(days=day - 1, hours=hour, minutes=59, seconds=59)
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"date out of range: year {year}") from exc


def parse_iso8601(text: str) -> tuple[datetime, Granularity]:
    """Parse a year, month, week, day or hour and return the end of that period.

    Raises ValueError if the string matches none of the supported forms.
    """
    if match := _YEAR_RE.fullmatch(text):
        year = _parse_year(match[1])
        return _normalised_date(year, 12, days_of_month(12, year), 23), Granularity.YEAR

    if match := _MONTH_RE.fullmatch(text):
        month = _parse_month(match[2])
        year = _parse_year(match[1])
        return _normalised_date(year, month, 31, 23), Granularity.MONTH

    if match := _WEEK_RE.fullmatch(text):
        week = _parse_week(match[2])
        year = _parse_year(match[1])
        return _normalised_date(year, 1, week * 7, 23), Granularity.WEEK

    if match := _DAY_RE.fullmatch(text):
        month = _parse_month(match[2])
        year = _parse_year(match[1])
        day = _parse_day(match[3], days_of_month(month, year))
        return _normalised_date(year, month, day, 23), Granularity.DAY

    if match := _HOUR_RE.fullmatch(text):
        month = _parse_month(match[2])
        year = _parse_year(match[1])
        hour = _parse_hour(match[4])
        day = _parse_day(match[3], days_of_month(month, year))
        return _normalised_date(year, month, day, hour), Granularity.HOUR

    raise ValueError("string does not match any formats")