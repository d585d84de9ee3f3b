"""Date and time helper functions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time

from dateutil.relativedelta import relativedelta

GERMAN_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{2,4})$")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

RESET_TIME = time(23, 59)


def parse_contract_date(value: str | date | None) -> date | None:
    """
    Parses a date in ``DD.MM.YYYY`` or ISO ``YYYY-MM-DD`` notation.

    Two-digit years are read as 20xx. Returns None for empty or invalid input.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    if match := GERMAN_DATE_RE.match(text):
        day, month, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
    elif match := ISO_DATE_RE.match(text):
        year, month, day = (int(part) for part in match.groups())
    else:
        return None

    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_german_date(value: date) -> str:
    """Formats a date as ``DD.MM.YYYY``."""
    return f"{value:%d.%m.%Y}"


def parse_time_of_day(value: str | None) -> time | None:
    """Parses ``HH:MM`` (minutes optional) into a time."""
    if not value:
        return None
    hours, _, minutes = value.strip().partition(":")
    try:
        return time(int(hours), int(minutes or 0))
    except ValueError:
        return None


@dataclass(frozen=True)
class HtWindow:
    """Daily high-tariff window; ``start > end`` means it crosses midnight."""

    start: time
    end: time

    def contains(self, moment: datetime) -> bool:
        """Whether ``moment`` falls into the high-tariff period."""
        current = moment.time().replace(second=0, microsecond=0)
        if self.start <= self.end:
            return self.start <= current < self.end
        return current >= self.start or current < self.end


def anniversary_in_year(contract_start: date, year: int) -> date:
    """Contract anniversary in ``year``; 29 February falls back to the 28th."""
    return contract_start + relativedelta(years=year - contract_start.year)


def last_anniversary(contract_start: date | None, today: date) -> date:
    """
    Most recent contract anniversary on or before ``today``.

    Without a contract date the billing year is the calendar year.
    """
    if contract_start is None:
        return date(today.year, 1, 1)
    anniversary = anniversary_in_year(contract_start, today.year)
    if anniversary > today:
        anniversary = anniversary_in_year(contract_start, today.year - 1)
    return anniversary


def next_anniversary(contract_start: date, today: date) -> date:
    """First contract anniversary on or after ``today``."""
    anniversary = anniversary_in_year(contract_start, today.year)
    if anniversary < today:
        anniversary = anniversary_in_year(contract_start, today.year + 1)
    return anniversary


def months_difference(start: date, end: date) -> int:
    """Calendar month difference, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def at_reset_time(day: date) -> datetime:
    """The 23:59 reset instant of ``day``."""
    return datetime.combine(day, RESET_TIME)
