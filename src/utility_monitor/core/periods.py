"""Boundary arithmetic for the rolling consumption windows."""

from __future__ import annotations

import enum
import math
from datetime import date, datetime, time, timedelta

from dateutil.relativedelta import relativedelta

from utility_monitor.core.dates import (
    anniversary_in_year,
    at_reset_time,
    last_anniversary,
)

SUNDAY = 6
SCHEDULED_GRACE = timedelta(minutes=1)


class PeriodKind(str, enum.Enum):
    """Rolling window kinds, named after their consumption state keys."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @property
    def anchor_key(self) -> str:
        """Statistics key holding the window start."""
        return {
            PeriodKind.DAILY: "lastDayStart",
            PeriodKind.WEEKLY: "lastWeekStart",
            PeriodKind.MONTHLY: "lastMonthStart",
            PeriodKind.YEARLY: "lastYearStart",
        }[self]

    @property
    def last_key(self) -> str | None:
        """Statistics key receiving the closed window's value."""
        return {
            PeriodKind.DAILY: "lastDay",
            PeriodKind.WEEKLY: "lastWeek",
            PeriodKind.MONTHLY: "lastMonth",
        }.get(self)

    @property
    def average_key(self) -> str | None:
        return {
            PeriodKind.DAILY: "averageDaily",
            PeriodKind.MONTHLY: "averageMonthly",
        }.get(self)


def _last_day_of_month(day: date) -> date:
    return day.replace(day=1) + relativedelta(months=1) - timedelta(days=1)


def _yearly_boundary_after(day: date, contract_start: date | None) -> date:
    """Day before the first anniversary strictly after ``day``."""
    if contract_start is None:
        return date(day.year, 12, 31)
    anniversary = anniversary_in_year(contract_start, day.year)
    if anniversary <= day:
        anniversary = anniversary_in_year(contract_start, day.year + 1)
    return anniversary - timedelta(days=1)


def next_boundary(
    kind: PeriodKind, anchor: datetime, contract_start: date | None = None
) -> datetime:
    """
    The instant at which the window that started at ``anchor`` closes.

    daily:   23:59 of the day after the anchor's day
    weekly:  the first Sunday 23:59 at least six days after the anchor
    monthly: 23:59 of the last day of the month after the anchor's month
    yearly:  23:59 of the day before the next contract anniversary
             (31 December without a contract date)
    """
    day = anchor.date()
    if kind is PeriodKind.DAILY:
        return at_reset_time(day + timedelta(days=1))
    if kind is PeriodKind.WEEKLY:
        earliest = day + timedelta(days=6)
        sunday = earliest + timedelta(days=(SUNDAY - earliest.weekday()) % 7)
        return at_reset_time(sunday)
    if kind is PeriodKind.MONTHLY:
        following_month = day.replace(day=1) + relativedelta(months=1)
        return at_reset_time(_last_day_of_month(following_month))
    return at_reset_time(_yearly_boundary_after(day, contract_start))


def latest_boundary(
    kind: PeriodKind, now: datetime, contract_start: date | None = None
) -> datetime:
    """The most recent boundary instant of ``kind`` that is not after ``now``."""
    today = now.date()
    if kind is PeriodKind.DAILY:
        candidate = at_reset_time(today)
        return candidate if candidate <= now else candidate - timedelta(days=1)
    if kind is PeriodKind.WEEKLY:
        sunday = today - timedelta(days=(today.weekday() - SUNDAY) % 7)
        candidate = at_reset_time(sunday)
        return candidate if candidate <= now else candidate - timedelta(days=7)
    if kind is PeriodKind.MONTHLY:
        candidate = at_reset_time(_last_day_of_month(today))
        if candidate <= now:
            return candidate
        return at_reset_time(today.replace(day=1) - timedelta(days=1))

    candidate = _yearly_boundary_after(today - timedelta(days=1), contract_start)
    if at_reset_time(candidate) > now:
        candidate = _yearly_boundary_after(
            candidate - relativedelta(years=1) - timedelta(days=1), contract_start
        )
    return at_reset_time(candidate)


def is_due(
    kind: PeriodKind,
    anchor: datetime,
    now: datetime,
    contract_start: date | None = None,
) -> bool:
    """Whether the window started at ``anchor`` has to be closed at ``now``."""
    return now >= next_boundary(kind, anchor, contract_start)


def reset_anchor(
    kind: PeriodKind,
    anchor: datetime,
    now: datetime,
    contract_start: date | None = None,
) -> datetime:
    """
    New window start after a reset at ``now``.

    A reset inside the boundary minute is a scheduled one and starts the new
    window at ``now``. Anything later is a catch-up and starts it at the
    latest boundary, keeping following boundaries on the calendar grid.
    """
    boundary = next_boundary(kind, anchor, contract_start)
    if boundary <= now < boundary + SCHEDULED_GRACE:
        return now
    return latest_boundary(kind, now, contract_start)


def initial_anchor(
    kind: PeriodKind, now: datetime, contract_start: date | None = None
) -> datetime:
    """
    Window start for a meter seen for the first time.

    The yearly window starts on the last contract anniversary (1 January
    without contract date), the others on their latest boundary.
    """
    if kind is PeriodKind.YEARLY:
        return datetime.combine(last_anniversary(contract_start, now.date()), time())
    return latest_boundary(kind, now, contract_start)


def days_elapsed(anchor: datetime, now: datetime) -> int:
    """Whole days covered by a window, never less than one."""
    return max(1, math.ceil((now - anchor).total_seconds() / 86400))
