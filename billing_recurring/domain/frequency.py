"""
Pure recurrence arithmetic.

Contract:
    ``next_generation_date()`` and ``invoice_dates()`` are PURE -- no I/O,
    no clock access.  The caller passes "now".

Rules:
    weekly     next anchor weekday strictly after today (7 days when today
               is the anchor day).
    biweekly   next anchor weekday plus one extra week; 14 days when today
               is the anchor day.
    monthly    +1 calendar month, day set to min(anchor, 28).
    quarterly  +3 calendar months, same day rule.
    yearly     +1 calendar year, same day rule.
    anything else falls back to monthly.

Every result is midnight (in the tzinfo of ``now``) of the computed day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from billing_recurring.domain.types import InvoiceDates, RecurringFrequency, Weekday

MAX_ANCHOR_DAY = 28

_MONTH_STEPS: dict[RecurringFrequency, relativedelta] = {
    RecurringFrequency.MONTHLY: relativedelta(months=1),
    RecurringFrequency.QUARTERLY: relativedelta(months=3),
    RecurringFrequency.YEARLY: relativedelta(years=1),
}


def clamp_day_of_month(day: int | None) -> int:
    """Clamp a day-of-month anchor into 1..28."""
    if day is None or day < 1:
        return 1
    return min(day, MAX_ANCHOR_DAY)


def _days_until(weekday: int, today: date) -> int:
    return (7 - Weekday.of(today) + weekday) % 7


def next_generation_date(
    frequency: str | RecurringFrequency | None,
    day_of_month: int | None,
    day_of_week: int | None,
    now: datetime,
) -> datetime:
    """Compute the next due instant for a template after ``now``.

    Args:
        frequency: One of the RecurringFrequency values. Unknown or empty
            values behave as monthly.
        day_of_month: Anchor for monthly/quarterly/yearly (clamped to 1..28).
        day_of_week: Sunday-based anchor for weekly/biweekly (0..6).
        now: Reference instant; its tzinfo (or lack of one) is preserved.

    Returns:
        Midnight of the next due day. Always strictly after ``now``.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    freq = RecurringFrequency.parse(frequency) or RecurringFrequency.MONTHLY

    if freq in (RecurringFrequency.WEEKLY, RecurringFrequency.BIWEEKLY):
        days = _days_until((day_of_week or 0) % 7, now.date())
        if freq == RecurringFrequency.WEEKLY:
            days = days or 7
        else:
            days = days + 7 if days else 14
        return midnight + timedelta(days=days)

    step = _MONTH_STEPS[freq]
    return midnight + step + relativedelta(day=clamp_day_of_month(day_of_month))


def invoice_dates(now: datetime | date) -> InvoiceDates:
    """Issued = last day of the current month; due = issued + one month.

    Month arithmetic clamps instead of overflowing, so an invoice issued on
    31 March is due on 30 April.
    """
    today = now.date() if isinstance(now, datetime) else now
    issued = today + relativedelta(day=31)
    return InvoiceDates(issued_date=issued, due_date=issued + relativedelta(months=1))
