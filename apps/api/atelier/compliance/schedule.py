from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from atelier.core.errors import ValidationError


RECURRING_MONTHS: dict[str, int] = {
    "monthly": 1,
    "quarterly": 3,
    "annually": 12,
}
ONE_TIME_FREQUENCIES = frozenset({"once"})
QUARTERLY_REMINDER_LEAD = timedelta(days=7)


@dataclass(frozen=True, slots=True)
class TaxDeadline:
    quarter: str
    due_date: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC already."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the last day of the target month."""

    month_index = value.month - 1 + months
    year = value.year + (month_index // 12)
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def is_recurring(frequency: str | None) -> bool:
    return frequency in RECURRING_MONTHS


def calculate_next_due_date(
    frequency: str,
    last_due_date: datetime | None = None,
    *,
    now: datetime | None = None,
) -> datetime | None:
    if frequency in ONE_TIME_FREQUENCIES:
        return None

    months = RECURRING_MONTHS.get(frequency)
    if months is None:
        raise ValidationError(f"Unknown frequency '{frequency}'", details={"frequency": frequency})

    base = last_due_date if last_due_date is not None else (now or utcnow())
    return add_months(ensure_utc(base), months)


def quarterly_tax_deadlines(year: int) -> list[TaxDeadline]:
    """Estimated-tax deadlines for ``year``; the fourth falls on January 15 of the following year."""

    return [
        TaxDeadline("Q1", datetime(year, 4, 15, tzinfo=timezone.utc)),
        TaxDeadline("Q2", datetime(year, 6, 15, tzinfo=timezone.utc)),
        TaxDeadline("Q3", datetime(year, 9, 15, tzinfo=timezone.utc)),
        TaxDeadline("Q4", datetime(year + 1, 1, 15, tzinfo=timezone.utc)),
    ]
