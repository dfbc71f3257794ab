from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timedelta

from atelier.compliance.schedule import ensure_utc
from atelier.compliance.schemas import ComplianceStats, TrackingRecordRead, UpcomingDeadline


CLOSED_STATUSES = frozenset({"completed", "skipped"})


def compute_stats(records: Sequence[TrackingRecordRead], now: datetime) -> ComplianceStats:
    current = ensure_utc(now)
    counts = {"completed": 0, "in_progress": 0, "not_started": 0, "skipped": 0}
    overdue = 0
    for record in records:
        if record.status in counts:
            counts[record.status] += 1
        if (
            record.next_due_date is not None
            and ensure_utc(record.next_due_date) < current
            and record.status not in CLOSED_STATUSES
        ):
            overdue += 1

    total = len(records)
    # Half-up, so 12.5 reports as 13.
    completion_rate = math.floor(counts["completed"] * 100 / total + 0.5) if total else 0
    return ComplianceStats(
        total=total,
        completed=counts["completed"],
        in_progress=counts["in_progress"],
        not_started=counts["not_started"],
        skipped=counts["skipped"],
        overdue=overdue,
        completion_rate=completion_rate,
    )


def upcoming_deadlines(records: Sequence[TrackingRecordRead], days_ahead: int, now: datetime) -> list[UpcomingDeadline]:
    """Open records due within [now, now + days_ahead days], soonest first.

    Records due on the same day keep their input order.
    """

    current = ensure_utc(now)
    horizon = current + timedelta(days=days_ahead)
    upcoming: list[UpcomingDeadline] = []
    for record in records:
        if record.next_due_date is None or record.status in CLOSED_STATUSES:
            continue
        due = ensure_utc(record.next_due_date)
        if due < current or due > horizon:
            continue
        days_until_due = math.ceil((due - current) / timedelta(days=1))
        upcoming.append(UpcomingDeadline(record=record, days_until_due=days_until_due))

    return sorted(upcoming, key=lambda item: item.days_until_due)
