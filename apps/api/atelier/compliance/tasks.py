from __future__ import annotations

from typing import Any

from atelier.compliance.dispatch import ReminderDispatcher
from atelier.core.celery_app import celery_app
from atelier.core.database import SessionLocal


@celery_app.task(name="atelier.compliance.dispatch_due_reminders")
def dispatch_due_reminders() -> dict[str, Any]:
    summary = ReminderDispatcher(session_factory=SessionLocal).run_once()
    return summary.model_dump()
