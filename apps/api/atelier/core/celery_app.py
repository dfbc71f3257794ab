from celery import Celery

from atelier.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "atelier_api",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["atelier.compliance.tasks"],
)
celery_app.conf.beat_schedule = {
    "dispatch-due-reminders": {
        "task": "atelier.compliance.dispatch_due_reminders",
        "schedule": float(settings.reminder_dispatch_interval_seconds),
    },
}
celery_app.conf.timezone = "UTC"
