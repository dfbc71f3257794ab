from __future__ import annotations

from atelier.platform.security.repository import BaseRepository


class ChecklistTemplateRepository(BaseRepository):
    resource = "compliance.template"


class TrackingRecordRepository(BaseRepository):
    resource = "compliance.tracking_record"


class CompletionEventRepository(BaseRepository):
    resource = "compliance.completion_event"


class ReminderRepository(BaseRepository):
    resource = "compliance.reminder"
