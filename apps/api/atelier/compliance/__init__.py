from atelier.compliance.api import router
from atelier.compliance.models import ChecklistTemplate, CompletionEvent, Reminder, TrackingRecord
from atelier.compliance.schemas import (
    ComplianceStats,
    ReminderRead,
    TemplateCreate,
    TemplateRead,
    TrackingRecordRead,
    UpcomingDeadline,
)
from atelier.compliance.service import ComplianceService, compliance_service

__all__ = [
    "router",
    "ChecklistTemplate",
    "TrackingRecord",
    "CompletionEvent",
    "Reminder",
    "TemplateCreate",
    "TemplateRead",
    "TrackingRecordRead",
    "ComplianceStats",
    "UpcomingDeadline",
    "ReminderRead",
    "ComplianceService",
    "compliance_service",
]
