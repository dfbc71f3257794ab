from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


Frequency = Literal["once", "monthly", "quarterly", "annually"]
TrackingStatus = Literal["not_started", "in_progress", "completed", "skipped"]
ReminderType = Literal["email", "notification", "sms"]
CompletionAction = Literal["completed", "reopened"]


class ChecklistItem(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    label: str = Field(min_length=1)
    details: str = ""
    link: str | None = None
    note: str | None = None
    frequency: Frequency | None = None
    due_date: datetime | None = None


class ChecklistSection(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    items: list[ChecklistItem] = Field(default_factory=list)


class TemplateCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    version: str = Field(min_length=1, max_length=32)
    region: str | None = None
    business_type: str | None = None
    sections: list[ChecklistSection] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TemplateRead(BaseModel):
    id: UUID
    title: str
    version: str
    region: str | None
    business_type: str | None
    sections: list[ChecklistSection]
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    created_at: datetime
    updated_at: datetime


class Attachment(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    uploaded_at: datetime


class InitializeTrackingRequest(BaseModel):
    checklist_id: UUID


class StatusUpdateRequest(BaseModel):
    status: str
    notes: str | None = None
    attachments: list[Attachment] | None = None


class TrackingRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    checklist_id: UUID
    item_id: str
    status: TrackingStatus | str
    completed_at: datetime | None
    completed_by: str | None
    notes: str | None
    attachments: list[Attachment] | None
    next_due_date: datetime | None
    reminder_sent: bool
    created_at: datetime
    updated_at: datetime


class CompletionEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    record_id: UUID
    tenant_id: UUID
    action: CompletionAction | str
    actor_user_id: str
    occurred_at: datetime


class ComplianceStats(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    not_started: int = 0
    skipped: int = 0
    overdue: int = 0
    completion_rate: int = 0


class UpcomingDeadline(BaseModel):
    record: TrackingRecordRead
    days_until_due: int


class DashboardRead(BaseModel):
    records: list[TrackingRecordRead] = Field(default_factory=list)
    stats: ComplianceStats
    upcoming_deadlines: list[UpcomingDeadline] = Field(default_factory=list)


class ReminderCreate(BaseModel):
    compliance_id: UUID
    reminder_type: ReminderType
    scheduled_for: datetime
    message: str = Field(min_length=1)
    metadata: dict[str, Any] | None = None


class ReminderRead(BaseModel):
    id: UUID
    tenant_id: UUID
    compliance_id: UUID
    reminder_type: ReminderType | str
    scheduled_for: datetime
    sent: bool
    sent_at: datetime | None
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    created_at: datetime


class DispatchSummary(BaseModel):
    dispatcher_id: str
    claimed: int = 0
    sent: int = 0
    failed: int = 0
