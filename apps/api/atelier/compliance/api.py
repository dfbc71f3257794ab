from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from atelier.compliance.schemas import (
    CompletionEventRead,
    ComplianceStats,
    DashboardRead,
    InitializeTrackingRequest,
    ReminderCreate,
    ReminderRead,
    StatusUpdateRequest,
    TemplateCreate,
    TemplateRead,
    TrackingRecordRead,
    UpcomingDeadline,
)
from atelier.compliance.service import compliance_service
from atelier.core.database import get_db
from atelier.platform.security.context import AuthContext
from atelier.tenancy.dependencies import get_auth_context, require_platform_admin, tenant_context
from atelier.tenancy.service import MANAGER_ROLES


router = APIRouter(prefix="/compliance", tags=["compliance"])

tenant_member = tenant_context()
tenant_manager = tenant_context(roles=MANAGER_ROLES)


@router.get("/templates", response_model=list[TemplateRead])
def list_templates(
    region: str | None = Query(default=None),
    business_type: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[TemplateRead]:
    return compliance_service.list_active_templates(db, region=region, business_type=business_type)


@router.get("/templates/{template_id}", response_model=TemplateRead)
def get_template(
    template_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TemplateRead:
    return compliance_service.get_template(db, template_id)


@router.post("/templates", response_model=TemplateRead, status_code=status.HTTP_201_CREATED)
def upsert_template(
    payload: TemplateCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_platform_admin),
) -> TemplateRead:
    return compliance_service.upsert_template(db, ctx, payload)


@router.post("/templates/{template_id}/deactivate", response_model=TemplateRead)
def deactivate_template(
    template_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_platform_admin),
) -> TemplateRead:
    return compliance_service.deactivate_template(db, ctx, template_id)


@router.post("/tenants/{tenant_id}/tracking", response_model=list[TrackingRecordRead], status_code=status.HTTP_201_CREATED)
def initialize_tracking(
    payload: InitializeTrackingRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_manager),
) -> list[TrackingRecordRead]:
    return compliance_service.initialize_tracking(db, ctx, payload.checklist_id)


@router.get("/tenants/{tenant_id}/tracking", response_model=list[TrackingRecordRead])
def list_tracking(
    checklist_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_member),
) -> list[TrackingRecordRead]:
    return compliance_service.list_tracking(db, ctx, checklist_id=checklist_id)


@router.post("/tenants/{tenant_id}/tracking/{record_id}/status", response_model=TrackingRecordRead)
def update_status(
    record_id: uuid.UUID,
    payload: StatusUpdateRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_member),
) -> TrackingRecordRead:
    return compliance_service.update_status(db, ctx, record_id, payload)


@router.get("/tenants/{tenant_id}/tracking/{record_id}/history", response_model=list[CompletionEventRead])
def list_completion_history(
    record_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_member),
) -> list[CompletionEventRead]:
    return compliance_service.list_completion_history(db, ctx, record_id)


@router.get("/tenants/{tenant_id}/stats", response_model=ComplianceStats)
def get_stats(
    checklist_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_member),
) -> ComplianceStats:
    return compliance_service.get_stats(db, ctx, checklist_id=checklist_id)


@router.get("/tenants/{tenant_id}/deadlines", response_model=list[UpcomingDeadline])
def get_upcoming_deadlines(
    days_ahead: int = Query(default=30, ge=0, le=365),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_member),
) -> list[UpcomingDeadline]:
    return compliance_service.get_upcoming_deadlines(db, ctx, days_ahead=days_ahead)


@router.get("/tenants/{tenant_id}/dashboard", response_model=DashboardRead)
def get_dashboard(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_member),
) -> DashboardRead:
    return compliance_service.get_dashboard(db, ctx)


@router.post("/tenants/{tenant_id}/reminders", response_model=ReminderRead, status_code=status.HTTP_201_CREATED)
def schedule_reminder(
    payload: ReminderCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_manager),
) -> ReminderRead:
    return compliance_service.schedule_reminder(db, ctx, payload)


@router.post(
    "/tenants/{tenant_id}/tracking/{record_id}/quarterly-tax-reminders",
    response_model=list[ReminderRead],
    status_code=status.HTTP_201_CREATED,
)
def schedule_quarterly_tax_reminders(
    record_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(tenant_manager),
) -> list[ReminderRead]:
    return compliance_service.schedule_quarterly_tax_reminders(db, ctx, record_id)


@router.get("/reminders/pending", response_model=list[ReminderRead])
def list_pending_reminders(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_platform_admin),
) -> list[ReminderRead]:
    return compliance_service.list_pending_reminders(db)


@router.post("/reminders/{reminder_id}/sent", response_model=ReminderRead)
def mark_reminder_sent(
    reminder_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_platform_admin),
) -> ReminderRead:
    return compliance_service.mark_sent(db, reminder_id)
