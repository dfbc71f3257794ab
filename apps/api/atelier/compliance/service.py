from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from atelier import audit, events
from atelier.compliance.models import ChecklistTemplate, CompletionEvent, Reminder, TrackingRecord
from atelier.compliance.repository import (
    ChecklistTemplateRepository,
    CompletionEventRepository,
    ReminderRepository,
    TrackingRecordRepository,
)
from atelier.compliance.schedule import (
    QUARTERLY_REMINDER_LEAD,
    calculate_next_due_date,
    ensure_utc,
    is_recurring,
    quarterly_tax_deadlines,
    utcnow,
)
from atelier.compliance.schemas import (
    ChecklistItem,
    ChecklistSection,
    CompletionEventRead,
    ComplianceStats,
    DashboardRead,
    ReminderCreate,
    ReminderRead,
    StatusUpdateRequest,
    TemplateCreate,
    TemplateRead,
    TrackingRecordRead,
    UpcomingDeadline,
)
from atelier.compliance.stats import compute_stats, upcoming_deadlines
from atelier.core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from atelier.metrics import observe_reminder_scheduled, observe_status_transition, observe_tracking_initialized
from atelier.platform.security.context import AuthContext


logger = logging.getLogger("atelier.compliance")

TRACKING_STATUSES = frozenset({"not_started", "in_progress", "completed", "skipped"})
DEFAULT_DEADLINE_WINDOW_DAYS = 30


@dataclass(slots=True)
class ComplianceService:
    template_repository: ChecklistTemplateRepository = ChecklistTemplateRepository()
    record_repository: TrackingRecordRepository = TrackingRecordRepository()
    event_repository: CompletionEventRepository = CompletionEventRepository()
    reminder_repository: ReminderRepository = ReminderRepository()

    # Templates

    def upsert_template(self, session: Session, ctx: AuthContext, payload: TemplateCreate) -> TemplateRead:
        """Insert a new template version and deactivate the active versions it supersedes."""

        self._validate_unique_item_ids(payload.sections)

        superseded = session.scalars(
            select(ChecklistTemplate).where(
                ChecklistTemplate.is_active.is_(True),
                ChecklistTemplate.title == payload.title,
                self._nullable_equals(ChecklistTemplate.region, payload.region),
                self._nullable_equals(ChecklistTemplate.business_type, payload.business_type),
            )
        ).all()
        for previous in superseded:
            previous.is_active = False

        template = ChecklistTemplate(
            title=payload.title,
            version=payload.version,
            region=payload.region,
            business_type=payload.business_type,
            sections=[section.model_dump(mode="json") for section in payload.sections],
            template_metadata=dict(payload.metadata),
            is_active=True,
        )
        session.add(template)
        session.commit()
        session.refresh(template)

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.template_repository.resource,
            entity_id=str(template.id),
            action="create",
            before=None,
            after={
                "title": template.title,
                "version": template.version,
                "superseded": [str(previous.id) for previous in superseded],
            },
            correlation_id=ctx.correlation_id,
        )
        logger.info("compliance.template_upserted", extra={"checklist_id": str(template.id), "count": len(superseded)})
        return self._to_template_read(template)

    def list_active_templates(
        self,
        session: Session,
        *,
        region: str | None = None,
        business_type: str | None = None,
    ) -> list[TemplateRead]:
        stmt = select(ChecklistTemplate).where(ChecklistTemplate.is_active.is_(True))
        if region:
            stmt = stmt.where(ChecklistTemplate.region == region)
        if business_type:
            stmt = stmt.where(ChecklistTemplate.business_type == business_type)
        rows = session.scalars(stmt.order_by(ChecklistTemplate.created_at.asc(), ChecklistTemplate.id.asc())).all()
        return [self._to_template_read(row) for row in rows]

    def get_template(self, session: Session, template_id: uuid.UUID) -> TemplateRead:
        return self._to_template_read(self._get_template(session, template_id))

    def deactivate_template(self, session: Session, ctx: AuthContext, template_id: uuid.UUID) -> TemplateRead:
        template = self._get_template(session, template_id)
        template.is_active = False
        session.commit()
        session.refresh(template)
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.template_repository.resource,
            entity_id=str(template.id),
            action="deactivate",
            before={"is_active": True},
            after={"is_active": False},
            correlation_id=ctx.correlation_id,
        )
        return self._to_template_read(template)

    # Tracking

    def initialize_tracking(
        self,
        session: Session,
        ctx: AuthContext,
        checklist_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> list[TrackingRecordRead]:
        """Create one ``not_started`` record per template item for the context tenant.

        The records are written in a single transaction. A tenant that already tracks
        the template gets a ConflictError instead of a second set of records.
        """

        tenant_id = self._require_tenant(ctx)
        template = self._get_template(session, checklist_id)
        items = self._template_items(template)
        self._validate_unique_item_ids(self._template_sections(template))

        existing = session.scalar(
            self.record_repository.apply_scope_query(
                select(TrackingRecord.id).where(TrackingRecord.checklist_id == checklist_id).limit(1),
                ctx,
            )
        )
        if existing is not None:
            raise ConflictError(
                "Tracking already initialized for this checklist",
                details={"checklist_id": str(checklist_id)},
            )

        current = ensure_utc(now or utcnow())
        records: list[TrackingRecord] = []
        for item in items:
            payload: dict[str, Any] = {
                "tenant_id": tenant_id,
                "checklist_id": template.id,
                "item_id": item.id,
                "status": "not_started",
                "next_due_date": ensure_utc(item.due_date) if item.due_date is not None else None,
                "reminder_sent": False,
                "created_at": current,
                "updated_at": current,
            }
            self.record_repository.validate_write_security(payload, ctx, action="create")
            records.append(TrackingRecord(**payload))

        session.add_all(records)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ConflictError(
                "Tracking already initialized for this checklist",
                details={"checklist_id": str(checklist_id)},
            )

        observe_tracking_initialized(len(records))
        events.publish(
            {
                "event_type": "compliance.tracking.initialized",
                "occurred_at": current.isoformat(),
                "actor_user_id": ctx.user_id,
                "tenant_id": str(tenant_id),
                "correlation_id": ctx.correlation_id,
                "payload": {"checklist_id": str(template.id), "record_count": len(records)},
            }
        )
        logger.info(
            "compliance.tracking_initialized",
            extra={"tenant_id": str(tenant_id), "checklist_id": str(template.id), "count": len(records)},
        )
        return [TrackingRecordRead.model_validate(record) for record in records]

    def list_tracking(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        checklist_id: uuid.UUID | None = None,
    ) -> list[TrackingRecordRead]:
        self._require_tenant(ctx)
        stmt = select(TrackingRecord)
        if checklist_id is not None:
            stmt = stmt.where(TrackingRecord.checklist_id == checklist_id)
        stmt = self.record_repository.apply_scope_query(stmt, ctx).order_by(
            TrackingRecord.created_at.asc(),
            TrackingRecord.item_id.asc(),
        )
        return [TrackingRecordRead.model_validate(row) for row in session.scalars(stmt).all()]

    def update_status(
        self,
        session: Session,
        ctx: AuthContext,
        record_id: uuid.UUID,
        payload: StatusUpdateRequest,
        *,
        now: datetime | None = None,
    ) -> TrackingRecordRead:
        """Move a tracking record to any status.

        Completing a one-time item stamps the completer and clears its due date.
        Completing a recurring item rolls its due date forward and reopens it as
        ``not_started`` for the next period. Leaving ``completed`` clears the
        completion fields. Completions and reopens append a CompletionEvent. Notes
        and attachments change only when present in the request.
        """

        if payload.status not in TRACKING_STATUSES:
            raise ValidationError(
                f"Invalid status '{payload.status}'",
                details={"status": payload.status, "allowed": sorted(TRACKING_STATUSES)},
            )

        tenant_id = self._require_tenant(ctx)
        record = self._get_record(session, ctx, record_id)
        current = ensure_utc(now or utcnow())
        previous_status = record.status
        new_status = payload.status

        record.status = new_status
        record.updated_at = current

        completed_period = new_status == "completed" and previous_status != "completed"
        if completed_period:
            item = self._find_item(session, record)
            frequency = item.frequency if item is not None else None
            session.add(
                CompletionEvent(
                    record_id=record.id,
                    tenant_id=tenant_id,
                    action="completed",
                    actor_user_id=ctx.user_id,
                    occurred_at=current,
                )
            )
            if is_recurring(frequency):
                # The next period opens immediately; the completion lives on in the event log.
                record.next_due_date = calculate_next_due_date(frequency, record.next_due_date, now=current)
                record.reminder_sent = False
                record.status = "not_started"
                record.completed_at = None
                record.completed_by = None
            else:
                record.completed_at = current
                record.completed_by = ctx.user_id
                record.next_due_date = None
        elif previous_status == "completed" and new_status != "completed":
            record.completed_at = None
            record.completed_by = None
            session.add(
                CompletionEvent(
                    record_id=record.id,
                    tenant_id=tenant_id,
                    action="reopened",
                    actor_user_id=ctx.user_id,
                    occurred_at=current,
                )
            )

        if "notes" in payload.model_fields_set:
            record.notes = payload.notes
        if "attachments" in payload.model_fields_set:
            record.attachments = (
                [attachment.model_dump(mode="json") for attachment in payload.attachments]
                if payload.attachments is not None
                else None
            )

        session.commit()
        session.refresh(record)

        if previous_status != record.status or completed_period:
            observe_status_transition(previous_status, new_status)
            audit.record(
                actor_user_id=ctx.user_id,
                entity_type=self.record_repository.resource,
                entity_id=str(record.id),
                action="status.update",
                before={"status": previous_status},
                after={"status": record.status},
                tenant_id=str(tenant_id),
                correlation_id=ctx.correlation_id,
            )
            events.publish(
                {
                    "event_type": "compliance.status.changed",
                    "occurred_at": current.isoformat(),
                    "actor_user_id": ctx.user_id,
                    "tenant_id": str(tenant_id),
                    "correlation_id": ctx.correlation_id,
                    "payload": {
                        "record_id": str(record.id),
                        "item_id": record.item_id,
                        "from_status": previous_status,
                        "to_status": record.status,
                        "completed": completed_period,
                    },
                }
            )
        logger.info("compliance.status_updated", extra={"tenant_id": str(tenant_id), "record_id": str(record.id), "status": record.status})
        return TrackingRecordRead.model_validate(record)

    def list_completion_history(self, session: Session, ctx: AuthContext, record_id: uuid.UUID) -> list[CompletionEventRead]:
        record = self._get_record(session, ctx, record_id)
        rows = session.scalars(
            self.event_repository.apply_scope_query(
                select(CompletionEvent).where(CompletionEvent.record_id == record.id),
                ctx,
            ).order_by(CompletionEvent.occurred_at.asc(), CompletionEvent.id.asc())
        ).all()
        return [CompletionEventRead.model_validate(row) for row in rows]

    # Statistics

    def get_stats(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        checklist_id: uuid.UUID | None = None,
        now: datetime | None = None,
    ) -> ComplianceStats:
        records = self.list_tracking(session, ctx, checklist_id=checklist_id)
        return compute_stats(records, now or utcnow())

    def get_upcoming_deadlines(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        days_ahead: int = DEFAULT_DEADLINE_WINDOW_DAYS,
        now: datetime | None = None,
    ) -> list[UpcomingDeadline]:
        if days_ahead < 0:
            raise ValidationError("days_ahead must not be negative", details={"days_ahead": days_ahead})
        records = self.list_tracking(session, ctx)
        return upcoming_deadlines(records, days_ahead, now or utcnow())

    def get_dashboard(self, session: Session, ctx: AuthContext, *, now: datetime | None = None) -> DashboardRead:
        current = ensure_utc(now or utcnow())
        records = self.list_tracking(session, ctx)
        return DashboardRead(
            records=records,
            stats=compute_stats(records, current),
            upcoming_deadlines=upcoming_deadlines(records, DEFAULT_DEADLINE_WINDOW_DAYS, current),
        )

    # Reminders

    def schedule_reminder(self, session: Session, ctx: AuthContext, payload: ReminderCreate) -> ReminderRead:
        tenant_id = self._require_tenant(ctx)
        record = self._get_record(session, ctx, payload.compliance_id)
        reminder = self._add_reminder(
            session,
            ctx,
            tenant_id=tenant_id,
            record=record,
            reminder_type=payload.reminder_type,
            scheduled_for=payload.scheduled_for,
            message=payload.message,
            metadata=payload.metadata,
        )
        session.commit()
        session.refresh(reminder)
        observe_reminder_scheduled(reminder.reminder_type)
        logger.info(
            "compliance.reminder_scheduled",
            extra={"tenant_id": str(tenant_id), "record_id": str(record.id), "reminder_id": str(reminder.id), "channel": reminder.reminder_type},
        )
        return self._to_reminder_read(reminder)

    def schedule_quarterly_tax_reminders(
        self,
        session: Session,
        ctx: AuthContext,
        record_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> list[ReminderRead]:
        """Schedule an email reminder a week ahead of each estimated-tax deadline still to come this year."""

        tenant_id = self._require_tenant(ctx)
        record = self._get_record(session, ctx, record_id)
        current = ensure_utc(now or utcnow())

        reminders: list[Reminder] = []
        for deadline in quarterly_tax_deadlines(current.year):
            if deadline.due_date <= current:
                continue
            reminders.append(
                self._add_reminder(
                    session,
                    ctx,
                    tenant_id=tenant_id,
                    record=record,
                    reminder_type="email",
                    scheduled_for=deadline.due_date - QUARTERLY_REMINDER_LEAD,
                    message=f"Reminder: {deadline.quarter} estimated taxes are due on {deadline.due_date:%m/%d/%Y}",
                    metadata={"quarter": deadline.quarter, "due_date": deadline.due_date.isoformat()},
                )
            )
        session.commit()
        for reminder in reminders:
            session.refresh(reminder)

        observe_reminder_scheduled("email", len(reminders))
        logger.info(
            "compliance.quarterly_reminders_scheduled",
            extra={"tenant_id": str(tenant_id), "record_id": str(record.id), "count": len(reminders)},
        )
        return [self._to_reminder_read(reminder) for reminder in reminders]

    def list_pending_reminders(self, session: Session, *, now: datetime | None = None) -> list[ReminderRead]:
        current = ensure_utc(now or utcnow())
        rows = session.scalars(
            select(Reminder)
            .where(Reminder.sent.is_(False), Reminder.scheduled_for < current)
            .order_by(Reminder.scheduled_for.asc(), Reminder.id.asc())
        ).all()
        return [self._to_reminder_read(row) for row in rows]

    def mark_sent(self, session: Session, reminder_id: uuid.UUID, *, now: datetime | None = None) -> ReminderRead:
        reminder = session.scalar(select(Reminder).where(Reminder.id == reminder_id))
        if reminder is None:
            raise NotFoundError("Reminder not found", details={"reminder_id": str(reminder_id)})

        current = ensure_utc(now or utcnow())
        reminder.sent = True
        reminder.sent_at = current
        session.commit()
        session.refresh(reminder)

        events.publish(
            {
                "event_type": "compliance.reminder.sent",
                "occurred_at": current.isoformat(),
                "tenant_id": str(reminder.tenant_id),
                "payload": {"reminder_id": str(reminder.id), "record_id": str(reminder.compliance_id)},
            }
        )
        return self._to_reminder_read(reminder)

    def claim_due_reminders(
        self,
        session: Session,
        dispatcher_id: str,
        *,
        limit: int,
        lease: timedelta,
        max_attempts: int | None = None,
        now: datetime | None = None,
    ) -> list[ReminderRead]:
        """Claim up to ``limit`` due reminders for one dispatcher.

        A single UPDATE stamps ``claimed_by`` on unsent due reminders that are unclaimed
        or whose claim is older than ``lease``. Reminders that already failed
        ``max_attempts`` times are left alone. The WHERE clause is re-evaluated under
        the row lock, so two dispatchers never both hold a live claim on one reminder.
        """

        current = ensure_utc(now or utcnow())
        claimable = or_(Reminder.claimed_by.is_(None), Reminder.claimed_at < current - lease)
        if max_attempts is not None:
            claimable = and_(claimable, Reminder.attempts < max_attempts)
        candidates = (
            select(Reminder.id)
            .where(Reminder.sent.is_(False), Reminder.scheduled_for < current, claimable)
            .order_by(Reminder.scheduled_for.asc())
            .limit(limit)
        )
        session.execute(
            update(Reminder)
            .where(Reminder.id.in_(candidates), Reminder.sent.is_(False), claimable)
            .values(claimed_by=dispatcher_id, claimed_at=current)
            .execution_options(synchronize_session=False)
        )
        session.commit()

        rows = session.scalars(
            select(Reminder)
            .where(
                Reminder.claimed_by == dispatcher_id,
                Reminder.claimed_at == current,
                Reminder.sent.is_(False),
            )
            .order_by(Reminder.scheduled_for.asc(), Reminder.id.asc())
        ).all()
        return [self._to_reminder_read(row) for row in rows]

    def release_claim(self, session: Session, reminder_id: uuid.UUID, dispatcher_id: str) -> None:
        session.execute(
            update(Reminder)
            .where(Reminder.id == reminder_id, Reminder.claimed_by == dispatcher_id)
            .values(claimed_by=None, claimed_at=None, attempts=Reminder.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        session.commit()

    # Helpers

    def _add_reminder(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        tenant_id: uuid.UUID,
        record: TrackingRecord,
        reminder_type: str,
        scheduled_for: datetime,
        message: str,
        metadata: dict[str, Any] | None,
    ) -> Reminder:
        payload: dict[str, Any] = {
            "tenant_id": tenant_id,
            "compliance_id": record.id,
            "reminder_type": reminder_type,
            "scheduled_for": ensure_utc(scheduled_for),
            "sent": False,
            "message": message,
            "reminder_metadata": dict(metadata or {}),
        }
        self.reminder_repository.validate_write_security(payload, ctx, action="create")
        reminder = Reminder(**payload)
        session.add(reminder)
        return reminder

    @staticmethod
    def _require_tenant(ctx: AuthContext) -> uuid.UUID:
        if ctx.tenant_id is None:
            raise UnauthorizedError("Tenant context required")
        return ctx.tenant_id

    @staticmethod
    def _nullable_equals(column: Any, value: str | None) -> Any:
        return column.is_(None) if value is None else column == value

    @staticmethod
    def _get_template(session: Session, template_id: uuid.UUID) -> ChecklistTemplate:
        template = session.scalar(select(ChecklistTemplate).where(ChecklistTemplate.id == template_id))
        if template is None:
            raise NotFoundError("Checklist not found", details={"checklist_id": str(template_id)})
        return template

    def _get_record(self, session: Session, ctx: AuthContext, record_id: uuid.UUID) -> TrackingRecord:
        record = session.scalar(
            self.record_repository.apply_scope_query(
                select(TrackingRecord).where(TrackingRecord.id == record_id),
                ctx,
            )
        )
        if record is None:
            raise NotFoundError("Tracking record not found", details={"record_id": str(record_id)})
        return record

    @staticmethod
    def _template_sections(template: ChecklistTemplate) -> list[ChecklistSection]:
        return [ChecklistSection.model_validate(section) for section in template.sections or []]

    def _template_items(self, template: ChecklistTemplate) -> list[ChecklistItem]:
        return [item for section in self._template_sections(template) for item in section.items]

    def _find_item(self, session: Session, record: TrackingRecord) -> ChecklistItem | None:
        template = session.scalar(select(ChecklistTemplate).where(ChecklistTemplate.id == record.checklist_id))
        if template is None:
            return None
        for item in self._template_items(template):
            if item.id == record.item_id:
                return item
        return None

    @staticmethod
    def _validate_unique_item_ids(sections: list[ChecklistSection]) -> None:
        seen: set[str] = set()
        duplicates: list[str] = []
        for section in sections:
            for item in section.items:
                if item.id in seen and item.id not in duplicates:
                    duplicates.append(item.id)
                seen.add(item.id)
        if duplicates:
            raise ValidationError("Duplicate item ids in checklist", details={"item_ids": duplicates})

    @staticmethod
    def _to_template_read(template: ChecklistTemplate) -> TemplateRead:
        return TemplateRead(
            id=template.id,
            title=template.title,
            version=template.version,
            region=template.region,
            business_type=template.business_type,
            sections=template.sections or [],
            metadata=template.template_metadata or {},
            is_active=template.is_active,
            created_at=template.created_at,
            updated_at=template.updated_at,
        )

    @staticmethod
    def _to_reminder_read(reminder: Reminder) -> ReminderRead:
        return ReminderRead(
            id=reminder.id,
            tenant_id=reminder.tenant_id,
            compliance_id=reminder.compliance_id,
            reminder_type=reminder.reminder_type,
            scheduled_for=reminder.scheduled_for,
            sent=reminder.sent,
            sent_at=reminder.sent_at,
            message=reminder.message,
            metadata=reminder.reminder_metadata or {},
            attempts=reminder.attempts,
            created_at=reminder.created_at,
        )


compliance_service = ComplianceService()
