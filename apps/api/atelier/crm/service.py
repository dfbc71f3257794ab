from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from atelier import audit, events
from atelier.core.errors import NotFoundError, UnauthorizedError, ValidationError
from atelier.crm.models import Contact, utcnow
from atelier.crm.repositories import ContactRepository
from atelier.crm.schemas import ContactCreate, ContactRead, ContactStats, ContactUpdate
from atelier.platform.security.context import AuthContext


logger = logging.getLogger("atelier.crm")

CONTACT_STATUSES = ("lead", "prospect", "client", "inactive")


@dataclass(slots=True)
class ContactService:
    contact_repository: ContactRepository = ContactRepository()

    def create_contact(self, session: Session, ctx: AuthContext, payload: ContactCreate) -> ContactRead:
        tenant_id = self._require_tenant(ctx)
        data: dict[str, Any] = payload.model_dump(mode="python")
        data["tenant_id"] = tenant_id
        self.contact_repository.validate_write_security(data, ctx, action="create")

        contact = Contact(**data)
        session.add(contact)
        session.commit()
        session.refresh(contact)

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.contact_repository.resource,
            entity_id=str(contact.id),
            action="create",
            before=None,
            after={"status": contact.status, "email": contact.email},
            tenant_id=str(tenant_id),
            correlation_id=ctx.correlation_id,
        )
        events.publish(
            {
                "event_type": "crm.contact.created",
                "actor_user_id": ctx.user_id,
                "tenant_id": str(tenant_id),
                "correlation_id": ctx.correlation_id,
                "payload": {"contact_id": str(contact.id), "status": contact.status},
            }
        )
        return ContactRead.model_validate(contact)

    def list_contacts(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        status: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ContactRead]:
        """Newest contacts first; ``search`` is a case-insensitive substring match on names, email and company."""

        self._require_tenant(ctx)
        stmt = select(Contact)
        if status:
            stmt = stmt.where(Contact.status == status)
        if search:
            pattern = f"%{search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Contact.first_name).like(pattern),
                    func.lower(Contact.last_name).like(pattern),
                    func.lower(Contact.email).like(pattern),
                    func.lower(Contact.company).like(pattern),
                )
            )
        stmt = self.contact_repository.apply_scope_query(stmt, ctx)
        stmt = stmt.order_by(Contact.created_at.desc(), Contact.id.asc()).limit(limit).offset(offset)
        return [ContactRead.model_validate(row) for row in session.scalars(stmt).all()]

    def get_contact(self, session: Session, ctx: AuthContext, contact_id: uuid.UUID) -> ContactRead:
        return ContactRead.model_validate(self._get_contact(session, ctx, contact_id))

    def update_contact(self, session: Session, ctx: AuthContext, contact_id: uuid.UUID, payload: ContactUpdate) -> ContactRead:
        contact = self._get_contact(session, ctx, contact_id)
        changes = payload.model_dump(mode="python", exclude_unset=True)
        if "status" in changes and changes["status"] is None:
            raise ValidationError("status cannot be null", details={"field": "status"})
        self.contact_repository.validate_write_security(changes, ctx, action="update")

        before = {field_name: getattr(contact, field_name) for field_name in changes}
        for field_name, value in changes.items():
            setattr(contact, field_name, value)
        contact.updated_at = utcnow()
        session.commit()
        session.refresh(contact)

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.contact_repository.resource,
            entity_id=str(contact.id),
            action="update",
            before=before,
            after=changes,
            tenant_id=str(contact.tenant_id),
            correlation_id=ctx.correlation_id,
        )
        return ContactRead.model_validate(contact)

    def delete_contact(self, session: Session, ctx: AuthContext, contact_id: uuid.UUID) -> None:
        contact = self._get_contact(session, ctx, contact_id)
        tenant_id = contact.tenant_id
        session.delete(contact)
        session.commit()

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.contact_repository.resource,
            entity_id=str(contact_id),
            action="delete",
            before={"tenant_id": str(tenant_id)},
            after=None,
            tenant_id=str(tenant_id),
            correlation_id=ctx.correlation_id,
        )
        logger.info("crm.contact_deleted", extra={"tenant_id": str(tenant_id)})

    def get_stats(self, session: Session, ctx: AuthContext) -> ContactStats:
        self._require_tenant(ctx)
        stmt = self.contact_repository.apply_scope_query(
            select(Contact.status, func.count(Contact.id)).select_from(Contact).group_by(Contact.status),
            ctx,
        )
        by_status = {status: 0 for status in CONTACT_STATUSES}
        for status, count in session.execute(stmt).all():
            by_status[str(status)] = int(count)
        return ContactStats(total=sum(by_status.values()), by_status=by_status)

    def _get_contact(self, session: Session, ctx: AuthContext, contact_id: uuid.UUID) -> Contact:
        self._require_tenant(ctx)
        contact = session.scalar(
            self.contact_repository.apply_scope_query(select(Contact).where(Contact.id == contact_id), ctx)
        )
        if contact is None:
            raise NotFoundError("Contact not found", details={"contact_id": str(contact_id)})
        return contact

    @staticmethod
    def _require_tenant(ctx: AuthContext) -> uuid.UUID:
        if ctx.tenant_id is None:
            raise UnauthorizedError("Tenant context required")
        return ctx.tenant_id


contact_service = ContactService()
