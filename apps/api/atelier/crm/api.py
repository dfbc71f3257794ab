from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from atelier.core.database import get_db
from atelier.crm.schemas import ContactCreate, ContactRead, ContactStats, ContactStatus, ContactUpdate
from atelier.crm.service import contact_service
from atelier.platform.security.context import AuthContext
from atelier.tenancy.dependencies import tenant_context


router = APIRouter(prefix="/crm/tenants/{tenant_id}", tags=["crm.contacts"])

crm_member = tenant_context(module="crm")


@router.post("/contacts", response_model=ContactRead, status_code=status.HTTP_201_CREATED)
def create_contact(
    payload: ContactCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(crm_member),
) -> ContactRead:
    return contact_service.create_contact(db, ctx, payload)


@router.get("/contacts", response_model=list[ContactRead])
def list_contacts(
    status_filter: ContactStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(crm_member),
) -> list[ContactRead]:
    return contact_service.list_contacts(db, ctx, status=status_filter, search=search, limit=limit, offset=offset)


@router.get("/contacts/stats", response_model=ContactStats)
def get_contact_stats(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(crm_member),
) -> ContactStats:
    return contact_service.get_stats(db, ctx)


@router.get("/contacts/{contact_id}", response_model=ContactRead)
def get_contact(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(crm_member),
) -> ContactRead:
    return contact_service.get_contact(db, ctx, contact_id)


@router.patch("/contacts/{contact_id}", response_model=ContactRead)
def update_contact(
    contact_id: uuid.UUID,
    payload: ContactUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(crm_member),
) -> ContactRead:
    return contact_service.update_contact(db, ctx, contact_id, payload)


@router.delete("/contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contact(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(crm_member),
) -> Response:
    contact_service.delete_contact(db, ctx, contact_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
