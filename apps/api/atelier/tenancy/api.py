from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from atelier.core.database import get_db
from atelier.core.errors import NotFoundError
from atelier.platform.security.context import AuthContext
from atelier.tenancy.dependencies import get_auth_context
from atelier.tenancy.schemas import (
    ModuleToggleRequest,
    ModuleType,
    SubscriptionUpdateRequest,
    SuccessResponse,
    TenantCreate,
    TenantCreated,
    TenantWithModulesRead,
)
from atelier.tenancy.service import tenancy_service


router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=TenantCreated, status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: TenantCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TenantCreated:
    return tenancy_service.create_tenant(db, ctx, payload)


@router.get("", response_model=list[TenantWithModulesRead])
def list_tenants(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[TenantWithModulesRead]:
    return tenancy_service.list_tenants_for_user(db, ctx.user_id)


@router.get("/{tenant_id}", response_model=TenantWithModulesRead)
def get_tenant(
    tenant_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TenantWithModulesRead:
    tenant = tenancy_service.get_tenant_for_user(db, ctx.user_id, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found or access denied", details={"tenant_id": str(tenant_id)})
    return tenant


@router.post("/{tenant_id}/subscription", response_model=SuccessResponse)
def update_subscription(
    tenant_id: uuid.UUID,
    payload: SubscriptionUpdateRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> SuccessResponse:
    tenancy_service.update_subscription(db, ctx, tenant_id, payload)
    return SuccessResponse()


@router.post("/{tenant_id}/modules/{module_type}", response_model=SuccessResponse)
def toggle_module(
    tenant_id: uuid.UUID,
    module_type: ModuleType,
    payload: ModuleToggleRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> SuccessResponse:
    tenancy_service.toggle_module(db, ctx, tenant_id, module_type, payload.enabled)
    return SuccessResponse()
