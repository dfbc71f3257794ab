from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.sql import Select

from atelier import audit
from atelier.metrics import observe_tenant_scope_denied
from atelier.platform.security.context import AuthContext
from atelier.platform.security.errors import TenantScopeError


def apply_tenant_filter(query: Select[Any], resource: str, ctx: AuthContext) -> Select[Any]:
    """Restrict a select to rows owned by the context tenant for models exposing tenant_id."""

    if ctx.tenant_id is None:
        return query

    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None:
            continue
        if hasattr(model, "tenant_id"):
            query = query.where(getattr(model, "tenant_id") == ctx.tenant_id)

    return query


def validate_tenant_write(
    resource: str,
    payload: dict[str, Any],
    ctx: AuthContext,
    *,
    action: str = "write",
) -> None:
    """Reject payloads that name a tenant other than the context tenant."""

    if ctx.tenant_id is None:
        return

    target = payload.get("tenant_id")
    if target is None:
        return

    if _normalize(target) == ctx.tenant_id:
        return

    observe_tenant_scope_denied(resource=resource, action=action)
    audit.record(
        actor_user_id=ctx.user_id,
        entity_type="security.tenant_scope",
        entity_id="scope",
        action="tenant_scope.denied",
        before=None,
        after={
            "resource": resource,
            "action": action,
            "target_tenant_id": str(target),
        },
        tenant_id=str(ctx.tenant_id),
        correlation_id=ctx.correlation_id,
    )
    raise TenantScopeError(resource=resource, tenant_id=str(target))


def _normalize(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
