from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from atelier.context import get_correlation_id
from atelier.core.auth import AuthUser, get_current_user
from atelier.core.database import get_db
from atelier.core.errors import UnauthorizedError
from atelier.platform.security.context import AuthContext
from atelier.tenancy.service import tenancy_service


def get_auth_context(request: Request, auth_user: AuthUser = Depends(get_current_user)) -> AuthContext:
    if auth_user.is_anonymous:
        raise UnauthorizedError("Authentication required")

    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return AuthContext(
        user_id=auth_user.sub,
        correlation_id=correlation_id,
        is_super_admin=auth_user.is_platform_admin,
        roles=list(auth_user.roles),
    )


def require_platform_admin(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.is_super_admin:
        raise UnauthorizedError("Platform administrator role required")
    return ctx


def tenant_context(roles: Iterable[str] | None = None, module: str | None = None) -> Callable[..., AuthContext]:
    """Build a dependency that authorizes the caller against the ``tenant_id`` path parameter."""

    required_roles = frozenset(roles) if roles is not None else None

    def dependency(
        tenant_id: uuid.UUID,
        db: Session = Depends(get_db),
        ctx: AuthContext = Depends(get_auth_context),
    ) -> AuthContext:
        scoped = tenancy_service.require_tenant_access(db, ctx, tenant_id, roles=required_roles)
        if module is not None:
            tenancy_service.require_module(scoped, module)
        return scoped

    return dependency
