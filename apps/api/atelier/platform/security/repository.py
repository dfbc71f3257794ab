from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from atelier.platform.security.context import AuthContext
from atelier.platform.security.rls import apply_tenant_filter, validate_tenant_write


class BaseRepository:
    resource = ""

    def apply_scope_query(self, query: Select[Any], ctx: AuthContext) -> Select[Any]:
        return apply_tenant_filter(query, self.resource, ctx)

    def validate_write_security(self, payload: dict[str, Any], ctx: AuthContext, *, action: str = "write") -> None:
        validate_tenant_write(self.resource, payload, ctx, action=action)
