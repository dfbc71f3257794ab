from __future__ import annotations

import uuid
from dataclasses import dataclass, field


@dataclass(slots=True)
class AuthContext:
    """Authorization context resolved for one request against one tenant."""

    user_id: str
    tenant_id: uuid.UUID | None = None
    tenant_role: str | None = None
    correlation_id: str | None = None
    is_super_admin: bool = False
    roles: list[str] = field(default_factory=list)
    enabled_modules: set[str] = field(default_factory=set)

    def with_tenant(self, tenant_id: uuid.UUID, tenant_role: str | None, enabled_modules: set[str]) -> AuthContext:
        return AuthContext(
            user_id=self.user_id,
            tenant_id=tenant_id,
            tenant_role=tenant_role,
            correlation_id=self.correlation_id,
            is_super_admin=self.is_super_admin,
            roles=list(self.roles),
            enabled_modules=set(enabled_modules),
        )
