from __future__ import annotations

from atelier.core.errors import UnauthorizedError


class TenantScopeError(UnauthorizedError):
    """Raised when a write targets a tenant other than the one the caller was authorized for."""

    def __init__(self, resource: str, tenant_id: str | None) -> None:
        self.resource = resource
        self.tenant_id = tenant_id
        super().__init__(f"Out-of-scope tenant_id for resource '{resource}'", details={"resource": resource})
