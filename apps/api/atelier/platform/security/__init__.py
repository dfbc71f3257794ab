from atelier.platform.security.context import AuthContext
from atelier.platform.security.errors import TenantScopeError
from atelier.platform.security.repository import BaseRepository
from atelier.platform.security.rls import apply_tenant_filter, validate_tenant_write

__all__ = [
    "AuthContext",
    "TenantScopeError",
    "BaseRepository",
    "apply_tenant_filter",
    "validate_tenant_write",
]
