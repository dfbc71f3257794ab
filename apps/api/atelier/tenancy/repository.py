from __future__ import annotations

from atelier.platform.security.repository import BaseRepository


class TenantRepository(BaseRepository):
    resource = "tenancy.tenant"


class TenantMembershipRepository(BaseRepository):
    resource = "tenancy.membership"


class TenantModuleRepository(BaseRepository):
    resource = "tenancy.module"
