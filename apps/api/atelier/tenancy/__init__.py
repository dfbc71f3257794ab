from atelier.tenancy.api import router
from atelier.tenancy.models import Tenant, TenantMembership, TenantModule
from atelier.tenancy.schemas import TenantCreate, TenantCreated, TenantRead, TenantWithModulesRead
from atelier.tenancy.service import TenancyService, can_access_module, default_modules, tenancy_service

__all__ = [
    "router",
    "Tenant",
    "TenantMembership",
    "TenantModule",
    "TenantCreate",
    "TenantCreated",
    "TenantRead",
    "TenantWithModulesRead",
    "TenancyService",
    "tenancy_service",
    "can_access_module",
    "default_modules",
]
