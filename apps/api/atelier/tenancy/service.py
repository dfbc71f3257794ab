from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from atelier import audit, events
from atelier.core.config import get_settings
from atelier.core.errors import EntitlementError, NotFoundError, UnauthorizedError
from atelier.platform.security.context import AuthContext
from atelier.tenancy.models import Tenant, TenantMembership, TenantModule
from atelier.tenancy.repository import TenantMembershipRepository, TenantModuleRepository, TenantRepository
from atelier.tenancy.schemas import (
    SubscriptionUpdateRequest,
    TenantCreate,
    TenantCreated,
    TenantModuleRead,
    TenantRead,
    TenantWithModulesRead,
)


logger = logging.getLogger("atelier.tenancy")

MANAGER_ROLES = frozenset({"owner", "admin"})

_BASE_MODULES = ("crm", "scheduling", "invoicing")

TIER_DEFAULT_MODULES: dict[str, tuple[str, ...]] = {
    "free": _BASE_MODULES,
    "starter": (*_BASE_MODULES, "ai_assistant", "marketing"),
    "professional": (*_BASE_MODULES, "ai_assistant", "marketing", "analytics", "email_campaigns"),
    "enterprise": (
        *_BASE_MODULES,
        "ai_assistant",
        "marketing",
        "analytics",
        "email_campaigns",
        "project_management",
        "file_storage",
    ),
}

TIER_ENTITLEMENTS: dict[str, frozenset[str]] = {
    "free": frozenset({"crm", "scheduling", "invoicing", "website_builder"}),
    "starter": frozenset({"crm", "scheduling", "invoicing", "website_builder", "ai_assistant", "marketing"}),
    "professional": frozenset(
        {
            "crm",
            "scheduling",
            "invoicing",
            "website_builder",
            "ai_assistant",
            "marketing",
            "analytics",
            "project_management",
            "email_campaigns",
        }
    ),
    "enterprise": frozenset(
        {
            "crm",
            "scheduling",
            "invoicing",
            "website_builder",
            "ai_assistant",
            "marketing",
            "analytics",
            "project_management",
            "email_campaigns",
            "file_storage",
        }
    ),
}

BUSINESS_TYPE_MODULES: dict[str, tuple[str, ...]] = {
    "photographer": ("file_storage", "website_builder"),
    "musician": ("website_builder", "marketing"),
    "artist": ("website_builder", "file_storage"),
    "content_creator": ("analytics", "marketing"),
    "real_estate_agent": ("crm", "analytics"),
}

SLUG_MAX_LENGTH = 100
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_slug(name: str) -> str:
    slug = _SLUG_STRIP_RE.sub("-", name.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def can_access_module(tier: str, module_type: str) -> bool:
    return module_type in TIER_ENTITLEMENTS.get(tier, frozenset())


def default_modules(business_type: str, tier: str) -> list[str]:
    """Modules enabled for a new tenant: the tier base set plus business-type extras the tier permits."""

    modules = list(TIER_DEFAULT_MODULES.get(tier, _BASE_MODULES))
    for module_type in BUSINESS_TYPE_MODULES.get(business_type, ()):
        if module_type not in modules and can_access_module(tier, module_type):
            modules.append(module_type)
    return modules


@dataclass(slots=True)
class TenancyService:
    tenant_repository: TenantRepository = TenantRepository()
    membership_repository: TenantMembershipRepository = TenantMembershipRepository()
    module_repository: TenantModuleRepository = TenantModuleRepository()

    def create_tenant(self, session: Session, ctx: AuthContext, payload: TenantCreate, *, now: datetime | None = None) -> TenantCreated:
        current = now or utcnow()
        tier = payload.subscription_tier or "free"
        slug = self._unique_slug(session, generate_slug(payload.name))

        tenant = Tenant(
            name=payload.name,
            slug=slug,
            owner_id=ctx.user_id,
            business_type=payload.business_type,
            subscription_tier=tier,
            subscription_status="trial",
            trial_ends_at=current + timedelta(days=get_settings().trial_period_days),
            settings={},
            created_at=current,
            updated_at=current,
        )
        session.add(tenant)
        session.flush()

        session.add(TenantMembership(user_id=ctx.user_id, tenant_id=tenant.id, role="owner", created_at=current))
        module_types = default_modules(payload.business_type, tier)
        for module_type in module_types:
            session.add(
                TenantModule(
                    tenant_id=tenant.id,
                    module_type=module_type,
                    enabled=True,
                    config={},
                    created_at=current,
                    updated_at=current,
                )
            )
        session.commit()
        session.refresh(tenant)

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="tenancy.tenant",
            entity_id=str(tenant.id),
            action="create",
            before=None,
            after={"name": tenant.name, "slug": tenant.slug, "tier": tier, "modules": module_types},
            tenant_id=str(tenant.id),
            correlation_id=ctx.correlation_id,
        )
        events.publish(
            {
                "event_type": "tenancy.tenant.created",
                "occurred_at": current.isoformat(),
                "actor_user_id": ctx.user_id,
                "tenant_id": str(tenant.id),
                "correlation_id": ctx.correlation_id,
                "payload": {"slug": tenant.slug, "business_type": tenant.business_type, "tier": tier},
            }
        )
        logger.info("tenant.created", extra={"tenant_id": str(tenant.id), "count": len(module_types)})
        return TenantCreated(tenant_id=tenant.id, slug=tenant.slug)

    def get_tenant_for_user(self, session: Session, user_id: str, tenant_id: uuid.UUID) -> TenantWithModulesRead | None:
        tenant = session.scalar(select(Tenant).where(Tenant.id == tenant_id))
        if tenant is None:
            return None
        membership = self._membership(session, user_id, tenant_id)
        if membership is None:
            return None
        return self._to_tenant_with_modules(tenant, self._enabled_modules(session, tenant_id), membership.role)

    def list_tenants_for_user(self, session: Session, user_id: str) -> list[TenantWithModulesRead]:
        rows = session.execute(
            select(TenantMembership, Tenant)
            .join(Tenant, Tenant.id == TenantMembership.tenant_id)
            .where(TenantMembership.user_id == user_id)
            .order_by(Tenant.created_at.asc(), Tenant.id.asc())
        ).all()
        return [
            self._to_tenant_with_modules(tenant, self._enabled_modules(session, tenant.id), membership.role)
            for membership, tenant in rows
        ]

    def require_tenant_access(
        self,
        session: Session,
        ctx: AuthContext,
        tenant_id: uuid.UUID,
        roles: Iterable[str] | None = None,
    ) -> AuthContext:
        """Resolve the caller's membership in a tenant and return a tenant-scoped context.

        Raises UnauthorizedError when the caller is not a member of the tenant or when
        ``roles`` is given and the caller's tenant role is not one of them.
        """

        membership = self._membership(session, ctx.user_id, tenant_id)
        if membership is None:
            raise UnauthorizedError("Tenant not found or access denied", details={"tenant_id": str(tenant_id)})

        allowed = set(roles) if roles is not None else None
        if allowed is not None and membership.role not in allowed:
            raise UnauthorizedError(
                "Insufficient tenant role",
                details={"tenant_id": str(tenant_id), "required_roles": sorted(allowed), "role": membership.role},
            )

        modules = {module.module_type for module in self._enabled_modules(session, tenant_id)}
        return ctx.with_tenant(tenant_id, membership.role, modules)

    @staticmethod
    def require_module(ctx: AuthContext, module_type: str) -> None:
        if module_type not in ctx.enabled_modules:
            raise EntitlementError(
                f"Module '{module_type}' is not enabled for this tenant",
                details={"module_type": module_type, "tenant_id": str(ctx.tenant_id) if ctx.tenant_id else None},
            )

    def update_subscription(self, session: Session, ctx: AuthContext, tenant_id: uuid.UUID, payload: SubscriptionUpdateRequest) -> None:
        scoped = self.require_tenant_access(session, ctx, tenant_id, roles=MANAGER_ROLES)
        tenant = self._get_tenant(session, tenant_id)
        before = {"tier": tenant.subscription_tier, "status": tenant.subscription_status}
        current = utcnow()

        tenant.subscription_tier = payload.tier
        tenant.subscription_status = payload.status
        tenant.updated_at = current

        session.execute(
            update(TenantModule)
            .where(TenantModule.tenant_id == tenant_id)
            .values(enabled=False, updated_at=current)
        )
        existing = {
            module.module_type: module
            for module in session.scalars(
                self.module_repository.apply_scope_query(select(TenantModule), scoped)
            ).all()
        }
        for module_type in default_modules("other", payload.tier):
            module = existing.get(module_type)
            if module is None:
                session.add(
                    TenantModule(
                        tenant_id=tenant_id,
                        module_type=module_type,
                        enabled=True,
                        config={},
                        created_at=current,
                        updated_at=current,
                    )
                )
            else:
                module.enabled = True
                module.updated_at = current
        session.commit()

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="tenancy.tenant",
            entity_id=str(tenant_id),
            action="subscription.update",
            before=before,
            after={"tier": payload.tier, "status": payload.status},
            tenant_id=str(tenant_id),
            correlation_id=ctx.correlation_id,
        )
        logger.info("tenant.subscription_updated", extra={"tenant_id": str(tenant_id), "status": payload.status})

    def toggle_module(self, session: Session, ctx: AuthContext, tenant_id: uuid.UUID, module_type: str, enabled: bool) -> None:
        scoped = self.require_tenant_access(session, ctx, tenant_id, roles=MANAGER_ROLES)
        tenant = self._get_tenant(session, tenant_id)
        if enabled and not can_access_module(tenant.subscription_tier, module_type):
            raise EntitlementError(
                "Module not available in current subscription tier",
                details={"module_type": module_type, "tier": tenant.subscription_tier},
            )

        current = utcnow()
        module = session.scalar(
            self.module_repository.apply_scope_query(
                select(TenantModule).where(TenantModule.module_type == module_type),
                scoped,
            )
        )
        if module is None:
            if not enabled:
                return
            session.add(
                TenantModule(
                    tenant_id=tenant_id,
                    module_type=module_type,
                    enabled=True,
                    config={},
                    created_at=current,
                    updated_at=current,
                )
            )
        else:
            module.enabled = enabled
            module.updated_at = current
        session.commit()
        logger.info("tenant.module_toggled", extra={"tenant_id": str(tenant_id), "status": "enabled" if enabled else "disabled"})

    def _unique_slug(self, session: Session, base: str) -> str:
        base = base or "tenant"
        candidate = base
        suffix = 2
        while session.scalar(select(Tenant.id).where(Tenant.slug == candidate)) is not None:
            tail = f"-{suffix}"
            candidate = f"{base[: SLUG_MAX_LENGTH - len(tail)]}{tail}"
            suffix += 1
        return candidate

    @staticmethod
    def _membership(session: Session, user_id: str, tenant_id: uuid.UUID) -> TenantMembership | None:
        return session.scalar(
            select(TenantMembership).where(
                TenantMembership.user_id == user_id,
                TenantMembership.tenant_id == tenant_id,
            )
        )

    @staticmethod
    def _get_tenant(session: Session, tenant_id: uuid.UUID) -> Tenant:
        tenant = session.scalar(select(Tenant).where(Tenant.id == tenant_id))
        if tenant is None:
            raise NotFoundError("Tenant not found", details={"tenant_id": str(tenant_id)})
        return tenant

    @staticmethod
    def _enabled_modules(session: Session, tenant_id: uuid.UUID) -> list[TenantModule]:
        return list(
            session.scalars(
                select(TenantModule)
                .where(TenantModule.tenant_id == tenant_id, TenantModule.enabled.is_(True))
                .order_by(TenantModule.module_type.asc())
            ).all()
        )

    @staticmethod
    def _to_tenant_with_modules(tenant: Tenant, modules: list[TenantModule], role: str) -> TenantWithModulesRead:
        return TenantWithModulesRead(
            tenant=TenantRead.model_validate(tenant),
            modules=[TenantModuleRead.model_validate(module) for module in modules],
            user_role=role,
        )


tenancy_service = TenancyService()
