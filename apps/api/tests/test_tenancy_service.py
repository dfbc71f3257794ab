from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from atelier import audit, events
from atelier.core.database import Base
from atelier.core.errors import EntitlementError, UnauthorizedError
from atelier.platform.security.context import AuthContext
from atelier.tenancy.models import TenantMembership
from atelier.tenancy.schemas import SubscriptionUpdateRequest, TenantCreate
from atelier.tenancy.service import TenancyService, can_access_module, default_modules, generate_slug


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Lens & Light Studio", "lens-light-studio"),
        ("  --Jazz Trio!!  ", "jazz-trio"),
        ("Ünïcode Café", "n-code-caf"),
        ("", ""),
    ],
)
def test_generate_slug(name: str, expected: str) -> None:
    assert generate_slug(name) == expected


def test_default_modules_respect_tier_entitlements() -> None:
    assert default_modules("photographer", "free") == ["crm", "scheduling", "invoicing", "website_builder"]
    assert default_modules("content_creator", "free") == ["crm", "scheduling", "invoicing"]
    assert default_modules("content_creator", "professional") == [
        "crm",
        "scheduling",
        "invoicing",
        "ai_assistant",
        "marketing",
        "analytics",
        "email_campaigns",
    ]
    assert default_modules("other", "starter") == ["crm", "scheduling", "invoicing", "ai_assistant", "marketing"]


def test_can_access_module() -> None:
    assert can_access_module("free", "crm") is True
    assert can_access_module("free", "analytics") is False
    assert can_access_module("enterprise", "file_storage") is True
    assert can_access_module("unknown", "crm") is False


def test_create_tenant_makes_caller_owner_and_enables_defaults(db_session: Session) -> None:
    service = TenancyService()
    ctx = AuthContext(user_id="U1", correlation_id="corr-tenant")

    created = service.create_tenant(db_session, ctx, TenantCreate(name="Lens & Light", business_type="photographer"))

    assert created.slug == "lens-light"
    tenant = service.get_tenant_for_user(db_session, "U1", created.tenant_id)
    assert tenant is not None
    assert tenant.user_role == "owner"
    assert tenant.tenant.subscription_tier == "free"
    assert tenant.tenant.subscription_status == "trial"
    assert tenant.tenant.trial_ends_at is not None
    assert sorted(module.module_type for module in tenant.modules) == ["crm", "invoicing", "scheduling", "website_builder"]

    assert audit.audit_entries[-1]["action"] == "create"
    assert events.published_events[-1]["event_type"] == "tenancy.tenant.created"
    assert events.published_events[-1]["correlation_id"] == "corr-tenant"


def test_duplicate_names_get_numbered_slugs(db_session: Session) -> None:
    service = TenancyService()
    slugs = [
        service.create_tenant(db_session, AuthContext(user_id=f"U{index}"), TenantCreate(name="Studio", business_type="artist")).slug
        for index in range(3)
    ]

    assert slugs == ["studio", "studio-2", "studio-3"]


def test_non_member_gets_nothing(db_session: Session) -> None:
    service = TenancyService()
    created = service.create_tenant(db_session, AuthContext(user_id="U1"), TenantCreate(name="Solo", business_type="writer"))

    assert service.get_tenant_for_user(db_session, "U2", created.tenant_id) is None
    assert service.list_tenants_for_user(db_session, "U2") == []
    assert [item.tenant.id for item in service.list_tenants_for_user(db_session, "U1")] == [created.tenant_id]
    with pytest.raises(UnauthorizedError):
        service.require_tenant_access(db_session, AuthContext(user_id="U2"), created.tenant_id)


def test_require_tenant_access_checks_role_and_scopes_context(db_session: Session) -> None:
    service = TenancyService()
    created = service.create_tenant(db_session, AuthContext(user_id="U1"), TenantCreate(name="Band", business_type="musician"))
    db_session.add(TenantMembership(user_id="U2", tenant_id=created.tenant_id, role="member"))
    db_session.commit()

    scoped = service.require_tenant_access(db_session, AuthContext(user_id="U2"), created.tenant_id)
    assert scoped.tenant_id == created.tenant_id
    assert scoped.tenant_role == "member"
    assert "marketing" not in scoped.enabled_modules
    assert "website_builder" in scoped.enabled_modules

    with pytest.raises(UnauthorizedError) as excinfo:
        service.require_tenant_access(db_session, AuthContext(user_id="U2"), created.tenant_id, roles={"owner", "admin"})
    assert excinfo.value.details["role"] == "member"


def test_require_module_raises_entitlement_error() -> None:
    ctx = AuthContext(user_id="U1", tenant_id=uuid.uuid4(), enabled_modules={"crm"})

    TenancyService.require_module(ctx, "crm")
    with pytest.raises(EntitlementError) as excinfo:
        TenancyService.require_module(ctx, "ai_assistant")
    assert excinfo.value.code == "module_not_entitled"


def test_toggle_module_enforces_tier(db_session: Session) -> None:
    service = TenancyService()
    ctx = AuthContext(user_id="U1")
    created = service.create_tenant(db_session, ctx, TenantCreate(name="Gallery", business_type="artist"))

    with pytest.raises(EntitlementError) as excinfo:
        service.toggle_module(db_session, ctx, created.tenant_id, "analytics", True)
    assert excinfo.value.details == {"module_type": "analytics", "tier": "free"}

    service.toggle_module(db_session, ctx, created.tenant_id, "crm", False)
    service.toggle_module(db_session, ctx, created.tenant_id, "website_builder", False)
    service.toggle_module(db_session, ctx, created.tenant_id, "website_builder", True)

    tenant = service.get_tenant_for_user(db_session, "U1", created.tenant_id)
    assert tenant is not None
    assert sorted(module.module_type for module in tenant.modules) == ["invoicing", "scheduling", "website_builder"]


def test_toggle_module_requires_manager_role(db_session: Session) -> None:
    service = TenancyService()
    created = service.create_tenant(db_session, AuthContext(user_id="U1"), TenantCreate(name="Shop", business_type="designer"))
    db_session.add(TenantMembership(user_id="U2", tenant_id=created.tenant_id, role="member"))
    db_session.commit()

    with pytest.raises(UnauthorizedError):
        service.toggle_module(db_session, AuthContext(user_id="U2"), created.tenant_id, "crm", False)


def test_update_subscription_resets_modules_to_tier_defaults(db_session: Session) -> None:
    service = TenancyService()
    ctx = AuthContext(user_id="U1")
    created = service.create_tenant(db_session, ctx, TenantCreate(name="Frames", business_type="photographer"))

    service.update_subscription(
        db_session, ctx, created.tenant_id, SubscriptionUpdateRequest(tier="professional", status="active")
    )

    tenant = service.get_tenant_for_user(db_session, "U1", created.tenant_id)
    assert tenant is not None
    assert tenant.tenant.subscription_tier == "professional"
    assert tenant.tenant.subscription_status == "active"
    assert sorted(module.module_type for module in tenant.modules) == [
        "ai_assistant",
        "analytics",
        "crm",
        "email_campaigns",
        "invoicing",
        "marketing",
        "scheduling",
    ]
    assert audit.audit_entries[-1]["before"] == {"tier": "free", "status": "trial"}


def test_update_subscription_for_unknown_tenant(db_session: Session) -> None:
    with pytest.raises(UnauthorizedError):
        TenancyService().update_subscription(
            db_session, AuthContext(user_id="U1"), uuid.uuid4(), SubscriptionUpdateRequest(tier="starter", status="active")
        )


def test_get_tenant_missing_row_is_none(db_session: Session) -> None:
    assert TenancyService().get_tenant_for_user(db_session, "U1", uuid.uuid4()) is None
