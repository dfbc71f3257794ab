from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from atelier import audit, events
from atelier.core.auth import AuthUser, get_current_user
from atelier.core.config import get_settings
from atelier.core.database import Base, get_db
from atelier.main import app
from atelier.middleware.rate_limit import reset_rate_limiter
from atelier.tenancy.models import TenantMembership


@pytest.fixture(autouse=True)
def _env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    audit.audit_entries.clear()
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


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


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    actors = {
        "owner": AuthUser(sub="owner-1", roles=["user"]),
        "member": AuthUser(sub="member-1", roles=["user"]),
        "outsider": AuthUser(sub="outsider-1", roles=["user"]),
        "admin": AuthUser(sub="platform-admin", roles=["admin"]),
        "anonymous": AuthUser(sub="anonymous", roles=["guest"]),
    }
    state = {"current": "owner"}

    def override_get_current_user() -> AuthUser:
        return actors[state["current"]]

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def _template_payload() -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "title": "Photographer Starter",
        "version": "1.0",
        "region": "San Diego County, CA",
        "business_type": "photographer",
        "sections": [
            {
                "id": "A",
                "title": "Setup",
                "items": [
                    {
                        "id": "A1",
                        "label": "Business license",
                        "frequency": "annually",
                        "due_date": (now + timedelta(days=5, hours=1)).isoformat(),
                    },
                    {
                        "id": "A2",
                        "label": "Seller's permit",
                        "frequency": "once",
                        "due_date": (now - timedelta(days=3)).isoformat(),
                    },
                ],
            }
        ],
        "metadata": {"maintainer": "Atelier"},
    }


def _setup_tenant(
    test_client: TestClient,
    set_actor: Callable[[str], None],
    db_session: Session,
) -> tuple[str, str]:
    set_actor("owner")
    created = test_client.post("/api/tenants", json={"name": "Lens & Light", "business_type": "photographer"})
    assert created.status_code == 201
    tenant_id = created.json()["tenant_id"]
    db_session.add(TenantMembership(user_id="member-1", tenant_id=uuid.UUID(tenant_id), role="member"))
    db_session.commit()

    set_actor("admin")
    template = test_client.post("/api/compliance/templates", json=_template_payload())
    assert template.status_code == 201
    set_actor("owner")
    return tenant_id, template.json()["id"]


def test_template_upsert_requires_platform_admin(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client

    set_actor("owner")
    denied = test_client.post("/api/compliance/templates", json=_template_payload())
    assert denied.status_code == 403
    assert denied.json()["code"] == "unauthorized"

    set_actor("admin")
    created = test_client.post("/api/compliance/templates", json=_template_payload())
    assert created.status_code == 201
    body = created.json()
    assert body["is_active"] is True
    assert [item["id"] for item in body["sections"][0]["items"]] == ["A1", "A2"]

    set_actor("owner")
    listed = test_client.get("/api/compliance/templates", params={"region": "San Diego County, CA"})
    assert listed.status_code == 200
    assert [template["id"] for template in listed.json()] == [body["id"]]
    assert test_client.get(f"/api/compliance/templates/{body['id']}").json()["metadata"] == {"maintainer": "Atelier"}


def test_template_with_unknown_frequency_is_rejected(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("admin")
    payload = _template_payload()
    payload["sections"][0]["items"][0]["frequency"] = "weekly"

    response = test_client.post("/api/compliance/templates", json=payload)

    assert response.status_code == 422


def test_anonymous_caller_is_rejected(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("anonymous")

    response = test_client.get("/api/compliance/templates")

    assert response.status_code == 403
    assert response.json()["message"] == "Authentication required"


def test_initialize_tracking_and_dashboard_flow(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    tenant_id, checklist_id = _setup_tenant(test_client, set_actor, db_session)
    base = f"/api/compliance/tenants/{tenant_id}"

    set_actor("member")
    forbidden = test_client.post(f"{base}/tracking", json={"checklist_id": checklist_id})
    assert forbidden.status_code == 403

    set_actor("owner")
    initialized = test_client.post(f"{base}/tracking", json={"checklist_id": checklist_id})
    assert initialized.status_code == 201
    records = {record["item_id"]: record for record in initialized.json()}
    assert set(records) == {"A1", "A2"}
    assert {record["status"] for record in records.values()} == {"not_started"}

    again = test_client.post(f"{base}/tracking", headers={"X-Correlation-Id": "corr-dup"}, json={"checklist_id": checklist_id})
    assert again.status_code == 409
    assert again.json() == {
        "code": "conflict",
        "message": "Tracking already initialized for this checklist",
        "details": {"checklist_id": checklist_id},
        "correlation_id": "corr-dup",
    }

    stats = test_client.get(f"{base}/stats")
    assert stats.json() == {
        "total": 2,
        "completed": 0,
        "in_progress": 0,
        "not_started": 2,
        "skipped": 0,
        "overdue": 1,
        "completion_rate": 0,
    }

    deadlines = test_client.get(f"{base}/deadlines", params={"days_ahead": 30})
    assert deadlines.status_code == 200
    assert [(entry["record"]["item_id"], entry["days_until_due"]) for entry in deadlines.json()] == [("A1", 6)]

    set_actor("member")
    completed = test_client.post(
        f"{base}/tracking/{records['A2']['id']}/status",
        json={"status": "completed", "notes": "Permit received"},
    )
    assert completed.status_code == 200
    assert completed.json()["completed_by"] == "member-1"
    assert completed.json()["next_due_date"] is None

    dashboard = test_client.get(f"{base}/dashboard")
    assert dashboard.status_code == 200
    body = dashboard.json()
    assert body["stats"]["completed"] == 1
    assert body["stats"]["overdue"] == 0
    assert body["stats"]["completion_rate"] == 50
    assert len(body["records"]) == 2
    assert [entry["record"]["item_id"] for entry in body["upcoming_deadlines"]] == ["A1"]

    history = test_client.get(f"{base}/tracking/{records['A2']['id']}/history")
    assert [event["action"] for event in history.json()] == ["completed"]


def test_status_update_rejects_unknown_status(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    tenant_id, checklist_id = _setup_tenant(test_client, set_actor, db_session)
    base = f"/api/compliance/tenants/{tenant_id}"
    record_id = test_client.post(f"{base}/tracking", json={"checklist_id": checklist_id}).json()[0]["id"]

    response = test_client.post(f"{base}/tracking/{record_id}/status", json={"status": "archived"})

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
    assert response.json()["details"]["status"] == "archived"


def test_deadline_window_accepts_zero_and_rejects_negative(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    tenant_id, checklist_id = _setup_tenant(test_client, set_actor, db_session)
    base = f"/api/compliance/tenants/{tenant_id}"
    test_client.post(f"{base}/tracking", json={"checklist_id": checklist_id})

    today = test_client.get(f"{base}/deadlines", params={"days_ahead": 0})
    assert today.status_code == 200
    assert today.json() == []

    assert test_client.get(f"{base}/deadlines", params={"days_ahead": -1}).status_code == 422
    assert test_client.get(f"{base}/deadlines", params={"days_ahead": 366}).status_code == 422


def test_outsider_cannot_read_tenant_tracking(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    tenant_id, checklist_id = _setup_tenant(test_client, set_actor, db_session)
    test_client.post(f"/api/compliance/tenants/{tenant_id}/tracking", json={"checklist_id": checklist_id})

    for actor in ("outsider", "admin"):
        set_actor(actor)
        response = test_client.get(f"/api/compliance/tenants/{tenant_id}/tracking")
        assert response.status_code == 403
        assert response.json()["message"] == "Tenant not found or access denied"


def test_quarterly_reminders_and_admin_delivery_endpoints(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    tenant_id, checklist_id = _setup_tenant(test_client, set_actor, db_session)
    base = f"/api/compliance/tenants/{tenant_id}"
    record_id = test_client.post(f"{base}/tracking", json={"checklist_id": checklist_id}).json()[0]["id"]

    scheduled = test_client.post(
        f"{base}/reminders",
        json={
            "compliance_id": record_id,
            "reminder_type": "notification",
            "scheduled_for": (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat(),
            "message": "License renewal due soon",
        },
    )
    assert scheduled.status_code == 201
    reminder_id = scheduled.json()["id"]

    quarterly = test_client.post(f"{base}/tracking/{record_id}/quarterly-tax-reminders")
    assert quarterly.status_code == 201
    assert all(reminder["message"].startswith("Reminder: Q") for reminder in quarterly.json())

    set_actor("owner")
    assert test_client.get("/api/compliance/reminders/pending").status_code == 403

    set_actor("admin")
    pending = test_client.get("/api/compliance/reminders/pending")
    assert reminder_id in [reminder["id"] for reminder in pending.json()]

    sent = test_client.post(f"/api/compliance/reminders/{reminder_id}/sent")
    assert sent.status_code == 200
    assert sent.json()["sent"] is True
    assert reminder_id not in [reminder["id"] for reminder in test_client.get("/api/compliance/reminders/pending").json()]


def test_unknown_record_returns_not_found_envelope(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    tenant_id, _checklist_id = _setup_tenant(test_client, set_actor, db_session)
    missing = uuid.uuid4()

    response = test_client.post(
        f"/api/compliance/tenants/{tenant_id}/tracking/{missing}/status",
        json={"status": "completed"},
    )

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"
    assert response.json()["details"] == {"record_id": str(missing)}
