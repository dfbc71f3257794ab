from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from atelier.core.auth import AuthUser, get_current_user
from atelier.core.config import get_settings
from atelier.core.database import Base, get_db
from atelier.main import app
from atelier.middleware.rate_limit import reset_rate_limiter


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
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def roles() -> list[str]:
    return ["system.metrics.read", "admin"]


@pytest.fixture()
def client(db_session: Session, roles: list[str]) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_auth_user() -> AuthUser:
        return AuthUser(sub="metrics-admin", roles=roles)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_auth_user

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_compliance_metrics(client: TestClient) -> None:
    health = client.get("/api/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    tenant_id = client.post("/api/tenants", json={"name": "Metrics Studio", "business_type": "writer"}).json()["tenant_id"]
    template = client.post(
        "/api/compliance/templates",
        json={
            "title": "Metrics Checklist",
            "version": "1.0",
            "sections": [{"id": "A", "title": "Setup", "items": [{"id": "A1", "label": "EIN", "frequency": "once"}]}],
        },
    )
    assert template.status_code == 201
    records = client.post(f"/api/compliance/tenants/{tenant_id}/tracking", json={"checklist_id": template.json()["id"]})
    assert records.status_code == 201
    completed = client.post(
        f"/api/compliance/tenants/{tenant_id}/tracking/{records.json()[0]['id']}/status",
        json={"status": "completed"},
    )
    assert completed.status_code == 200

    metrics = client.get("/api/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "compliance_tracking_initialized_total" in body
    assert 'compliance_status_transitions_total{from_status="not_started",to_status="completed"}' in body

    assert 'path="/api/health"' in body
    assert 'path="/api/compliance/tenants/{id}/tracking/{id}/status"' in body


@pytest.mark.parametrize("roles", [["admin"]])
def test_metrics_endpoint_requires_metrics_role(client: TestClient) -> None:
    response = client.get("/api/metrics")

    assert response.status_code == 403


def test_metrics_endpoint_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    response = client.get("/api/metrics")

    assert response.status_code == 404
