from __future__ import annotations

import uuid
from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from atelier.ai.client import get_completion_client
from atelier.core.auth import AuthUser, get_current_user
from atelier.core.config import get_settings
from atelier.core.database import Base, get_db
from atelier.main import app
from atelier.middleware.rate_limit import reset_rate_limiter


class EchoCompletionClient:
    def complete(self, **kwargs: Any) -> str:
        return "ok"


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
def configure_rate_limiter_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_AI_REQUESTS_PER_MINUTE", "3")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", roles=["user"])

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_completion_client] = EchoCompletionClient
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _token(subject: str) -> dict[str, str]:
    settings = get_settings()
    return {"Authorization": f"Bearer {jwt.encode({'sub': subject}, settings.jwt_secret, algorithm=settings.jwt_algorithm)}"}


def _ai_tenant(client: TestClient) -> str:
    response = client.post(
        "/api/tenants",
        json={"name": "Rate Studio", "business_type": "content_creator", "subscription_tier": "starter"},
    )
    assert response.status_code == 201
    return response.json()["tenant_id"]


def test_ai_completion_endpoints_are_rate_limited(client: TestClient) -> None:
    tenant_id = _ai_tenant(client)

    responses = [
        client.post(f"/api/ai/tenants/{tenant_id}/chat", json={"message": f"Question {index}"}, headers=_token("user-1"))
        for index in range(5)
    ]

    assert [response.status_code for response in responses[:3]] == [200, 200, 200]
    limited = [response for response in responses if response.status_code == 429]
    assert limited

    first_limited = limited[0]
    body = first_limited.json()
    assert body["code"] == "rate_limited"
    assert body["message"] == "Too many AI requests"
    assert body["correlation_id"] is not None
    assert first_limited.headers.get("Retry-After") == str(body["details"]["retry_after_seconds"])


def test_buckets_are_per_user(client: TestClient) -> None:
    tenant_id = _ai_tenant(client)
    for _ in range(3):
        client.post(f"/api/ai/tenants/{tenant_id}/chat", json={"message": "Hi"}, headers=_token("user-1"))

    assert client.post(f"/api/ai/tenants/{tenant_id}/chat", json={"message": "Hi"}, headers=_token("user-1")).status_code == 429
    assert client.post(f"/api/ai/tenants/{tenant_id}/chat", json={"message": "Hi"}, headers=_token("user-2")).status_code == 200


def test_buckets_are_per_tenant(client: TestClient) -> None:
    first_tenant = _ai_tenant(client)
    second_tenant = _ai_tenant(client)
    for _ in range(3):
        client.post(f"/api/ai/tenants/{first_tenant}/chat", json={"message": "Hi"}, headers=_token("user-1"))

    assert client.post(f"/api/ai/tenants/{first_tenant}/chat", json={"message": "Hi"}, headers=_token("user-1")).status_code == 429
    assert client.post(f"/api/ai/tenants/{second_tenant}/chat", json={"message": "Hi"}, headers=_token("user-1")).status_code == 200


def test_reads_and_other_mutations_are_not_rate_limited(client: TestClient) -> None:
    tenant_id = _ai_tenant(client)

    reads = [client.get(f"/api/ai/tenants/{tenant_id}/conversations") for _ in range(10)]
    assert all(response.status_code != 429 for response in reads)

    status_updates = [
        client.post(f"/api/ai/tenants/{tenant_id}/insights/{uuid.uuid4()}/status", json={"status": "viewed"}, headers=_token("user-1"))
        for _ in range(5)
    ]
    assert [response.status_code for response in status_updates] == [404] * 5

    tenants = [client.post("/api/tenants", json={"name": f"Extra {index}", "business_type": "other"}) for index in range(5)]
    assert all(response.status_code == 201 for response in tenants)
