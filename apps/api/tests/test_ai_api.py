from __future__ import annotations

import json
import uuid
from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from atelier import audit, events
from atelier.ai.client import get_completion_client
from atelier.core.auth import AuthUser, get_current_user
from atelier.core.config import get_settings
from atelier.core.database import Base, get_db
from atelier.core.errors import AiServiceError
from atelier.main import app
from atelier.middleware.rate_limit import reset_rate_limiter
from atelier.tenancy.models import TenantMembership


class ScriptedCompletionClient:
    def __init__(self) -> None:
        self.replies: list[str] = []
        self.calls: list[dict[str, Any]] = []
        self.fail = False

    def complete(self, **kwargs: Any) -> str:
        self.calls.append(kwargs)
        if self.fail:
            raise AiServiceError("AI provider request failed", details={"operation": kwargs["operation"]})
        return self.replies.pop(0) if self.replies else ""


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
def completion_client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient()


@pytest.fixture()
def client(
    db_session: Session,
    completion_client: ScriptedCompletionClient,
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    actors = {
        "user1": AuthUser(sub="user-1", roles=["user"]),
        "user2": AuthUser(sub="user-2", roles=["user"]),
    }
    state = {"current": "user1"}

    def override_get_current_user() -> AuthUser:
        return actors[state["current"]]

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_completion_client] = lambda: completion_client
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def _create_tenant(test_client: TestClient, tier: str = "starter", business_type: str = "photographer") -> str:
    response = test_client.post(
        "/api/tenants",
        json={"name": f"AI Studio {uuid.uuid4().hex[:6]}", "business_type": business_type, "subscription_tier": tier},
    )
    assert response.status_code == 201
    return response.json()["tenant_id"]


def test_chat_creates_and_continues_conversation(
    client: tuple[TestClient, Callable[[str], None]],
    completion_client: ScriptedCompletionClient,
) -> None:
    test_client, _set_actor = client
    tenant_id = _create_tenant(test_client)
    completion_client.replies = ["Try a spring mini-session promo.", "Post it two weeks ahead."]
    base = f"/api/ai/tenants/{tenant_id}"

    first = test_client.post(f"{base}/chat", json={"message": "How do I get more spring bookings?"})
    assert first.status_code == 200
    body = first.json()
    assert body["response"] == "Try a spring mini-session promo."
    assert [message["role"] for message in body["messages"]] == ["user", "assistant"]

    second = test_client.post(
        f"{base}/chat",
        json={"conversation_id": body["conversation_id"], "message": "When should I announce it?"},
    )
    assert second.status_code == 200
    assert second.json()["conversation_id"] == body["conversation_id"]
    assert len(second.json()["messages"]) == 4
    assert [message["role"] for message in completion_client.calls[1]["messages"]] == ["user", "assistant", "user"]

    conversations = test_client.get(f"{base}/conversations").json()
    assert len(conversations) == 1
    assert conversations[0]["title"] == "How do I get more spring bookings?"
    assert conversations[0]["type"] == "general"
    assert len(conversations[0]["messages"]) == 4


def test_chat_title_is_truncated_and_type_kept(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _set_actor = client
    tenant_id = _create_tenant(test_client)

    response = test_client.post(
        f"/api/ai/tenants/{tenant_id}/chat",
        json={"message": "x" * 150, "type": "customer_support"},
    )

    assert response.status_code == 200
    assert response.json()["response"] == "I apologize, but I could not generate a response."
    conversation = test_client.get(f"/api/ai/tenants/{tenant_id}/conversations").json()[0]
    assert conversation["title"] == "x" * 100
    assert conversation["type"] == "customer_support"


def test_chat_with_unknown_conversation_is_not_found(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _set_actor = client
    tenant_id = _create_tenant(test_client)

    response = test_client.post(
        f"/api/ai/tenants/{tenant_id}/chat",
        json={"conversation_id": str(uuid.uuid4()), "message": "Hello"},
    )

    assert response.status_code == 404
    assert test_client.get(f"/api/ai/tenants/{tenant_id}/conversations").json() == []


def test_conversations_are_private_to_each_member(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    tenant_id = _create_tenant(test_client)
    db_session.add(TenantMembership(user_id="user-2", tenant_id=uuid.UUID(tenant_id), role="member"))
    db_session.commit()
    test_client.post(f"/api/ai/tenants/{tenant_id}/chat", json={"message": "Mine"})

    set_actor("user2")
    assert test_client.get(f"/api/ai/tenants/{tenant_id}/conversations").json() == []


def test_analyze_persists_normalized_insights(
    client: tuple[TestClient, Callable[[str], None]],
    completion_client: ScriptedCompletionClient,
) -> None:
    test_client, _set_actor = client
    tenant_id = _create_tenant(test_client)
    completion_client.replies = [
        json.dumps(
            {
                "insights": [
                    {"type": "client_churn_risk", "title": "Repeat clients dropping", "description": "d1", "priority": "critical"},
                    {"type": "made_up", "title": "Unknown kind", "description": "d2", "priority": "urgent"},
                ],
                "recommendations": [],
                "automationOpportunities": [],
            }
        )
    ]
    base = f"/api/ai/tenants/{tenant_id}"

    analyzed = test_client.post(f"{base}/analyze", json={"current_challenges": ["Churn"], "goals": ["Retention"]})
    assert analyzed.status_code == 200
    assert len(analyzed.json()["insights"]) == 2
    assert "Business Type: photographer" in completion_client.calls[0]["messages"][1]["content"]

    insights = {insight["title"]: insight for insight in test_client.get(f"{base}/insights").json()}
    assert insights["Repeat clients dropping"]["insight_type"] == "client_churn_risk"
    assert insights["Repeat clients dropping"]["priority"] == "critical"
    assert insights["Unknown kind"]["insight_type"] == "growth_opportunity"
    assert insights["Unknown kind"]["priority"] == "medium"
    assert {insight["status"] for insight in insights.values()} == {"new"}

    insight_id = insights["Unknown kind"]["id"]
    updated = test_client.post(f"{base}/insights/{insight_id}/status", json={"status": "dismissed"})
    assert updated.status_code == 200
    assert updated.json()["status"] == "dismissed"
    assert audit.audit_entries[-1]["after"] == {"status": "dismissed"}

    remaining = test_client.get(f"{base}/insights", params={"status": "new"}).json()
    assert [insight["title"] for insight in remaining] == ["Repeat clients dropping"]

    bad_status = test_client.post(f"{base}/insights/{insight_id}/status", json={"status": "archived"})
    assert bad_status.status_code == 422
    missing = test_client.post(f"{base}/insights/{uuid.uuid4()}/status", json={"status": "viewed"})
    assert missing.status_code == 404


def test_stateless_endpoints_return_structured_fallbacks(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _set_actor = client
    tenant_id = _create_tenant(test_client)
    base = f"/api/ai/tenants/{tenant_id}"

    content = test_client.post(f"{base}/content", json={"type": "social", "purpose": "Announce a sale"})
    assert content.status_code == 200
    assert content.json() == {"content": ""}

    financial = test_client.post(
        f"{base}/financial-analysis",
        json={
            "invoices": [
                {"total": 800, "status": "paid", "issue_date": "2025-03-01T00:00:00Z", "due_date": "2025-03-31T00:00:00Z"},
                {"total": 200, "status": "overdue", "issue_date": "2025-02-01T00:00:00Z", "due_date": "2025-02-28T00:00:00Z"},
            ]
        },
    )
    assert financial.status_code == 200
    assert financial.json()["predictions"] == {"next_month_revenue": 880.0, "confidence": 0.7}

    automation = test_client.post(
        f"{base}/automation-opportunities",
        json={"activities": [{"action": "Send contracts", "frequency": 12, "time_spent": 15}]},
    )
    assert automation.status_code == 200
    assert automation.json()[0]["automation_potential"] == "high"

    empty = test_client.post(f"{base}/financial-analysis", json={"invoices": []})
    assert empty.status_code == 422


def test_free_tier_tenant_lacks_ai_module(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _set_actor = client
    tenant_id = _create_tenant(test_client, tier="free")

    response = test_client.post(f"/api/ai/tenants/{tenant_id}/chat", json={"message": "Hello"})

    assert response.status_code == 403
    assert response.json()["code"] == "module_not_entitled"


def test_provider_failure_maps_to_bad_gateway(
    client: tuple[TestClient, Callable[[str], None]],
    completion_client: ScriptedCompletionClient,
) -> None:
    test_client, _set_actor = client
    tenant_id = _create_tenant(test_client)
    completion_client.fail = True

    response = test_client.post(f"/api/ai/tenants/{tenant_id}/chat", json={"message": "Hello"})

    assert response.status_code == 502
    assert response.json()["code"] == "ai_service_unavailable"
    assert test_client.get(f"/api/ai/tenants/{tenant_id}/conversations").json() == []
