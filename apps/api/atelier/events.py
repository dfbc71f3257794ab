from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from atelier.context import get_correlation_id, get_tenant_id
from atelier.core.events import event_bus

published_events: list[dict[str, Any]] = []


def publish(envelope: dict[str, Any]) -> dict[str, Any]:
    """Fill in the envelope defaults, keep a copy and fan it out to bus subscribers."""

    envelope.setdefault("event_id", str(uuid.uuid4()))
    envelope.setdefault("occurred_at", datetime.now(timezone.utc).isoformat())
    envelope.setdefault("payload", {})
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()
    if envelope.get("tenant_id") is None and get_tenant_id() is not None:
        envelope["tenant_id"] = get_tenant_id()

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
    return envelope


def events_of_type(event_type: str) -> list[dict[str, Any]]:
    return [envelope for envelope in published_events if envelope.get("event_type") == event_type]
