from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from atelier.context import get_correlation_id, get_tenant_id

logger = logging.getLogger("atelier.audit")

# In-process trail; entries are plain dicts so they can be shipped to an external sink unchanged.
audit_entries: list[dict[str, Any]] = []


def record(
    actor_user_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    tenant_id: str | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor_user_id,
        "tenant_id": tenant_id or get_tenant_id(),
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "before": before,
        "after": after,
        "correlation_id": correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    logger.debug("audit.recorded", extra={"tenant_id": entry["tenant_id"], "action": action})
    return entry


def entries_for(entity_type: str, entity_id: str | None = None) -> list[dict[str, Any]]:
    """Audit entries for one entity type (and optionally one entity), oldest first."""

    return [
        entry
        for entry in audit_entries
        if entry["entity_type"] == entity_type and (entity_id is None or entry["entity_id"] == entity_id)
    ]
