from __future__ import annotations

from atelier.platform.security.repository import BaseRepository


class ConversationRepository(BaseRepository):
    resource = "ai.conversation"


class InsightRepository(BaseRepository):
    resource = "ai.insight"
