from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from atelier import audit
from atelier.ai.assistant import AiAssistant
from atelier.ai.models import AiConversation, BusinessInsight
from atelier.ai.repositories import ConversationRepository, InsightRepository
from atelier.ai.schemas import (
    BusinessAnalysisRequest,
    BusinessAnalysisResult,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ConversationRead,
    InsightRead,
)
from atelier.core.errors import NotFoundError, UnauthorizedError
from atelier.platform.security.context import AuthContext
from atelier.tenancy.models import Tenant


logger = logging.getLogger("atelier.ai")

INSIGHT_TYPES = frozenset(
    {
        "efficiency_opportunity",
        "revenue_prediction",
        "client_churn_risk",
        "automation_suggestion",
        "growth_opportunity",
    }
)
INSIGHT_PRIORITIES = frozenset({"low", "medium", "high", "critical"})
TITLE_MAX_LENGTH = 100
CONVERSATION_LIST_LIMIT = 50


@dataclass(slots=True)
class AiService:
    conversation_repository: ConversationRepository = ConversationRepository()
    insight_repository: InsightRepository = InsightRepository()

    def chat(
        self,
        session: Session,
        ctx: AuthContext,
        assistant: AiAssistant,
        payload: ChatRequest,
        *,
        now: datetime | None = None,
    ) -> ChatResponse:
        """Append the user's message to a conversation (new or existing) together with the assistant's reply."""

        tenant_id = self._require_tenant(ctx)
        current = now or datetime.now(timezone.utc)

        conversation: AiConversation | None = None
        if payload.conversation_id is not None:
            conversation = self._get_conversation(session, ctx, payload.conversation_id)

        messages: list[dict[str, Any]] = list(conversation.messages) if conversation is not None else []
        messages.append({"role": "user", "content": payload.message, "timestamp": current.isoformat()})

        reply = assistant.chat(messages)
        messages.append({"role": "assistant", "content": reply, "timestamp": current.isoformat()})

        if conversation is None:
            record = {
                "tenant_id": tenant_id,
                "user_id": ctx.user_id,
                "title": payload.message[:TITLE_MAX_LENGTH],
                "conversation_type": payload.type or "general",
                "messages": messages,
                "conversation_metadata": {},
            }
            self.conversation_repository.validate_write_security(record, ctx, action="create")
            conversation = AiConversation(**record, created_at=current, updated_at=current)
            session.add(conversation)
        else:
            # JSON columns are not mutation-tracked; assign a new list.
            conversation.messages = messages
            conversation.updated_at = current
        session.commit()
        session.refresh(conversation)

        logger.info("ai.chat_completed", extra={"tenant_id": str(tenant_id), "count": len(messages)})
        return ChatResponse(
            conversation_id=conversation.id,
            response=reply,
            messages=[ChatMessage.model_validate(message) for message in messages],
        )

    def list_conversations(self, session: Session, ctx: AuthContext) -> list[ConversationRead]:
        self._require_tenant(ctx)
        stmt = self.conversation_repository.apply_scope_query(
            select(AiConversation).where(AiConversation.user_id == ctx.user_id), ctx
        )
        stmt = stmt.order_by(AiConversation.updated_at.desc()).limit(CONVERSATION_LIST_LIMIT)
        return [self._to_conversation_read(row) for row in session.scalars(stmt).all()]

    def analyze_business_needs(
        self,
        session: Session,
        ctx: AuthContext,
        assistant: AiAssistant,
        payload: BusinessAnalysisRequest,
    ) -> BusinessAnalysisResult:
        """Run the business analysis and persist each produced insight as ``new``."""

        tenant_id = self._require_tenant(ctx)
        tenant = session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found", details={"tenant_id": str(tenant_id)})

        analysis = assistant.analyze_business_needs(tenant.business_type, payload)
        for insight in analysis.insights:
            record = {
                "tenant_id": tenant_id,
                "insight_type": insight.type if insight.type in INSIGHT_TYPES else "growth_opportunity",
                "title": insight.title[:255],
                "description": insight.description,
                "priority": insight.priority if insight.priority in INSIGHT_PRIORITIES else "medium",
                "status": "new",
                "data": {},
            }
            self.insight_repository.validate_write_security(record, ctx, action="create")
            session.add(BusinessInsight(**record))
        session.commit()

        logger.info("ai.insights_stored", extra={"tenant_id": str(tenant_id), "count": len(analysis.insights)})
        return analysis

    def list_insights(self, session: Session, ctx: AuthContext, *, status: str | None = None) -> list[InsightRead]:
        self._require_tenant(ctx)
        stmt = select(BusinessInsight)
        if status is not None:
            stmt = stmt.where(BusinessInsight.status == status)
        stmt = self.insight_repository.apply_scope_query(stmt, ctx).order_by(BusinessInsight.created_at.desc())
        return [InsightRead.model_validate(row) for row in session.scalars(stmt).all()]

    def update_insight_status(self, session: Session, ctx: AuthContext, insight_id: uuid.UUID, status: str) -> InsightRead:
        self._require_tenant(ctx)
        insight = session.scalar(
            self.insight_repository.apply_scope_query(select(BusinessInsight).where(BusinessInsight.id == insight_id), ctx)
        )
        if insight is None:
            raise NotFoundError("Insight not found", details={"insight_id": str(insight_id)})

        before = insight.status
        insight.status = status
        insight.updated_at = datetime.now(timezone.utc)
        session.commit()
        session.refresh(insight)

        audit.record(
            actor_user_id=ctx.user_id,
            entity_type=self.insight_repository.resource,
            entity_id=str(insight.id),
            action="status_update",
            before={"status": before},
            after={"status": status},
            tenant_id=str(insight.tenant_id),
            correlation_id=ctx.correlation_id,
        )
        return InsightRead.model_validate(insight)

    def _get_conversation(self, session: Session, ctx: AuthContext, conversation_id: uuid.UUID) -> AiConversation:
        conversation = session.scalar(
            self.conversation_repository.apply_scope_query(
                select(AiConversation).where(AiConversation.id == conversation_id), ctx
            )
        )
        if conversation is None:
            raise NotFoundError("Conversation not found", details={"conversation_id": str(conversation_id)})
        return conversation

    @staticmethod
    def _require_tenant(ctx: AuthContext) -> uuid.UUID:
        if ctx.tenant_id is None:
            raise UnauthorizedError("Tenant context required")
        return ctx.tenant_id

    @staticmethod
    def _to_conversation_read(conversation: AiConversation) -> ConversationRead:
        return ConversationRead(
            id=conversation.id,
            tenant_id=conversation.tenant_id,
            user_id=conversation.user_id,
            title=conversation.title,
            type=conversation.conversation_type,
            messages=[ChatMessage.model_validate(message) for message in conversation.messages or []],
            metadata=conversation.conversation_metadata or {},
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


ai_service = AiService()
