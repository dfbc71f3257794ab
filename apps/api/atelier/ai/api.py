from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from atelier.ai.assistant import AiAssistant
from atelier.ai.client import CompletionClient, get_completion_client
from atelier.ai.schemas import (
    AutomationOpportunity,
    AutomationRequest,
    BusinessAnalysisRequest,
    BusinessAnalysisResult,
    ChatRequest,
    ChatResponse,
    ContentRequest,
    ContentResponse,
    ConversationRead,
    FinancialAnalysisRequest,
    FinancialAnalysisResult,
    InsightRead,
    InsightStatus,
    InsightStatusUpdate,
)
from atelier.ai.service import ai_service
from atelier.core.config import get_settings
from atelier.core.database import get_db
from atelier.platform.security.context import AuthContext
from atelier.tenancy.dependencies import tenant_context


router = APIRouter(prefix="/ai/tenants/{tenant_id}", tags=["ai"])

ai_member = tenant_context(module="ai_assistant")


def get_assistant(client: CompletionClient = Depends(get_completion_client)) -> AiAssistant:
    settings = get_settings()
    return AiAssistant(client=client, chat_model=settings.ai_chat_model, analysis_model=settings.ai_analysis_model)


@router.post("/chat", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(ai_member),
    assistant: AiAssistant = Depends(get_assistant),
) -> ChatResponse:
    return ai_service.chat(db, ctx, assistant, payload)


@router.get("/conversations", response_model=list[ConversationRead])
def list_conversations(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(ai_member),
) -> list[ConversationRead]:
    return ai_service.list_conversations(db, ctx)


@router.post("/analyze", response_model=BusinessAnalysisResult)
def analyze_business_needs(
    payload: BusinessAnalysisRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(ai_member),
    assistant: AiAssistant = Depends(get_assistant),
) -> BusinessAnalysisResult:
    return ai_service.analyze_business_needs(db, ctx, assistant, payload)


@router.post("/content", response_model=ContentResponse)
def generate_content(
    payload: ContentRequest,
    ctx: AuthContext = Depends(ai_member),
    assistant: AiAssistant = Depends(get_assistant),
) -> ContentResponse:
    return ContentResponse(content=assistant.generate_content(payload))


@router.post("/financial-analysis", response_model=FinancialAnalysisResult)
def analyze_financial_patterns(
    payload: FinancialAnalysisRequest,
    ctx: AuthContext = Depends(ai_member),
    assistant: AiAssistant = Depends(get_assistant),
) -> FinancialAnalysisResult:
    return assistant.analyze_financial_patterns(payload.invoices)


@router.post("/automation-opportunities", response_model=list[AutomationOpportunity])
def identify_automation_opportunities(
    payload: AutomationRequest,
    ctx: AuthContext = Depends(ai_member),
    assistant: AiAssistant = Depends(get_assistant),
) -> list[AutomationOpportunity]:
    return assistant.identify_automation_opportunities(payload.activities)


@router.get("/insights", response_model=list[InsightRead])
def list_insights(
    status_filter: InsightStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(ai_member),
) -> list[InsightRead]:
    return ai_service.list_insights(db, ctx, status=status_filter)


@router.post("/insights/{insight_id}/status", response_model=InsightRead)
def update_insight_status(
    insight_id: uuid.UUID,
    payload: InsightStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(ai_member),
) -> InsightRead:
    return ai_service.update_insight_status(db, ctx, insight_id, payload.status)
