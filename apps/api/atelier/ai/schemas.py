from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


MessageRole = Literal["user", "assistant", "system"]
ConversationType = Literal["business_analysis", "content_generation", "customer_support", "general"]
InsightType = Literal[
    "efficiency_opportunity",
    "revenue_prediction",
    "client_churn_risk",
    "automation_suggestion",
    "growth_opportunity",
]
InsightPriority = Literal["low", "medium", "high", "critical"]
InsightStatus = Literal["new", "viewed", "in_progress", "implemented", "dismissed"]
ContentType = Literal["email", "social", "message"]
ContentTone = Literal["professional", "casual", "friendly"]


class ChatMessage(BaseModel):
    role: MessageRole
    content: str
    timestamp: datetime | None = None


class ChatRequest(BaseModel):
    conversation_id: UUID | None = None
    message: str = Field(min_length=1)
    type: ConversationType | None = None


class ChatResponse(BaseModel):
    conversation_id: UUID
    response: str
    messages: list[ChatMessage]


class ConversationRead(BaseModel):
    id: UUID
    tenant_id: UUID
    user_id: str
    title: str | None
    type: ConversationType | str
    messages: list[ChatMessage]
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class BusinessAnalysisRequest(BaseModel):
    current_challenges: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    current_tools: list[str] | None = None


class AnalysisInsight(BaseModel):
    type: str
    title: str
    description: str
    priority: str = "medium"


class ModuleRecommendation(BaseModel):
    module: str
    reason: str
    expected_impact: str = Field(default="", validation_alias=AliasChoices("expected_impact", "expectedImpact"))


class AutomationIdea(BaseModel):
    task: str
    effort: str = ""
    impact: str = ""


class BusinessAnalysisResult(BaseModel):
    insights: list[AnalysisInsight] = Field(default_factory=list)
    recommendations: list[ModuleRecommendation] = Field(default_factory=list)
    automation_opportunities: list[AutomationIdea] = Field(
        default_factory=list,
        validation_alias=AliasChoices("automation_opportunities", "automationOpportunities"),
    )


class ContentRequest(BaseModel):
    type: ContentType
    purpose: str = Field(min_length=1)
    tone: ContentTone | None = None
    audience: str | None = None
    key_points: list[str] | None = None


class ContentResponse(BaseModel):
    content: str


class InvoiceFigure(BaseModel):
    total: float = Field(ge=0)
    status: str
    issue_date: datetime
    due_date: datetime


class FinancialAnalysisRequest(BaseModel):
    invoices: list[InvoiceFigure] = Field(min_length=1)


class RevenuePrediction(BaseModel):
    next_month_revenue: float = Field(validation_alias=AliasChoices("next_month_revenue", "nextMonthRevenue"))
    confidence: float


class FinancialAnalysisResult(BaseModel):
    insights: list[str] = Field(default_factory=list)
    predictions: RevenuePrediction
    recommendations: list[str] = Field(default_factory=list)


class ActivityRecord(BaseModel):
    action: str = Field(min_length=1)
    frequency: int = Field(ge=0)
    time_spent: float = Field(ge=0)


class AutomationRequest(BaseModel):
    activities: list[ActivityRecord] = Field(min_length=1)


class AutomationOpportunity(BaseModel):
    task: str
    current_effort: str = Field(validation_alias=AliasChoices("current_effort", "currentEffort"))
    automation_potential: Literal["high", "medium", "low"] = Field(
        validation_alias=AliasChoices("automation_potential", "automationPotential")
    )
    suggested_solution: str = Field(validation_alias=AliasChoices("suggested_solution", "suggestedSolution"))


class InsightRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    insight_type: InsightType | str
    title: str
    description: str
    priority: InsightPriority | str
    status: InsightStatus | str
    data: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class InsightStatusUpdate(BaseModel):
    status: InsightStatus
