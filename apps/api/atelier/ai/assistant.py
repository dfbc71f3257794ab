"""Prompt construction and response parsing for the AI assistant.

Every operation degrades to a deterministic structured result when the model
returns something that is not the JSON we asked for. Transport failures are not
masked: they surface as ``AiServiceError``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from atelier.ai.client import CompletionClient
from atelier.ai.schemas import (
    ActivityRecord,
    AnalysisInsight,
    AutomationIdea,
    AutomationOpportunity,
    BusinessAnalysisRequest,
    BusinessAnalysisResult,
    ContentRequest,
    FinancialAnalysisResult,
    InvoiceFigure,
    ModuleRecommendation,
    RevenuePrediction,
)


logger = logging.getLogger("atelier.ai")

EMPTY_CHAT_REPLY = "I apologize, but I could not generate a response."

BUSINESS_MODULE_RECOMMENDATIONS: dict[str, tuple[str, ...]] = {
    "photographer": ("crm", "scheduling", "invoicing", "website_builder", "file_storage"),
    "musician": ("crm", "scheduling", "marketing", "website_builder", "email_campaigns"),
    "artist": ("crm", "invoicing", "website_builder", "marketing", "file_storage"),
    "content_creator": ("crm", "analytics", "marketing", "ai_assistant", "email_campaigns"),
    "real_estate_agent": ("crm", "scheduling", "marketing", "analytics", "ai_assistant"),
}
GENERIC_MODULE_RECOMMENDATIONS = ("crm", "scheduling", "invoicing")

ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert business consultant specializing in helping creative professionals "
    "and small businesses optimize their operations."
)
FINANCIAL_SYSTEM_PROMPT = "You are a financial analyst helping small businesses understand their finances."
AUTOMATION_SYSTEM_PROMPT = "You are a business automation expert helping identify opportunities to save time."

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_opportunities_adapter = TypeAdapter(list[AutomationOpportunity])


def extract_json(content: str) -> Any:
    """Decode the JSON payload of a model reply, tolerating markdown fences and surrounding prose."""

    text = content.strip()
    fenced = _FENCE_PATTERN.search(text)
    if fenced:
        text = fenced.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                continue
    return None


def _join(values: list[str] | None, default: str = "None") -> str:
    return ", ".join(values) if values else default


@dataclass(slots=True)
class AiAssistant:
    client: CompletionClient
    chat_model: str
    analysis_model: str

    def chat(self, messages: list[dict[str, str]]) -> str:
        reply = self.client.complete(
            operation="chat",
            model=self.chat_model,
            messages=[{"role": message["role"], "content": message["content"]} for message in messages],
            max_tokens=500,
            temperature=0.7,
        )
        return reply.strip() or EMPTY_CHAT_REPLY

    def analyze_business_needs(self, business_type: str, payload: BusinessAnalysisRequest) -> BusinessAnalysisResult:
        prompt = (
            "You are a business consultant AI. Analyze this business and provide actionable insights.\n\n"
            f"Business Type: {business_type}\n"
            f"Current Challenges: {_join(payload.current_challenges, '')}\n"
            f"Goals: {_join(payload.goals, '')}\n"
            f"Current Tools: {_join(payload.current_tools)}\n\n"
            "Provide a JSON response with:\n"
            "1. insights: Array of business insights with type, title, description, and priority\n"
            "2. recommendations: Array of recommended modules/features with module, reason and expectedImpact\n"
            "3. automationOpportunities: Array of tasks that can be automated with task, effort and impact\n\n"
            "Focus on practical, actionable advice for a creative professional or small business owner."
        )
        content = self.client.complete(
            operation="business_analysis",
            model=self.analysis_model,
            messages=[
                {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=1000,
            temperature=0.5,
        )
        parsed = extract_json(content)
        if isinstance(parsed, dict):
            try:
                return BusinessAnalysisResult.model_validate(parsed)
            except PydanticValidationError:
                pass
        logger.info("ai.fallback", extra={"operation": "business_analysis"})
        return self._fallback_business_analysis(business_type)

    def generate_content(self, payload: ContentRequest) -> str:
        tone = payload.tone or "professional"
        lines = [f"Generate a {tone} {payload.type} for the following purpose:", "", f"Purpose: {payload.purpose}"]
        if payload.audience:
            lines.append(f"Audience: {payload.audience}")
        if payload.key_points:
            lines.append(f"Key Points: {', '.join(payload.key_points)}")
        lines.extend(["", "Generate only the content, without any additional explanation."])

        return self.client.complete(
            operation="content_generation",
            model=self.chat_model,
            messages=[
                {"role": "system", "content": f"You are a professional copywriter helping create {payload.type} content."},
                {"role": "user", "content": "\n".join(lines)},
            ],
            max_tokens=300,
            temperature=0.8,
        ).strip()

    def analyze_financial_patterns(self, invoices: list[InvoiceFigure]) -> FinancialAnalysisResult:
        total_revenue = sum(invoice.total for invoice in invoices if invoice.status == "paid")
        average_invoice = total_revenue / len(invoices) if invoices else 0.0
        overdue_count = sum(1 for invoice in invoices if invoice.status == "overdue")

        prompt = (
            "Analyze these financial metrics and provide insights:\n\n"
            f"Total Revenue: ${total_revenue:.2f}\n"
            f"Number of Invoices: {len(invoices)}\n"
            f"Average Invoice: ${average_invoice:.2f}\n"
            f"Overdue Invoices: {overdue_count}\n\n"
            "Provide:\n"
            "1. Key insights about the financial health\n"
            "2. Revenue prediction for next month\n"
            "3. Recommendations for improvement\n\n"
            "Format as JSON with: insights (array), predictions (object with nextMonthRevenue and confidence), "
            "recommendations (array)"
        )
        content = self.client.complete(
            operation="financial_analysis",
            model=self.analysis_model,
            messages=[
                {"role": "system", "content": FINANCIAL_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=500,
            temperature=0.3,
        )
        parsed = extract_json(content)
        if isinstance(parsed, dict):
            try:
                return FinancialAnalysisResult.model_validate(parsed)
            except PydanticValidationError:
                pass

        logger.info("ai.fallback", extra={"operation": "financial_analysis"})
        return FinancialAnalysisResult(
            insights=[
                f"Total revenue: ${total_revenue:.2f}",
                f"Average invoice value: ${average_invoice:.2f}",
                f"{overdue_count} overdue invoices need attention" if overdue_count else "All invoices are current",
            ],
            predictions=RevenuePrediction(
                next_month_revenue=round(average_invoice * len(invoices) * 1.1, 2),
                confidence=0.7,
            ),
            recommendations=[
                "Set up automated payment reminders",
                "Consider offering early payment discounts",
                "Review pricing strategy quarterly",
            ],
        )

    def identify_automation_opportunities(self, activities: list[ActivityRecord]) -> list[AutomationOpportunity]:
        ranked = sorted(activities, key=lambda activity: activity.frequency * activity.time_spent, reverse=True)[:5]
        listing = "\n".join(
            f"{index}. {activity.action} - Done {activity.frequency} times, {activity.time_spent:g} minutes each"
            for index, activity in enumerate(ranked, start=1)
        )
        prompt = (
            "Analyze these repetitive tasks and suggest automation opportunities:\n\n"
            f"{listing}\n\n"
            "For each task, provide:\n"
            "- task: The task name\n"
            "- currentEffort: Time/effort description\n"
            "- automationPotential: high/medium/low\n"
            "- suggestedSolution: Specific automation recommendation\n\n"
            "Format as JSON array."
        )
        content = self.client.complete(
            operation="automation_analysis",
            model=self.analysis_model,
            messages=[
                {"role": "system", "content": AUTOMATION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=600,
            temperature=0.4,
        )
        parsed = extract_json(content)
        if isinstance(parsed, list):
            try:
                return _opportunities_adapter.validate_python(parsed)
            except PydanticValidationError:
                pass

        logger.info("ai.fallback", extra={"operation": "automation_analysis"})
        return [
            AutomationOpportunity(
                task=activity.action,
                current_effort=f"{activity.frequency} times per month, {activity.time_spent:g} min each",
                automation_potential="high" if activity.frequency > 10 else "medium",
                suggested_solution="Set up automated workflow to handle this task",
            )
            for activity in ranked
        ]

    @staticmethod
    def _fallback_business_analysis(business_type: str) -> BusinessAnalysisResult:
        modules = BUSINESS_MODULE_RECOMMENDATIONS.get(business_type, GENERIC_MODULE_RECOMMENDATIONS)
        return BusinessAnalysisResult(
            insights=[
                AnalysisInsight(
                    type="efficiency_opportunity",
                    title="Streamline Client Communication",
                    description=(
                        "Centralize all client interactions in one place to save time and improve response rates."
                    ),
                    priority="high",
                ),
                AnalysisInsight(
                    type="automation_suggestion",
                    title="Automate Follow-ups",
                    description="Set up automated email sequences for new leads to increase conversion rates.",
                    priority="medium",
                ),
            ],
            recommendations=[
                ModuleRecommendation(
                    module=module,
                    reason=f"Essential for {business_type} business operations",
                    expected_impact="Saves 5-10 hours per week",
                )
                for module in modules
            ],
            automation_opportunities=[
                AutomationIdea(task="Client follow-up emails", effort="Low", impact="High"),
                AutomationIdea(task="Invoice reminders", effort="Low", impact="Medium"),
            ],
        )
