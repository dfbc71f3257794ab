from atelier.ai.api import router
from atelier.ai.assistant import AiAssistant
from atelier.ai.client import CompletionClient, OpenAICompletionClient, get_completion_client
from atelier.ai.models import AiConversation, BusinessInsight
from atelier.ai.service import AiService, ai_service

__all__ = [
    "router",
    "AiAssistant",
    "CompletionClient",
    "OpenAICompletionClient",
    "get_completion_client",
    "AiConversation",
    "BusinessInsight",
    "AiService",
    "ai_service",
]
