from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Protocol

from openai import OpenAI, OpenAIError

from atelier.core.config import get_settings
from atelier.core.errors import AiServiceError
from atelier.metrics import observe_ai_completion
from atelier.otel import get_tracer, traced


logger = logging.getLogger("atelier.ai")

tracer = get_tracer("atelier.ai")


class CompletionClient(Protocol):
    def complete(
        self,
        *,
        operation: str,
        model: str,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str: ...


class OpenAICompletionClient:
    """Chat completions against any OpenAI-compatible endpoint (the default is the Hugging Face router)."""

    def __init__(self, api_key: str | None, base_url: str, timeout: float) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client: OpenAI | None = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise AiServiceError("AI provider is not configured", details={"setting": "ai_api_key"})
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout)
        return self._client

    def complete(
        self,
        *,
        operation: str,
        model: str,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        started = time.perf_counter()
        with traced(tracer, f"ai.{operation}", **{"ai.model": model, "ai.operation": operation}):
            try:
                response = self.client.chat.completions.create(
                    model=model,
                    messages=messages,  # type: ignore[arg-type]
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            except OpenAIError as exc:
                observe_ai_completion(operation, "error", time.perf_counter() - started)
                logger.warning(
                    "ai.completion_failed",
                    extra={"operation": operation, "model": model, "error": type(exc).__name__},
                )
                raise AiServiceError("AI provider request failed", details={"operation": operation}) from exc

        observe_ai_completion(operation, "success", time.perf_counter() - started)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


@lru_cache
def get_completion_client() -> CompletionClient:
    settings = get_settings()
    return OpenAICompletionClient(
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        timeout=settings.ai_request_timeout_seconds,
    )
