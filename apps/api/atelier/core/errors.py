from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from starlette.requests import Request

from atelier.context import get_correlation_id


class AppError(Exception):
    """Base class for domain errors rendered as an error envelope by the API layer."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationError(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class UnauthorizedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class EntitlementError(AppError):
    """Raised when a tenant's subscription tier or module set does not cover a feature."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "module_not_entitled"


class AiServiceError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "ai_service_unavailable"


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(request: Request, exc: AppError) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=exc.code,
        message=exc.message,
        details=exc.details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=exc.status_code, content=payload.__dict__)


def register_exception_handlers(app: FastAPI) -> None:
    async def _handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        return error_response(request, exc)

    app.add_exception_handler(AppError, _handle_app_error)  # type: ignore[arg-type]
