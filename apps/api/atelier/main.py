from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from atelier.api.routes import router as api_router
from atelier.core.config import get_settings
from atelier.core.errors import register_exception_handlers
from atelier.core.events import DomainEvent, event_bus
from atelier.logging import configure_logging
from atelier.middleware.correlation_id import CorrelationIdMiddleware
from atelier.middleware.rate_limit import AiRateLimitMiddleware
from atelier.middleware.request_logging import RequestLoggingMiddleware
from atelier.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("atelier.lifecycle")
_subscriptions_registered = False

_logged_event_types = [
    "tenancy.tenant.created",
    "compliance.tracking.initialized",
    "compliance.status.changed",
    "compliance.reminder.sent",
]


def _on_system_started(event: DomainEvent) -> None:
    logger.info("system.started", extra={"operation": event.payload.get("service")})


def _on_domain_event(event: DomainEvent) -> None:
    payload = event.payload.get("payload") or {}
    logger.info(
        "domain_event",
        extra={
            "operation": event.name,
            "tenant_id": event.payload.get("tenant_id"),
            "record_id": payload.get("record_id"),
            "reminder_id": payload.get("reminder_id"),
            "checklist_id": payload.get("checklist_id"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _logged_event_types:
            event_bus.subscribe(event_name, _on_domain_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
register_exception_handlers(app)
app.add_middleware(AiRateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router, prefix="/api")

if settings.otel_enabled:
    setup_otel("atelier-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
