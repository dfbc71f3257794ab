from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

compliance_tracking_initialized_total = Counter(
    "compliance_tracking_initialized_total",
    "Tracking records created by checklist initialization",
)

compliance_status_transitions_total = Counter(
    "compliance_status_transitions_total",
    "Tracking record status transitions",
    ["from_status", "to_status"],
)

compliance_reminders_scheduled_total = Counter(
    "compliance_reminders_scheduled_total",
    "Reminders scheduled by channel",
    ["channel"],
)

compliance_reminders_dispatched_total = Counter(
    "compliance_reminders_dispatched_total",
    "Reminder delivery outcomes by channel",
    ["channel", "outcome"],
)

compliance_reminder_dispatch_duration_seconds = Histogram(
    "compliance_reminder_dispatch_duration_seconds",
    "Duration of one reminder dispatch batch in seconds",
)

ai_completion_requests_total = Counter(
    "ai_completion_requests_total",
    "AI completion requests by operation and outcome",
    ["operation", "outcome"],
)

ai_completion_duration_seconds = Histogram(
    "ai_completion_duration_seconds",
    "AI completion latency in seconds",
    ["operation"],
)

tenant_scope_denied_count = Counter(
    "tenant_scope_denied_count",
    "Writes rejected for targeting another tenant",
    ["resource", "action"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_tracking_initialized(count: int) -> None:
    if count > 0:
        compliance_tracking_initialized_total.inc(count)


def observe_status_transition(from_status: str, to_status: str) -> None:
    compliance_status_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def observe_reminder_scheduled(channel: str, count: int = 1) -> None:
    if count > 0:
        compliance_reminders_scheduled_total.labels(channel=channel).inc(count)


def observe_reminder_dispatched(channel: str, outcome: str) -> None:
    compliance_reminders_dispatched_total.labels(channel=channel, outcome=outcome).inc()


def observe_dispatch_batch(duration: float) -> None:
    compliance_reminder_dispatch_duration_seconds.observe(duration)


def observe_ai_completion(operation: str, outcome: str, duration: float) -> None:
    ai_completion_requests_total.labels(operation=operation, outcome=outcome).inc()
    ai_completion_duration_seconds.labels(operation=operation).observe(duration)


def observe_tenant_scope_denied(resource: str, action: str) -> None:
    tenant_scope_denied_count.labels(resource=resource, action=action).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
