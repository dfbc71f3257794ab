from __future__ import annotations

import logging
import socket
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy.orm import Session

from atelier.compliance.schemas import DispatchSummary, ReminderRead
from atelier.compliance.service import ComplianceService, compliance_service
from atelier.core.config import get_settings
from atelier.metrics import observe_dispatch_batch, observe_reminder_dispatched
from atelier.otel import get_tracer, traced


logger = logging.getLogger("atelier.compliance.dispatch")
tracer = get_tracer("atelier.compliance.dispatch")


class ReminderSender(Protocol):
    def send(self, reminder: ReminderRead) -> None: ...


class LoggingReminderSender:
    """Default transport: records the delivery in the log stream."""

    def __init__(self, channel: str) -> None:
        self.channel = channel

    def send(self, reminder: ReminderRead) -> None:
        logger.info(
            "reminder.delivered",
            extra={
                "channel": self.channel,
                "reminder_id": str(reminder.id),
                "tenant_id": str(reminder.tenant_id),
                "record_id": str(reminder.compliance_id),
            },
        )


def default_senders() -> dict[str, ReminderSender]:
    return {channel: LoggingReminderSender(channel) for channel in ("email", "notification", "sms")}


def new_dispatcher_id() -> str:
    return f"{socket.gethostname()}-{uuid.uuid4().hex[:12]}"


@dataclass
class ReminderDispatcher:
    """Claims due reminders and hands them to channel senders.

    Delivery is at-least-once: if the process dies between a successful send and
    ``mark_sent``, the claim lapses after the lease and the reminder goes out again.
    A reminder whose sends failed ``max_attempts`` times is no longer claimed.
    """

    session_factory: Callable[[], Session]
    senders: Mapping[str, ReminderSender] = field(default_factory=default_senders)
    batch_size: int = field(default_factory=lambda: get_settings().reminder_dispatch_batch_size)
    lease: timedelta = field(default_factory=lambda: timedelta(seconds=get_settings().reminder_claim_lease_seconds))
    max_attempts: int = field(default_factory=lambda: get_settings().reminder_max_attempts)
    dispatcher_id: str = field(default_factory=new_dispatcher_id)
    service: ComplianceService = field(default_factory=lambda: compliance_service)

    def run_once(self, *, now: datetime | None = None) -> DispatchSummary:
        started = time.perf_counter()
        summary = DispatchSummary(dispatcher_id=self.dispatcher_id)
        with (
            traced(tracer, "compliance.dispatch", **{"atelier.dispatcher_id": self.dispatcher_id}) as span,
            self.session_factory() as session,
        ):
            claimed = self.service.claim_due_reminders(
                session,
                self.dispatcher_id,
                limit=self.batch_size,
                lease=self.lease,
                max_attempts=self.max_attempts,
                now=now,
            )
            summary.claimed = len(claimed)
            span.set_attribute("atelier.reminders_claimed", summary.claimed)
            for reminder in claimed:
                if self._deliver(reminder):
                    self.service.mark_sent(session, reminder.id, now=now)
                    summary.sent += 1
                else:
                    self.service.release_claim(session, reminder.id, self.dispatcher_id)
                    summary.failed += 1
                    if reminder.attempts + 1 >= self.max_attempts:
                        logger.error(
                            "reminder.attempts_exhausted",
                            extra={"reminder_id": str(reminder.id), "channel": str(reminder.reminder_type), "count": reminder.attempts + 1},
                        )

        observe_dispatch_batch(time.perf_counter() - started)
        logger.info(
            "reminder.dispatch_completed",
            extra={"dispatcher_id": self.dispatcher_id, "count": summary.sent, "status": f"failed={summary.failed}"},
        )
        return summary

    def _deliver(self, reminder: ReminderRead) -> bool:
        sender = self.senders.get(str(reminder.reminder_type))
        if sender is None:
            logger.warning(
                "reminder.no_sender",
                extra={"reminder_id": str(reminder.id), "channel": str(reminder.reminder_type)},
            )
            observe_reminder_dispatched(str(reminder.reminder_type), "failed")
            return False
        try:
            sender.send(reminder)
        except Exception as exc:
            logger.exception(
                "reminder.delivery_failed",
                extra={"reminder_id": str(reminder.id), "channel": str(reminder.reminder_type), "error": str(exc)},
            )
            observe_reminder_dispatched(str(reminder.reminder_type), "failed")
            return False
        observe_reminder_dispatched(str(reminder.reminder_type), "sent")
        return True
