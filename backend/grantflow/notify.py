import logging
import os
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Any, Iterable

# purpose: best-effort outbound notifications for workflow transitions
# inputs: notification kind, recipient addresses, JSON-safe payload
# outputs: queued Celery task (or inline delivery when eager); EMAIL_OUTBOX capture under TESTING
# status: active

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []

NOTIFICATION_KINDS = (
    "reviewer_assignment",
    "reconciliation_assignment",
    "submission_confirmation",
    "decision_outcome",
    "reviewer_invitation",
    "proposal_archived",
    "review_reminder",
)


def send_email(to_email: str, subject: str, message: str, timeout: float | None = None):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        return
    if timeout is None:
        timeout = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(server, timeout=timeout) as s:
        s.send_message(msg)


class Notifier(ABC):
    """Fire-and-forget notification channel; ``notify`` never raises."""

    @abstractmethod
    def notify(self, kind: str, recipients: Iterable[str], payload: dict[str, Any]) -> None:
        ...


class CeleryNotifier(Notifier):
    """Hand notifications to the Celery worker, inline when the app runs eagerly."""

    def notify(self, kind: str, recipients: Iterable[str], payload: dict[str, Any]) -> None:
        from .tasks import celery_app
        from .workers.notifications import dispatch_notification

        addresses = [address for address in recipients if address]
        if not addresses:
            logger.info("notification %s skipped: no recipients", kind)
            return
        try:
            if celery_app.conf.task_always_eager:
                dispatch_notification(kind, addresses, payload)
            else:
                dispatch_notification.delay(kind, addresses, payload)
        except Exception:
            logger.exception("notification %s to %s failed", kind, ", ".join(addresses))


class RecordingNotifier(Notifier):
    """Keeps notifications in memory instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, list[str], dict[str, Any]]] = []

    def notify(self, kind: str, recipients: Iterable[str], payload: dict[str, Any]) -> None:
        self.sent.append((kind, [r for r in recipients if r], dict(payload)))

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.sent]
