"""Celery worker delivering workflow notifications."""

from __future__ import annotations

from typing import Any

from celery.utils.log import get_task_logger

from .. import notify
from ..notification_templates import render
from ..tasks import celery_app

# purpose: deliver notifications outside the request transaction
# inputs: notification kind, recipient addresses, JSON-safe payload
# outputs: one email per recipient through notify.send_email
# status: active

_logger = get_task_logger(__name__)


@celery_app.task(name="grantflow.workers.notifications.dispatch_notification")
def dispatch_notification(kind: str, recipients: list[str], payload: dict[str, Any]) -> int:
    """Render ``kind`` and email each recipient; returns the number of messages sent."""

    subject, body = render(kind, payload)
    sent = 0
    for address in recipients:
        notify.send_email(address, subject, body)
        sent += 1
    _logger.info("delivered %s notification to %s recipient(s)", kind, sent)
    return sent
