import os
from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger

from .database import SessionLocal

_logger = get_task_logger(__name__)

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery(
    "grantflow",
    broker=CELERY_BROKER_URL,
    include=["grantflow.workers.notifications"],
)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

celery_app.conf.beat_schedule = {
    "review-reminders": {
        "task": "grantflow.tasks.send_review_reminders",
        "schedule": crontab(minute=0, hour="*/6"),
    },
}


@celery_app.task
def send_review_reminders():
    from .clock import Clock
    from .config import get_settings
    from .notify import CeleryNotifier
    from .repository import SqlAlchemyRepository
    from .services.review_assignment import ReviewAssignmentManager

    db = SessionLocal()
    try:
        manager = ReviewAssignmentManager(
            SqlAlchemyRepository(db),
            CeleryNotifier(),
            get_settings(),
            Clock(),
        )
        reminded = manager.send_reminders()
    finally:
        db.close()
    _logger.info("sent %s review reminders", reminded)
    return reminded
