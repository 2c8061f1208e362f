"""
tasks/celery_app.py
Celery app and beat schedule for the booking maintenance jobs.

    celery -A tasks.celery_app worker -Q bookings --loglevel=info
    celery -A tasks.celery_app beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from config.settings import settings

celery_app = Celery(
    "tutor_connect",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["tasks.booking_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="Africa/Addis_Ababa",
    # Ack after the job body ran; both jobs are safe to repeat.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=60 * 60,
    task_routes={"tasks.booking_tasks.*": {"queue": "bookings"}},
)

celery_app.conf.beat_schedule = {
    "expire-unanswered-bookings": {
        "task": "tasks.booking_tasks.expire_unanswered_bookings",
        "schedule": 15 * 60,
    },
    "complete-finished-sessions": {
        "task": "tasks.booking_tasks.complete_finished_sessions",
        "schedule": crontab(minute=0),
    },
}
