"""
tasks/booking_tasks.py
Celery beat tasks that move stale bookings through the lifecycle as the
system party:
- PENDING requests whose start time has passed are cancelled and refunded
- ACCEPTED sessions left open after they ended are completed and paid out

All tasks are idempotent: they only select bookings still in the source
state, and escrow never settles twice.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import engine, get_db_context
from config.settings import settings
from services.booking.lifecycle import Party, session_end, transition
from shared.models.models import Booking, BookingStatus
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


# ── Async bodies (callable directly with a session) ───────────────────────────

async def expire_unanswered(db: AsyncSession, now: Optional[datetime] = None) -> List[str]:
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(Booking)
        .where(Booking.status == BookingStatus.PENDING, Booking.scheduled_for <= now)
        .with_for_update(skip_locked=True)
    )
    expired = []
    for booking in result.scalars().all():
        await transition(
            db, booking, BookingStatus.CANCELLED, Party.SYSTEM,
            reason="Tutor did not respond before the session start", now=now,
        )
        expired.append(str(booking.id))
    return expired


async def complete_finished(db: AsyncSession, now: Optional[datetime] = None) -> List[str]:
    now = now or datetime.now(timezone.utc)
    grace = timedelta(hours=settings.BOOKING_AUTO_COMPLETE_HOURS)

    # Session end depends on duration; filter the start in SQL, the end here.
    result = await db.execute(
        select(Booking)
        .where(Booking.status == BookingStatus.ACCEPTED, Booking.scheduled_for <= now - grace)
        .with_for_update(skip_locked=True)
    )
    completed = []
    for booking in result.scalars().all():
        if session_end(booking) + grace > now:
            continue
        await transition(db, booking, BookingStatus.COMPLETED, Party.SYSTEM, now=now)
        completed.append(str(booking.id))
    return completed


async def _run(job) -> List[str]:
    try:
        async with get_db_context() as db:
            return await job(db)
    finally:
        # Each asyncio.run() gets a fresh loop; pooled connections cannot follow it.
        await engine.dispose()


# ── Celery tasks ──────────────────────────────────────────────────────────────

@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def expire_unanswered_bookings(self):
    """Beat task: every 15 minutes."""
    try:
        expired = asyncio.run(_run(expire_unanswered))
    except Exception as e:
        logger.exception(f"expire_unanswered_bookings failed: {e}")
        raise self.retry(exc=e)
    logger.info(f"expire_unanswered_bookings: cancelled {len(expired)} bookings")
    return {"cancelled": expired}


@celery_app.task(bind=True, max_retries=3, default_retry_delay=300)
def complete_finished_sessions(self):
    """Beat task: hourly."""
    try:
        completed = asyncio.run(_run(complete_finished))
    except Exception as e:
        logger.exception(f"complete_finished_sessions failed: {e}")
        raise self.retry(exc=e)
    logger.info(f"complete_finished_sessions: completed {len(completed)} bookings")
    return {"completed": completed}
