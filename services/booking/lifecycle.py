"""
services/booking/lifecycle.py
Booking state machine. Every status change goes through transition(),
which checks the table below, stamps the booking, writes the audit log
and settles escrow.

    PENDING  → ACCEPTED   (tutor)
    PENDING  → REJECTED   (tutor, reason required)
    PENDING  → CANCELLED  (student | admin | system)
    ACCEPTED → CANCELLED  (student before the start | admin)
    ACCEPTED → COMPLETED  (tutor | admin | system)
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from services.booking import escrow
from shared.models.models import (
    Booking,
    BookingAuditLog,
    BookingStatus,
    StudentProfile,
    TutorProfile,
    User,
    UserRole,
)
from shared.utils.errors import AuthorizationError, ConflictError, ValidationError

logger = logging.getLogger(__name__)


class Party(str, Enum):
    """Who is acting on a booking."""
    STUDENT = "STUDENT"
    TUTOR = "TUTOR"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


TRANSITIONS: Dict[Tuple[BookingStatus, BookingStatus], FrozenSet[Party]] = {
    (BookingStatus.PENDING, BookingStatus.ACCEPTED): frozenset({Party.TUTOR}),
    (BookingStatus.PENDING, BookingStatus.REJECTED): frozenset({Party.TUTOR}),
    (BookingStatus.PENDING, BookingStatus.CANCELLED): frozenset(
        {Party.STUDENT, Party.ADMIN, Party.SYSTEM}
    ),
    (BookingStatus.ACCEPTED, BookingStatus.CANCELLED): frozenset({Party.STUDENT, Party.ADMIN}),
    (BookingStatus.ACCEPTED, BookingStatus.COMPLETED): frozenset(
        {Party.TUTOR, Party.ADMIN, Party.SYSTEM}
    ),
}


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def session_end(booking: Booking) -> datetime:
    return as_utc(booking.scheduled_for) + timedelta(minutes=booking.duration)


async def resolve_party(db: AsyncSession, user: User, booking: Booking) -> Party:
    """
    Map a user onto the booking. Admins act as ADMIN on any booking;
    students and tutors only on their own.
    """
    if user.role == UserRole.ADMIN:
        return Party.ADMIN

    if user.role == UserRole.STUDENT:
        owner = await db.scalar(
            select(StudentProfile.user_id).where(StudentProfile.id == booking.student_id)
        )
        if owner == user.id:
            return Party.STUDENT
    elif user.role == UserRole.TUTOR:
        owner = await db.scalar(
            select(TutorProfile.user_id).where(TutorProfile.id == booking.tutor_id)
        )
        if owner == user.id:
            return Party.TUTOR

    raise AuthorizationError("Not authorized for this booking")


async def log_status_change(
    db: AsyncSession,
    booking: Booking,
    from_status: Optional[BookingStatus],
    to_status: BookingStatus,
    changed_by_id: Optional[uuid.UUID],
    reason: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> BookingAuditLog:
    """Append an immutable audit log entry for every status change."""
    log = BookingAuditLog(
        booking_id=booking.id,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value,
        changed_by_id=changed_by_id,
        reason=reason,
        audit_metadata=metadata,
    )
    db.add(log)
    return log


async def transition(
    db: AsyncSession,
    booking: Booking,
    to_status: BookingStatus,
    party: Party,
    changed_by_id: Optional[uuid.UUID] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    from_status = BookingStatus(booking.status)
    allowed = TRANSITIONS.get((from_status, to_status))
    if allowed is None:
        raise ValidationError.for_field(
            "status",
            f"Cannot move booking from {from_status.value} to {to_status.value}",
        )
    if party not in allowed:
        raise AuthorizationError(
            f"{party.value.title()} cannot move booking to {to_status.value}"
        )

    now = now or datetime.now(timezone.utc)

    if to_status == BookingStatus.REJECTED:
        if not reason or not reason.strip():
            raise ValidationError.for_field("reason", "A reason is required to reject a booking")
        booking.rejection_reason = reason
    elif to_status == BookingStatus.ACCEPTED:
        booking.accepted_at = now
    elif to_status == BookingStatus.COMPLETED:
        if party == Party.TUTOR and now < session_end(booking):
            raise ValidationError.for_field(
                "status", "Session cannot be completed before it has ended"
            )
        booking.completed_at = now
    elif (
        to_status == BookingStatus.CANCELLED
        and from_status == BookingStatus.ACCEPTED
        and party == Party.STUDENT
        and now >= as_utc(booking.scheduled_for)
    ):
        raise ValidationError.for_field(
            "status", "An accepted session cannot be cancelled once it has started"
        )

    # Compare-and-set on the stored status: a concurrent change makes this
    # match no row, so escrow is never settled twice.
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == from_status)
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Booking was changed by another request; reload and retry")

    if to_status in (BookingStatus.REJECTED, BookingStatus.CANCELLED):
        booking.cancelled_at = now
        booking.cancelled_by = party.value
        if to_status == BookingStatus.CANCELLED:
            booking.cancellation_reason = reason

    booking.status = to_status
    await escrow.settle(db, booking)
    await log_status_change(
        db, booking, from_status, to_status, changed_by_id, reason,
        {"party": party.value, "escrow": escrow.status_value(booking)},
    )
    await db.flush()

    logger.info(
        f"Booking {booking.id}: {from_status.value} → {to_status.value} by {party.value}"
    )
    return booking
