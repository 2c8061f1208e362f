"""
services/booking/router.py
Session booking: creation with escrow hold, tutor accept/reject,
completion, cancellation, reads and the classroom link.
States: PENDING → ACCEPTED → COMPLETED | PENDING → REJECTED
        PENDING | ACCEPTED → CANCELLED
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.booking import escrow
from services.booking.lifecycle import Party, log_status_change, resolve_party, transition
from shared.middleware.auth import (
    get_current_user,
    get_student_profile,
    get_tutor_profile,
    require_student,
)
from shared.models.models import (
    Booking,
    BookingStatus,
    TutorProfile,
    User,
    UserRole,
    VerificationStatus,
)
from shared.schemas.schemas import (
    BookingCancelRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingRejectRequest,
    BookingResponse,
    ClassroomResponse,
)
from shared.utils.errors import AuthorizationError, NotFoundError, ValidationError
from shared.utils.fees import calculate_fee, session_price

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ── Helpers ───────────────────────────────────────────────────

async def _get_booking_or_404(booking_id: UUID, db: AsyncSession, lock: bool = False) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if lock:
        # populate_existing: read the committed row, not a stale identity-map copy
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def classroom_room_name(booking: Booking) -> str:
    return f"{settings.CLASSROOM_ROOM_PREFIX}_{booking.id}"


async def _move(
    booking_id: UUID,
    to_status: BookingStatus,
    current_user: User,
    db: AsyncSession,
    reason: Optional[str] = None,
) -> BookingResponse:
    booking = await _get_booking_or_404(booking_id, db, lock=True)
    party = await resolve_party(db, current_user, booking)
    await transition(db, booking, to_status, party, changed_by_id=current_user.id, reason=reason)
    await db.commit()
    return BookingResponse.model_validate(booking)


# ── Booking Creation ──────────────────────────────────────────

@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreateRequest,
    current_user: User = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    """
    Request a session. Steps:
    1. Validate the tutor is approved and has a rate
    2. Price the session and split the platform fee
    3. Create the PENDING booking
    4. Move the total from the student's wallet into escrow
    """
    student = await get_student_profile(current_user, db)
    if not student:
        raise NotFoundError("Student profile not found")

    # Step 1: Validate tutor
    result = await db.execute(select(TutorProfile).where(TutorProfile.id == data.tutor_id))
    tutor = result.scalar_one_or_none()
    if not tutor:
        raise NotFoundError("Tutor not found")
    if tutor.verification_status != VerificationStatus.APPROVED:
        raise ValidationError.for_field("tutor_id", "Tutor is not approved")
    if not tutor.hourly_rate or tutor.hourly_rate <= 0:
        raise ValidationError.for_field("tutor_id", "Tutor has not set an hourly rate")

    # Step 2: Price
    total_amount = session_price(tutor.hourly_rate, data.duration)
    split = calculate_fee(total_amount)

    # Step 3: Create booking
    booking = Booking(
        student_id=student.id,
        tutor_id=tutor.id,
        subject_name=data.subject_name,
        scheduled_for=data.scheduled_for,
        duration=data.duration,
        notes=data.notes,
        status=BookingStatus.PENDING,
        total_amount=total_amount,
        platform_fee=split.platform_fee,
        tutor_earning=split.tutor_earning,
    )
    db.add(booking)
    await db.flush()

    # Step 4: Escrow (InsufficientFunds rolls the whole request back)
    await escrow.hold(db, booking, current_user.id)

    await log_status_change(
        db, booking, None, BookingStatus.PENDING, current_user.id,
        metadata={"party": Party.STUDENT.value, "escrow": escrow.status_value(booking)},
    )
    await db.commit()

    logger.info(f"Booking {booking.id} created: {total_amount} for tutor {tutor.id}")
    return BookingResponse.model_validate(booking)


# ── Status Changes ────────────────────────────────────────────

@router.post("/{booking_id}/accept", response_model=BookingResponse)
async def accept_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Tutor accepts. Escrow stays held until completion."""
    return await _move(booking_id, BookingStatus.ACCEPTED, current_user, db)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    data: BookingRejectRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Tutor rejects a pending request. The student is refunded."""
    return await _move(booking_id, BookingStatus.REJECTED, current_user, db, data.reason)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Tutor (after the session ends) or admin completes. Releases the earning."""
    return await _move(booking_id, BookingStatus.COMPLETED, current_user, db)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    data: BookingCancelRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Student or admin cancels. Full refund of the held amount."""
    return await _move(booking_id, BookingStatus.CANCELLED, current_user, db, data.reason)


# ── Read Endpoints ────────────────────────────────────────────

@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Student sees own bookings, tutor sees requests made to them, admin sees all."""
    query = select(Booking)

    if current_user.role == UserRole.STUDENT:
        student = await get_student_profile(current_user, db)
        if not student:
            raise NotFoundError("Student profile not found")
        query = query.where(Booking.student_id == student.id)
    elif current_user.role == UserRole.TUTOR:
        tutor = await get_tutor_profile(current_user, db)
        if not tutor:
            raise NotFoundError("Tutor profile not found")
        query = query.where(Booking.tutor_id == tutor.id)

    if status_filter:
        query = query.where(Booking.status == status_filter)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Booking.scheduled_for.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await _get_booking_or_404(booking_id, db)
    await resolve_party(db, current_user, booking)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}/classroom", response_model=ClassroomResponse)
async def get_classroom(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Meeting room for an accepted session. Only its student and tutor may join."""
    booking = await _get_booking_or_404(booking_id, db)
    party = await resolve_party(db, current_user, booking)
    if party not in (Party.STUDENT, Party.TUTOR):
        raise AuthorizationError("Only the booking's student and tutor can join the classroom")
    if booking.status != BookingStatus.ACCEPTED:
        raise ValidationError.for_field("status", "Classroom is only available for accepted bookings")

    room_name = classroom_room_name(booking)
    return ClassroomResponse(
        booking_id=booking.id,
        room_name=room_name,
        meeting_link=f"{settings.CLASSROOM_BASE_URL.rstrip('/')}/{room_name}",
        subject_name=booking.subject_name,
        scheduled_for=booking.scheduled_for,
        duration=booking.duration,
    )
