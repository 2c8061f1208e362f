"""
services/dashboard/router.py
Landing page summaries for students and tutors.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.wallet.ledger import get_wallet_for_user
from shared.middleware.auth import (
    get_student_profile,
    get_tutor_profile,
    require_student,
    require_tutor,
)
from shared.models.models import Booking, BookingStatus, Transaction, TransactionType, User
from shared.schemas.schemas import (
    BookingResponse,
    StudentDashboardResponse,
    TutorDashboardResponse,
)
from shared.utils.errors import NotFoundError
from shared.utils.fees import to_money

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

RECENT_LIMIT = 5


async def _recent(db: AsyncSession, *criteria) -> list[BookingResponse]:
    result = await db.execute(
        select(Booking).where(*criteria).order_by(Booking.created_at.desc()).limit(RECENT_LIMIT)
    )
    return [BookingResponse.model_validate(b) for b in result.scalars().all()]


@router.get("/student", response_model=StudentDashboardResponse)
async def student_dashboard(
    current_user: User = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    student = await get_student_profile(current_user, db)
    if not student:
        raise NotFoundError("Student profile not found")
    wallet = await get_wallet_for_user(db, current_user.id)

    async def count(status: BookingStatus) -> int:
        return await db.scalar(
            select(func.count()).select_from(Booking)
            .where(Booking.student_id == student.id, Booking.status == status)
        ) or 0

    total_spent = await db.scalar(
        select(func.coalesce(func.sum(Booking.total_amount), 0)).where(
            Booking.student_id == student.id, Booking.status == BookingStatus.COMPLETED
        )
    )

    return StudentDashboardResponse(
        full_name=student.full_name,
        balance=wallet.balance,
        currency=wallet.currency,
        upcoming_sessions=await count(BookingStatus.ACCEPTED),
        completed_sessions=await count(BookingStatus.COMPLETED),
        total_spent=to_money(total_spent or 0),
        recent_bookings=await _recent(db, Booking.student_id == student.id),
    )


@router.get("/tutor", response_model=TutorDashboardResponse)
async def tutor_dashboard(
    current_user: User = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    """Balance, lifetime earnings and the requests waiting for an answer."""
    tutor = await get_tutor_profile(current_user, db)
    if not tutor:
        raise NotFoundError("Tutor profile not found")
    wallet = await get_wallet_for_user(db, current_user.id)

    total_earnings = await db.scalar(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.wallet_id == wallet.id, Transaction.type == TransactionType.PAYMENT
        )
    )
    pending = await db.execute(
        select(Booking)
        .where(Booking.tutor_id == tutor.id, Booking.status == BookingStatus.PENDING)
        .order_by(Booking.scheduled_for.asc())
    )

    return TutorDashboardResponse(
        full_name=tutor.full_name,
        verification_status=tutor.verification_status,
        available_balance=wallet.balance,
        currency=wallet.currency,
        total_earnings=to_money(total_earnings or 0),
        rating=tutor.rating,
        total_reviews=tutor.total_reviews,
        pending_requests=[BookingResponse.model_validate(b) for b in pending.scalars().all()],
        recent_bookings=await _recent(db, Booking.tutor_id == tutor.id),
    )
