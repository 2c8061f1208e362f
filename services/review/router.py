"""
services/review/router.py
Rating and review management.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from services.tutor.router import tutor_cache_key
from shared.middleware.auth import get_student_profile, require_admin, require_student
from shared.models.models import Booking, BookingStatus, Review, TutorProfile, User
from shared.schemas.schemas import MessageResponse, ReviewCreateRequest, ReviewResponse
from shared.utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

router = APIRouter(prefix="/reviews", tags=["Reviews"])


async def _refresh_tutor_rating(db: AsyncSession, tutor_id: UUID) -> None:
    """Recalculate and denormalize the aggregate rating on TutorProfile."""
    avg_result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id))
        .where(Review.tutor_id == tutor_id, Review.is_visible == True)  # noqa: E712
    )
    avg, count = avg_result.one()
    await db.execute(
        update(TutorProfile)
        .where(TutorProfile.id == tutor_id)
        .values(rating=round(float(avg or 0), 2), total_reviews=count)
    )


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreateRequest,
    current_user: User = Depends(require_student),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Submit a review for a completed booking.
    - One review per booking (enforced by DB unique constraint)
    - Booking must be in COMPLETED status
    - Only the student who made the booking can review
    """
    booking = (
        await db.execute(select(Booking).where(Booking.id == data.booking_id))
    ).scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")

    student = await get_student_profile(current_user, db)
    if not student or booking.student_id != student.id:
        raise AuthorizationError("You can only review your own bookings")
    if booking.status != BookingStatus.COMPLETED:
        raise ValidationError.for_field("booking_id", "Booking must be completed before reviewing")

    review = Review(
        booking_id=booking.id,
        student_id=student.id,
        tutor_id=booking.tutor_id,
        rating=data.rating,
        comment=data.comment,
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        # Unique booking_id; also catches two submissions racing each other
        await db.rollback()
        raise ConflictError("You have already reviewed this booking")

    await _refresh_tutor_rating(db, booking.tutor_id)
    await db.commit()
    await RedisCache(redis).delete(tutor_cache_key(booking.tutor_id))

    return ReviewResponse.model_validate(review)


@router.delete("/{review_id}", response_model=MessageResponse)
async def hide_review(
    review_id: UUID,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Admin: soft-delete a review (hides from public without removing from DB)."""
    review = (await db.execute(select(Review).where(Review.id == review_id))).scalar_one_or_none()
    if not review:
        raise NotFoundError("Review not found")

    review.is_visible = False
    await db.flush()
    await _refresh_tutor_rating(db, review.tutor_id)
    await db.commit()
    await RedisCache(redis).delete(tutor_cache_key(review.tutor_id))
    return MessageResponse(message="Review hidden successfully")
