"""
services/admin/router.py
Admin-only endpoints: tutor verification, user moderation and
platform statistics. Every mutation is logged.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from services.tutor.router import tutor_cache_key
from shared.middleware.auth import require_admin
from shared.models.models import (
    Booking,
    BookingStatus,
    TutorProfile,
    User,
    UserRole,
    UserStatus,
    VerificationStatus,
)
from shared.schemas.schemas import (
    AdminRejectTutorRequest,
    AdminStatsResponse,
    AdminSuspendRequest,
    MessageResponse,
    PendingTutorResponse,
)
from shared.utils.errors import ConflictError, NotFoundError, ValidationError
from shared.utils.fees import to_money

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


async def _get_tutor_or_404(tutor_id: UUID, db: AsyncSession) -> TutorProfile:
    result = await db.execute(select(TutorProfile).where(TutorProfile.id == tutor_id))
    tutor = result.scalar_one_or_none()
    if not tutor:
        raise NotFoundError("Tutor not found")
    return tutor


# ── Tutor Verification Queue ──────────────────────────────────

@router.get("/tutors/pending")
async def get_pending_tutors(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Tutors awaiting verification, oldest first."""
    query = (
        select(TutorProfile, User)
        .join(User, User.id == TutorProfile.user_id)
        .where(TutorProfile.verification_status == VerificationStatus.PENDING)
    )
    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
    result = await db.execute(
        query.options(selectinload(TutorProfile.subjects))
        .order_by(TutorProfile.created_at.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    return {
        "items": [
            PendingTutorResponse(
                tutor_id=tutor.id,
                user_id=tutor.user_id,
                full_name=tutor.full_name,
                email=user.email,
                bio=tutor.bio,
                subjects=sorted(s.name for s in tutor.subjects),
                applied_at=tutor.created_at,
            )
            for tutor, user in result.all()
        ],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": -(-total // page_size),  # ceiling division
    }


@router.post("/tutors/{tutor_id}/approve", response_model=MessageResponse)
async def approve_tutor(
    tutor_id: UUID,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Approve a tutor: visible in search and the account becomes ACTIVE."""
    tutor = await _get_tutor_or_404(tutor_id, db)
    if tutor.verification_status == VerificationStatus.APPROVED:
        raise ConflictError("Tutor is already approved")

    tutor.verification_status = VerificationStatus.APPROVED
    tutor.verification_notes = None
    tutor.verified_at = datetime.now(timezone.utc)

    user = await db.get(User, tutor.user_id)
    if user and user.status == UserStatus.PENDING:
        user.status = UserStatus.ACTIVE

    await db.commit()
    await RedisCache(redis).delete(tutor_cache_key(tutor.id))
    logger.info(f"Admin {current_user.id} approved tutor {tutor.id}")
    return MessageResponse(message="Tutor approved")


@router.post("/tutors/{tutor_id}/reject", response_model=MessageResponse)
async def reject_tutor(
    tutor_id: UUID,
    data: AdminRejectTutorRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    tutor = await _get_tutor_or_404(tutor_id, db)
    if tutor.verification_status == VerificationStatus.REJECTED:
        raise ConflictError("Tutor is already rejected")

    tutor.verification_status = VerificationStatus.REJECTED
    tutor.verification_notes = data.reason
    tutor.verified_at = None

    await db.commit()
    await RedisCache(redis).delete(tutor_cache_key(tutor.id))
    logger.info(f"Admin {current_user.id} rejected tutor {tutor.id}: {data.reason}")
    return MessageResponse(message="Tutor rejected")


# ── User Moderation ───────────────────────────────────────────

@router.post("/users/{user_id}/suspend", response_model=MessageResponse)
async def suspend_user(
    user_id: UUID,
    data: AdminSuspendRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Suspended users are refused at login and on every authenticated request."""
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.role == UserRole.ADMIN:
        raise ValidationError.for_field("user_id", "Admins cannot be suspended")
    if user.status == UserStatus.SUSPENDED:
        raise ConflictError("User is already suspended")

    user.status = UserStatus.SUSPENDED
    await db.commit()
    logger.warning(f"Admin {current_user.id} suspended user {user.id}: {data.reason}")
    return MessageResponse(message="User suspended")


# ── Statistics ────────────────────────────────────────────────

@router.get("/stats", response_model=AdminStatsResponse)
async def platform_stats(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Platform totals. Revenue is the fee retained on completed bookings."""

    async def count(*criteria, model=User) -> int:
        return await db.scalar(select(func.count()).select_from(model).where(*criteria)) or 0

    revenue = await db.scalar(
        select(func.coalesce(func.sum(Booking.platform_fee), 0))
        .where(Booking.status == BookingStatus.COMPLETED)
    )

    return AdminStatsResponse(
        total_users=await count(),
        total_tutors=await count(model=TutorProfile),
        approved_tutors=await count(
            TutorProfile.verification_status == VerificationStatus.APPROVED, model=TutorProfile
        ),
        pending_tutors=await count(
            TutorProfile.verification_status == VerificationStatus.PENDING, model=TutorProfile
        ),
        total_bookings=await count(model=Booking),
        active_bookings=await count(
            Booking.status.in_([BookingStatus.PENDING, BookingStatus.ACCEPTED]), model=Booking
        ),
        total_revenue=to_money(revenue or 0),
    )
