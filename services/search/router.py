"""
services/search/router.py
Tutor search over PostgreSQL: subject, city, grade level, price band,
tutoring mode, gender and minimum rating filters, ordered by rating.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from shared.models.models import (
    Booking,
    BookingStatus,
    Gender,
    Subject,
    TutoringMode,
    TutorProfile,
    VerificationStatus,
)
from shared.schemas.schemas import TutorCardResponse, TutorSearchResponse

router = APIRouter(prefix="/search", tags=["Search"])

SUBJECTS_CACHE_KEY = "subjects:all"


async def _completed_sessions(db: AsyncSession, tutor_ids: List) -> Dict:
    if not tutor_ids:
        return {}
    result = await db.execute(
        select(Booking.tutor_id, func.count())
        .where(Booking.tutor_id.in_(tutor_ids), Booking.status == BookingStatus.COMPLETED)
        .group_by(Booking.tutor_id)
    )
    return dict(result.all())


@router.get("/tutors", response_model=TutorSearchResponse)
async def search_tutors(
    subject: Optional[str] = Query(None, description="Subject name, partial match"),
    city: Optional[str] = Query(None, description="City, partial match"),
    grade_level: Optional[str] = Query(None, description="Grade level taught, partial match"),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    mode: Optional[TutoringMode] = Query(None, description="BOTH disables the filter"),
    gender: Optional[Gender] = None,
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """
    Search approved tutors.
    Subject, city and grade level match case-insensitively on substrings.
    """
    query = select(TutorProfile).where(
        TutorProfile.verification_status == VerificationStatus.APPROVED
    )

    if subject:
        query = query.where(TutorProfile.subjects.any(Subject.name.ilike(f"%{subject}%")))
    if city:
        query = query.where(TutorProfile.location_city.ilike(f"%{city}%"))
    if grade_level:
        query = query.where(TutorProfile.grade_levels.ilike(f"%{grade_level}%"))
    if min_price is not None:
        query = query.where(TutorProfile.hourly_rate >= min_price)
    if max_price is not None:
        query = query.where(TutorProfile.hourly_rate <= max_price)
    if mode and mode != TutoringMode.BOTH:
        query = query.where(TutorProfile.tutoring_mode == mode)
    if gender:
        query = query.where(TutorProfile.gender == gender)
    if min_rating is not None:
        query = query.where(TutorProfile.rating >= min_rating)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    result = await db.execute(
        query.options(selectinload(TutorProfile.subjects))
        .order_by(TutorProfile.rating.desc(), TutorProfile.total_reviews.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    tutors = result.scalars().all()
    completed = await _completed_sessions(db, [t.id for t in tutors])

    items = [
        TutorCardResponse(
            id=t.id,
            full_name=t.full_name,
            avatar_url=t.avatar_url,
            bio=t.bio,
            hourly_rate=t.hourly_rate,
            rating=t.rating,
            total_reviews=t.total_reviews,
            subjects=sorted(s.name for s in t.subjects),
            location_city=t.location_city,
            location_area=t.location_area,
            tutoring_mode=t.tutoring_mode,
            grade_levels=t.grade_levels,
            completed_sessions=completed.get(t.id, 0),
        )
        for t in tutors
    ]
    return TutorSearchResponse(items=items, total=total, page=page, page_size=page_size)


@router.get("/subjects", response_model=List[str])
async def list_subjects(db: AsyncSession = Depends(get_db), redis=Depends(get_redis)):
    """All subject names for the filter dropdown. Cached."""
    cache = RedisCache(redis)
    cached = await cache.get(SUBJECTS_CACHE_KEY)
    if cached:
        return cached

    result = await db.execute(select(Subject.name).order_by(Subject.name))
    names = list(result.scalars().all())
    await cache.set(SUBJECTS_CACHE_KEY, names)
    return names


@router.get("/tutors/suggestions")
async def tutor_suggestions(
    q: str = Query(..., min_length=2, description="Autocomplete query"),
    db: AsyncSession = Depends(get_db),
):
    """Fast autocomplete for tutor names. Returns top 5 matches."""
    result = await db.execute(
        select(TutorProfile)
        .where(
            TutorProfile.verification_status == VerificationStatus.APPROVED,
            TutorProfile.full_name.ilike(f"%{q}%"),
        )
        .order_by(TutorProfile.rating.desc())
        .limit(5)
    )
    return [
        {
            "id": str(t.id),
            "full_name": t.full_name,
            "location_city": t.location_city,
            "avatar_url": t.avatar_url,
            "rating": float(t.rating),
        }
        for t in result.scalars().all()
    ]
