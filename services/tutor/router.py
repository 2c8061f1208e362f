"""
services/tutor/router.py
Tutor profile management: own profile, subjects, public profile, reviews.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from services.search.router import SUBJECTS_CACHE_KEY
from shared.middleware.auth import require_tutor
from shared.models.models import Review, Subject, TutorProfile, User, VerificationStatus
from shared.schemas.schemas import ReviewResponse, TutorProfileResponse, TutorProfileUpdate
from shared.utils.errors import NotFoundError

router = APIRouter(prefix="/tutors", tags=["Tutors"])


# ── Helpers ───────────────────────────────────────────────────

def tutor_cache_key(tutor_id) -> str:
    return f"tutor:{tutor_id}"


async def _load_tutor(db: AsyncSession, *criteria) -> TutorProfile:
    result = await db.execute(
        select(TutorProfile).options(selectinload(TutorProfile.subjects)).where(*criteria)
    )
    tutor = result.scalar_one_or_none()
    if not tutor:
        raise NotFoundError("Tutor not found")
    return tutor


def _to_response(tutor: TutorProfile, public: bool = False) -> TutorProfileResponse:
    profile = TutorProfileResponse.model_validate(
        {
            **{col.name: getattr(tutor, col.name) for col in TutorProfile.__table__.columns},
            "subjects": sorted(s.name for s in tutor.subjects),
        }
    )
    if public:
        profile.phone = None
    return profile


async def _resolve_subjects(db: AsyncSession, names: List[str]) -> List[Subject]:
    """Match names case-insensitively against the master list, adding new ones."""
    subjects = []
    for name in names:
        result = await db.execute(select(Subject).where(func.lower(Subject.name) == name.lower()))
        subject = result.scalar_one_or_none()
        if not subject:
            subject = Subject(name=name)
            db.add(subject)
        subjects.append(subject)
    return subjects


# ── Tutor's Own Profile ───────────────────────────────────────

@router.get("/me", response_model=TutorProfileResponse)
async def get_my_profile(
    current_user: User = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    tutor = await _load_tutor(db, TutorProfile.user_id == current_user.id)
    return _to_response(tutor)


@router.put("/me", response_model=TutorProfileResponse)
async def update_my_profile(
    update_data: TutorProfileUpdate,
    current_user: User = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Update the tutor's own profile. Subjects are replaced by name.
    Clears the cached public profile.
    """
    tutor = await _load_tutor(db, TutorProfile.user_id == current_user.id)

    fields = update_data.model_dump(exclude_unset=True, exclude={"subjects"})
    for field, value in fields.items():
        setattr(tutor, field, value)

    if update_data.subjects is not None:
        tutor.subjects = await _resolve_subjects(db, update_data.subjects)

    await db.commit()
    cache = RedisCache(redis)
    await cache.delete(tutor_cache_key(tutor.id))
    if update_data.subjects is not None:
        await cache.delete(SUBJECTS_CACHE_KEY)
    return _to_response(tutor)


# ── Public Endpoints ──────────────────────────────────────────

@router.get("/{tutor_id}", response_model=TutorProfileResponse)
async def get_tutor(tutor_id: UUID, db: AsyncSession = Depends(get_db), redis=Depends(get_redis)):
    """Public profile of an approved tutor. Cached."""
    cache = RedisCache(redis)
    cache_key = tutor_cache_key(tutor_id)

    cached = await cache.get(cache_key)
    if cached:
        return TutorProfileResponse(**cached)

    tutor = await _load_tutor(db, TutorProfile.id == tutor_id)
    if tutor.verification_status != VerificationStatus.APPROVED:
        raise NotFoundError("Tutor not found")

    profile = _to_response(tutor, public=True)
    await cache.set(cache_key, profile.model_dump(mode="json"))
    return profile


@router.get("/{tutor_id}/reviews")
async def get_tutor_reviews(
    tutor_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """Paginated visible reviews for a tutor."""
    tutor = await _load_tutor(db, TutorProfile.id == tutor_id)

    query = (
        select(Review)
        .where(Review.tutor_id == tutor.id, Review.is_visible == True)  # noqa: E712
        .order_by(Review.created_at.desc())
    )
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()

    result = await db.execute(query.offset((page - 1) * page_size).limit(page_size))
    return {
        "items": [ReviewResponse.model_validate(r) for r in result.scalars().all()],
        "total": total,
        "page": page,
        "page_size": page_size,
    }
