"""
services/student/router.py
Student's own profile.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import get_student_profile, require_student
from shared.models.models import StudentProfile, User
from shared.schemas.schemas import StudentProfileResponse, StudentProfileUpdate
from shared.utils.errors import NotFoundError

router = APIRouter(prefix="/students", tags=["Students"])


async def _my_profile(user: User, db: AsyncSession) -> StudentProfile:
    profile = await get_student_profile(user, db)
    if not profile:
        raise NotFoundError("Student profile not found")
    return profile


@router.get("/me", response_model=StudentProfileResponse)
async def get_my_profile(
    current_user: User = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    return StudentProfileResponse.model_validate(await _my_profile(current_user, db))


@router.put("/me", response_model=StudentProfileResponse)
async def update_my_profile(
    update_data: StudentProfileUpdate,
    current_user: User = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    """Partial update; only fields present in the body change."""
    profile = await _my_profile(current_user, db)
    for field, value in update_data.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    await db.commit()
    return StudentProfileResponse.model_validate(profile)
