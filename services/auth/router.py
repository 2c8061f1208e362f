"""
services/auth/router.py
Email/password authentication endpoints.
Implements: Register → Login → JWT issue → Sign-out (deny-list) → Me
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from shared.middleware.auth import (
    TokenData,
    get_current_user,
    get_optional_token_data,
    get_student_profile,
    get_tutor_profile,
)
from shared.models.models import (
    StudentProfile,
    TutorProfile,
    User,
    UserRole,
    UserStatus,
    VerificationStatus,
    Wallet,
)
from shared.schemas.schemas import (
    ErrorResponse,
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    SessionUserResponse,
    SignOutResponse,
    TokenResponse,
    field_errors,
)
from shared.utils.errors import AppError, ConflictError, InternalError, ValidationError
from shared.utils.security import (
    create_access_token,
    get_token_remaining_ttl,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


# ── Role dispatch ─────────────────────────────────────────────

async def _create_student(db: AsyncSession, user: User, data: RegisterRequest) -> StudentProfile:
    profile = StudentProfile(user_id=user.id, full_name=data.full_name, phone=data.phone)
    db.add(profile)
    return profile


async def _create_tutor(db: AsyncSession, user: User, data: RegisterRequest) -> TutorProfile:
    profile = TutorProfile(
        user_id=user.id,
        full_name=data.full_name,
        phone=data.phone,
        verification_status=VerificationStatus.PENDING,
    )
    db.add(profile)
    return profile


ProfileFactory = Callable[[AsyncSession, User, RegisterRequest], Awaitable[object]]

# role → (initial account status, profile factory)
PROFILE_FACTORIES: Dict[UserRole, tuple[UserStatus, ProfileFactory]] = {
    UserRole.STUDENT: (UserStatus.ACTIVE, _create_student),
    UserRole.TUTOR: (UserStatus.PENDING, _create_tutor),  # Tutors need approval
}


# ── Helpers ───────────────────────────────────────────────────

async def _parse_register_body(request: Request) -> RegisterRequest:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")

    try:
        return RegisterRequest.model_validate(body)
    except PydanticValidationError as e:
        errors = field_errors(e)
        detail = "; ".join(f"{field}: {', '.join(msgs)}" for field, msgs in errors.items())
        raise ValidationError(detail or "Invalid input", errors)


async def _session_user(user: User, db: AsyncSession) -> SessionUserResponse:
    """User plus the role profile fields the client keeps in its session."""
    profile = None
    if user.role == UserRole.STUDENT:
        profile = await get_student_profile(user, db)
    elif user.role == UserRole.TUTOR:
        profile = await get_tutor_profile(user, db)

    session = SessionUserResponse.model_validate(user)
    if profile:
        session.profile_id = profile.id
        session.full_name = profile.full_name
        session.avatar_url = profile.avatar_url
    return session


# ── Endpoints ─────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a student or tutor",
    responses={
        400: {"model": ErrorResponse, "description": "Per-field validation errors"},
        409: {"model": ErrorResponse, "description": "Email taken"},
    },
)
async def register(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Create a user, its role profile and an empty wallet in one transaction.
    Tutors start PENDING until an admin approves them.
    """
    data = await _parse_register_body(request)
    email = data.email.lower()

    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none():
        raise ConflictError("User already exists")

    initial_status, create_profile = PROFILE_FACTORIES[UserRole(data.role)]

    try:
        user = User(
            email=email,
            password_hash=hash_password(data.password),
            role=UserRole(data.role),
            status=initial_status,
        )
        db.add(user)
        await db.flush()

        await create_profile(db, user, data)
        db.add(Wallet(user_id=user.id))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Email already exists")
    except AppError:
        raise
    except Exception as e:
        await db.rollback()
        logger.exception(f"Registration failed for {email}: {e}")
        raise InternalError("Internal server error")

    logger.info(f"Registered {user.role.value} {user.id}")
    return RegisterResponse(message="User created successfully", user_id=user.id)


@router.post("/login", response_model=TokenResponse, summary="Log in with email and password")
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.status == UserStatus.SUSPENDED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is suspended",
        )

    access_token, _ = create_access_token(
        user_id=str(user.id),
        role=user.role.value,
        email=user.email,
    )
    return TokenResponse(
        access_token=access_token,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=await _session_user(user, db),
    )


@router.post("/signout", response_model=SignOutResponse, summary="Sign out")
async def signout(
    token_data: Optional[TokenData] = Depends(get_optional_token_data),
    redis=Depends(get_redis),
):
    """
    Add the presented access token's JTI to the Redis deny-list until it
    expires. Always succeeds, even without a token.
    """
    if token_data:
        ttl = get_token_remaining_ttl(token_data.payload)
        if ttl > 0:
            await RedisCache(redis).revoke_token(token_data.jti, ttl)
            logger.info(f"Revoked token {token_data.jti} for user {token_data.user_id}")
    return SignOutResponse(success=True)


@router.get("/me", response_model=SessionUserResponse, summary="Get current user")
async def get_me(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Returns the authenticated user with profile id and name."""
    return await _session_user(current_user, db)
