"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from config.settings import settings
from shared.models.models import Gender, TutoringMode, UserRole


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


def field_errors(exc: PydanticValidationError) -> Dict[str, List[str]]:
    """Flatten a pydantic ValidationError into {field: [messages]}."""
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "__root__"
        errors.setdefault(field, []).append(err["msg"])
    return errors


# ── Auth ──────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    """Registration body. Keys are camelCase on the wire."""
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=6)
    confirm_password: str = Field(..., alias="confirmPassword")
    full_name: str = Field(..., alias="fullName", min_length=2, max_length=255)
    role: UserRole
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        if "password" in info.data and v != info.data["password"]:
            raise PydanticCustomError("password_mismatch", "Passwords don't match")
        return v

    @field_validator("role")
    @classmethod
    def self_service_role(cls, v: UserRole) -> UserRole:
        if v == UserRole.ADMIN:
            raise PydanticCustomError("role", "Role must be STUDENT or TUTOR")
        return v


class RegisterResponse(BaseSchema):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    message: str
    user_id: uuid.UUID = Field(..., alias="userId")


class LoginRequest(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=6)


class UserResponse(BaseSchema):
    id: uuid.UUID
    email: EmailStr
    role: str
    status: str
    created_at: datetime


class SessionUserResponse(UserResponse):
    profile_id: Optional[uuid.UUID] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: SessionUserResponse


class SignOutResponse(BaseSchema):
    success: bool = True


# ── Profiles ──────────────────────────────────────────────────

class StudentProfileResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    full_name: str
    phone: Optional[str]
    grade_level: Optional[str]
    location_city: Optional[str]
    location_area: Optional[str]
    avatar_url: Optional[str]


class StudentProfileUpdate(BaseSchema):
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    grade_level: Optional[str] = Field(None, max_length=50)
    location_city: Optional[str] = Field(None, max_length=100)
    location_area: Optional[str] = Field(None, max_length=100)


class TutorProfileResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    full_name: str
    phone: Optional[str] = None
    bio: Optional[str]
    avatar_url: Optional[str]
    hourly_rate: Decimal
    gender: Optional[str]
    location_city: Optional[str]
    location_area: Optional[str]
    tutoring_mode: str
    grade_levels: Optional[str] = None
    rating: Decimal
    total_reviews: int
    verification_status: str
    subjects: List[str] = []


class TutorProfileUpdate(BaseSchema):
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    bio: Optional[str] = Field(None, min_length=50, max_length=2000)
    hourly_rate: Optional[Decimal] = Field(None, ge=10, max_digits=10, decimal_places=2)
    gender: Optional[Gender] = None
    location_city: Optional[str] = Field(None, max_length=100)
    location_area: Optional[str] = Field(None, max_length=100)
    tutoring_mode: Optional[TutoringMode] = None
    grade_levels: Optional[str] = Field(None, max_length=255)
    subjects: Optional[List[str]] = Field(None, max_length=20)

    @field_validator("subjects")
    @classmethod
    def clean_subjects(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        seen: Dict[str, str] = {}
        for name in v:
            name = name.strip()
            if name:
                seen.setdefault(name.lower(), name)
        return list(seen.values())


# ── Search ────────────────────────────────────────────────────

class TutorCardResponse(BaseSchema):
    id: uuid.UUID
    full_name: str
    avatar_url: Optional[str]
    bio: Optional[str]
    hourly_rate: Decimal
    rating: Decimal
    total_reviews: int
    subjects: List[str]
    location_city: Optional[str]
    location_area: Optional[str]
    tutoring_mode: str
    grade_levels: Optional[str] = None
    completed_sessions: int = 0


class TutorSearchResponse(BaseSchema):
    items: List[TutorCardResponse]
    total: int
    page: int
    page_size: int


# ── Booking ───────────────────────────────────────────────────

class BookingCreateRequest(BaseSchema):
    tutor_id: uuid.UUID
    subject_name: str = Field(..., min_length=1, max_length=100)
    scheduled_for: datetime
    duration: int = Field(
        ...,
        ge=settings.BOOKING_MIN_DURATION_MINUTES,
        le=settings.BOOKING_MAX_DURATION_MINUTES,
        description="Minutes",
    )
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("scheduled_for")
    @classmethod
    def validate_scheduled_for(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        if v <= datetime.now(timezone.utc):
            raise ValueError("Scheduled time must be in the future")
        return v


class BookingResponse(BaseSchema):
    id: uuid.UUID
    student_id: uuid.UUID
    tutor_id: uuid.UUID
    subject_name: str
    scheduled_for: datetime
    duration: int
    notes: Optional[str]
    status: str
    escrow_status: str
    total_amount: Decimal
    platform_fee: Decimal
    tutor_earning: Decimal
    rejection_reason: Optional[str]
    cancellation_reason: Optional[str]
    accepted_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime


class BookingListResponse(BaseSchema):
    items: List[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingRejectRequest(BaseSchema):
    reason: str = Field(..., min_length=5, max_length=500)


class BookingCancelRequest(BaseSchema):
    reason: str = Field(..., min_length=5, max_length=500)


class ClassroomResponse(BaseSchema):
    booking_id: uuid.UUID
    room_name: str
    meeting_link: str
    subject_name: str
    scheduled_for: datetime
    duration: int


# ── Wallet ────────────────────────────────────────────────────

class TransactionResponse(BaseSchema):
    id: uuid.UUID
    type: str
    amount: Decimal
    description: Optional[str]
    booking_id: Optional[uuid.UUID]
    created_at: datetime


class WalletResponse(BaseSchema):
    id: uuid.UUID
    balance: Decimal
    currency: str
    transactions: List[TransactionResponse] = []


class TransactionListResponse(BaseSchema):
    items: List[TransactionResponse]
    total: int
    page: int
    page_size: int


class DepositRequest(BaseSchema):
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    payment_method: Literal["chapa", "telebirr"]

    @field_validator("amount")
    @classmethod
    def within_deposit_limits(cls, v: Decimal) -> Decimal:
        if v < settings.DEPOSIT_MIN:
            raise ValueError(f"Minimum deposit is {settings.DEPOSIT_MIN} {settings.DEFAULT_CURRENCY}")
        if v > settings.DEPOSIT_MAX:
            raise ValueError(f"Maximum deposit is {settings.DEPOSIT_MAX} {settings.DEFAULT_CURRENCY}")
        return v


class WithdrawRequest(BaseSchema):
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    account_number: str = Field(..., min_length=5, max_length=50)
    payment_method: Literal["telebirr"]

    @field_validator("amount")
    @classmethod
    def above_minimum(cls, v: Decimal) -> Decimal:
        if v < settings.WITHDRAWAL_MIN:
            raise ValueError(f"Minimum withdrawal is {settings.WITHDRAWAL_MIN} {settings.DEFAULT_CURRENCY}")
        return v


# ── Review ────────────────────────────────────────────────────

class ReviewCreateRequest(BaseSchema):
    booking_id: uuid.UUID
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class ReviewResponse(BaseSchema):
    id: uuid.UUID
    booking_id: uuid.UUID
    student_id: uuid.UUID
    tutor_id: uuid.UUID
    rating: int
    comment: Optional[str]
    created_at: datetime


# ── Dashboards ────────────────────────────────────────────────

class StudentDashboardResponse(BaseSchema):
    full_name: str
    balance: Decimal
    currency: str
    upcoming_sessions: int
    completed_sessions: int
    total_spent: Decimal
    recent_bookings: List[BookingResponse]


class TutorDashboardResponse(BaseSchema):
    full_name: str
    verification_status: str
    available_balance: Decimal
    currency: str
    total_earnings: Decimal
    rating: Decimal
    total_reviews: int
    pending_requests: List[BookingResponse]
    recent_bookings: List[BookingResponse]


# ── Admin ─────────────────────────────────────────────────────

class AdminRejectTutorRequest(BaseSchema):
    reason: str = Field(..., min_length=5, max_length=500)


class AdminSuspendRequest(BaseSchema):
    reason: str = Field(..., min_length=5, max_length=500)


class PendingTutorResponse(BaseSchema):
    tutor_id: uuid.UUID
    user_id: uuid.UUID
    full_name: str
    email: str
    bio: Optional[str]
    subjects: List[str]
    applied_at: datetime


class AdminStatsResponse(BaseSchema):
    total_users: int
    total_tutors: int
    approved_tutors: int
    pending_tutors: int
    total_bookings: int
    active_bookings: int
    total_revenue: Decimal


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    detail: str
    code: Optional[str] = None
    errors: Optional[Dict[str, List[str]]] = None
