"""
tests/conftest.py
Shared fixtures: in-memory SQLite database, in-process Redis stand-in,
an httpx client against the FastAPI app, and seeded users.
"""

import os

# Settings are read at import time; configure before importing the app.
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["APP_ENV"] = "test"

import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.database import Base, get_db
from config.redis_client import get_redis
from main import app
from shared.models.models import (
    Booking,
    BookingStatus,
    EscrowStatus,
    StudentProfile,
    Subject,
    TutoringMode,
    TutorProfile,
    User,
    UserRole,
    UserStatus,
    VerificationStatus,
    Wallet,
)
from shared.utils.security import create_access_token, hash_password

PASSWORD = "secret123"


class FakeRedis:
    """Dict-backed stand-in for the redis.asyncio calls the app makes."""

    def __init__(self):
        self.store: Dict[str, Any] = {}
        self.expiry: Dict[str, float] = {}

    def _alive(self, key: str) -> bool:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.store

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key) if self._alive(key) else None

    async def set(self, key: str, value: Any) -> bool:
        self.store[key] = value
        return True

    async def setex(self, key: str, ttl: int, value: Any) -> bool:
        self.store[key] = value
        self.expiry[key] = time.monotonic() + ttl
        return True

    async def exists(self, key: str) -> int:
        return 1 if self._alive(key) else 0

    async def delete(self, key: str) -> int:
        self.expiry.pop(key, None)
        return 1 if self.store.pop(key, None) is not None else 0

    async def incr(self, key: str) -> int:
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = value
        return value

    async def expire(self, key: str, ttl: int) -> bool:
        self.expiry[key] = time.monotonic() + ttl
        return True

    async def ping(self) -> bool:
        return True


def auth_headers(user: User) -> Dict[str, str]:
    token, _ = create_access_token(user_id=str(user.id), role=user.role.value, email=user.email)
    return {"Authorization": f"Bearer {token}"}


def future(days: int = 3) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


# ── Infrastructure ────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    """Session for seeding and assertions. Commit before making requests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def client(session_factory, fake_redis):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Seed helpers ──────────────────────────────────────────────

async def create_user(
    db: AsyncSession,
    email: str,
    role: UserRole,
    status: UserStatus = UserStatus.ACTIVE,
    balance: Decimal = Decimal("0"),
) -> User:
    user = User(email=email, password_hash=hash_password(PASSWORD), role=role, status=status)
    db.add(user)
    await db.flush()
    db.add(Wallet(user_id=user.id, balance=balance))
    return user


async def create_tutor(
    db: AsyncSession,
    email: str,
    full_name: str,
    hourly_rate: Decimal = Decimal("200.00"),
    verification: VerificationStatus = VerificationStatus.APPROVED,
    subjects: tuple = ("Mathematics",),
    city: str = "Addis Ababa",
    mode: TutoringMode = TutoringMode.BOTH,
    rating: Decimal = Decimal("0"),
) -> TutorProfile:
    status = UserStatus.ACTIVE if verification == VerificationStatus.APPROVED else UserStatus.PENDING
    user = await create_user(db, email, UserRole.TUTOR, status)
    subject_rows = []
    for name in subjects:
        subject = (await db.execute(select(Subject).where(Subject.name == name))).scalar_one_or_none()
        if not subject:
            subject = Subject(name=name)
            db.add(subject)
        subject_rows.append(subject)
    profile = TutorProfile(
        user_id=user.id,
        full_name=full_name,
        bio="Experienced tutor helping students master the fundamentals step by step.",
        hourly_rate=hourly_rate,
        verification_status=verification,
        location_city=city,
        tutoring_mode=mode,
        rating=rating,
        subjects=subject_rows,
    )
    db.add(profile)
    await db.flush()
    return profile


async def create_booking(
    db: AsyncSession,
    student: StudentProfile,
    tutor: TutorProfile,
    status: BookingStatus = BookingStatus.COMPLETED,
    scheduled_for: Optional[datetime] = None,
    duration: int = 60,
    escrow_status: EscrowStatus = EscrowStatus.RELEASED,
) -> Booking:
    """Insert a booking directly, bypassing the wallet. Amounts match a 200/h tutor."""
    booking = Booking(
        student_id=student.id,
        tutor_id=tutor.id,
        subject_name="Mathematics",
        scheduled_for=scheduled_for or datetime.now(timezone.utc) - timedelta(days=1),
        duration=duration,
        status=status,
        escrow_status=escrow_status,
        total_amount=Decimal("200.00"),
        platform_fee=Decimal("20.00"),
        tutor_earning=Decimal("180.00"),
    )
    db.add(booking)
    await db.flush()
    return booking


# ── Users ─────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def student_user(db_session) -> User:
    user = await create_user(
        db_session, "student@example.com", UserRole.STUDENT, balance=Decimal("1000.00")
    )
    db_session.add(StudentProfile(user_id=user.id, full_name="Abebe Kebede", phone="0911000000"))
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def student_profile(db_session, student_user) -> StudentProfile:
    result = await db_session.execute(
        select(StudentProfile).where(StudentProfile.user_id == student_user.id)
    )
    return result.scalar_one()


@pytest_asyncio.fixture
async def tutor_profile(db_session) -> TutorProfile:
    profile = await create_tutor(db_session, "tutor@example.com", "Sara Tesfaye")
    await db_session.commit()
    return profile


@pytest_asyncio.fixture
async def tutor_user(db_session, tutor_profile) -> User:
    return await db_session.get(User, tutor_profile.user_id)


@pytest_asyncio.fixture
async def admin_user(db_session) -> User:
    user = await create_user(db_session, "admin@example.com", UserRole.ADMIN)
    await db_session.commit()
    return user
