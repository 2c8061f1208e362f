"""
tests/test_profiles.py
Student and tutor profile endpoints, the public tutor page and its cache.
"""

import json
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import (
    Review,
    StudentProfile,
    Subject,
    TutorProfile,
    User,
    VerificationStatus,
)
from tests.conftest import auth_headers, create_booking, create_tutor

BIO = "Physics graduate with five years of classroom experience and exam prep."


# ── Students ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_student_reads_own_profile(client: AsyncClient, student_user: User):
    response = await client.get("/students/me", headers=auth_headers(student_user))
    assert response.status_code == 200
    assert response.json()["full_name"] == "Abebe Kebede"


@pytest.mark.asyncio
async def test_student_partial_update(
    client: AsyncClient, db_session: AsyncSession, student_user: User
):
    response = await client.put(
        "/students/me",
        headers=auth_headers(student_user),
        json={"grade_level": "Grade 11", "location_city": "Hawassa"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["grade_level"] == "Grade 11"
    assert data["full_name"] == "Abebe Kebede"

    city = await db_session.scalar(
        select(StudentProfile.location_city).where(StudentProfile.user_id == student_user.id)
    )
    assert city == "Hawassa"


@pytest.mark.asyncio
async def test_tutor_cannot_use_student_profile(client: AsyncClient, tutor_user: User):
    response = await client.get("/students/me", headers=auth_headers(tutor_user))
    assert response.status_code == 403


# ── Tutor's own profile ───────────────────────────────────────

@pytest.mark.asyncio
async def test_tutor_reads_own_profile(client: AsyncClient, tutor_user: User):
    response = await client.get("/tutors/me", headers=auth_headers(tutor_user))
    assert response.status_code == 200
    data = response.json()
    assert data["full_name"] == "Sara Tesfaye"
    assert data["subjects"] == ["Mathematics"]
    assert data["verification_status"] == "APPROVED"


@pytest.mark.asyncio
async def test_tutor_updates_profile_and_subjects(
    client: AsyncClient, db_session: AsyncSession, tutor_user: User
):
    response = await client.put(
        "/tutors/me",
        headers=auth_headers(tutor_user),
        json={
            "bio": BIO,
            "hourly_rate": "250.00",
            "tutoring_mode": "VIRTUAL",
            "grade_levels": "Grade 11-12",
            "subjects": ["physics", "Chemistry", "chemistry ", "mathematics"],
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["hourly_rate"]) == Decimal("250.00")
    assert data["tutoring_mode"] == "VIRTUAL"
    assert data["grade_levels"] == "Grade 11-12"
    # Existing subject rows are reused, duplicates collapse
    assert data["subjects"] == ["Chemistry", "Mathematics", "physics"]

    names = (await db_session.execute(select(Subject.name))).scalars().all()
    assert sorted(names) == ["Chemistry", "Mathematics", "physics"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"bio": "Too short"},
        {"hourly_rate": "5"},
        {"tutoring_mode": "TELEPATHY"},
    ],
)
async def test_tutor_update_validation(client: AsyncClient, tutor_user: User, body):
    response = await client.put("/tutors/me", headers=auth_headers(tutor_user), json=body)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_tutor_update_clears_caches(client: AsyncClient, tutor_user: User, tutor_profile, fake_redis):
    fake_redis.store[f"tutor:{tutor_profile.id}"] = json.dumps({"stale": True})
    fake_redis.store["subjects:all"] = json.dumps(["Stale"])

    response = await client.put(
        "/tutors/me", headers=auth_headers(tutor_user), json={"subjects": ["Biology"]}
    )
    assert response.status_code == 200
    assert f"tutor:{tutor_profile.id}" not in fake_redis.store
    assert "subjects:all" not in fake_redis.store


@pytest.mark.asyncio
async def test_student_cannot_edit_tutor_profile(client: AsyncClient, student_user: User):
    response = await client.put("/tutors/me", headers=auth_headers(student_user), json={"bio": BIO})
    assert response.status_code == 403


# ── Public tutor page ─────────────────────────────────────────

@pytest.mark.asyncio
async def test_public_profile_hides_phone_and_is_cached(
    client: AsyncClient, db_session: AsyncSession, tutor_profile: TutorProfile, fake_redis
):
    tutor_profile.phone = "0911999999"
    await db_session.commit()

    response = await client.get(f"/tutors/{tutor_profile.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["full_name"] == "Sara Tesfaye"
    assert data["phone"] is None

    cached = json.loads(fake_redis.store[f"tutor:{tutor_profile.id}"])
    assert cached["full_name"] == "Sara Tesfaye"


@pytest.mark.asyncio
async def test_public_profile_of_pending_tutor_is_hidden(client: AsyncClient, db_session: AsyncSession):
    pending = await create_tutor(
        db_session, "pending@example.com", "Hidden Tutor", verification=VerificationStatus.PENDING
    )
    await db_session.commit()

    response = await client.get(f"/tutors/{pending.id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unknown_tutor_returns_404(client: AsyncClient):
    response = await client.get("/tutors/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_tutor_reviews_list_only_visible(
    client: AsyncClient, db_session: AsyncSession, student_profile, tutor_profile
):
    first = await create_booking(db_session, student_profile, tutor_profile)
    second = await create_booking(db_session, student_profile, tutor_profile)
    db_session.add_all([
        Review(booking_id=first.id, student_id=student_profile.id, tutor_id=tutor_profile.id,
               rating=5, comment="Brilliant"),
        Review(booking_id=second.id, student_id=student_profile.id, tutor_id=tutor_profile.id,
               rating=1, comment="Hidden", is_visible=False),
    ])
    await db_session.commit()

    response = await client.get(f"/tutors/{tutor_profile.id}/reviews")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["comment"] == "Brilliant"
