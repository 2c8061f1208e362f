"""
tests/test_admin.py
Tests for admin-only endpoints: tutor verification, user moderation, stats.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import (
    BookingStatus,
    EscrowStatus,
    TutorProfile,
    User,
    UserStatus,
    VerificationStatus,
)
from tests.conftest import PASSWORD, auth_headers, create_booking, create_tutor, future


async def _pending_tutor(db: AsyncSession, email="applicant@example.com", name="Abel Tadesse"):
    tutor = await create_tutor(db, email, name, verification=VerificationStatus.PENDING)
    await db.commit()
    return tutor


# ── Access Control ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_student_cannot_access_admin_endpoints(client: AsyncClient, student_user: User):
    response = await client.get("/admin/tutors/pending", headers=auth_headers(student_user))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_tutor_cannot_access_admin_endpoints(client: AsyncClient, tutor_user: User):
    response = await client.get("/admin/stats", headers=auth_headers(tutor_user))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unauthenticated_cannot_access_admin(client: AsyncClient):
    response = await client.get("/admin/tutors/pending")
    assert response.status_code == 401


# ── Verification Queue ────────────────────────────────────────

@pytest.mark.asyncio
async def test_pending_queue_lists_applicants(
    client: AsyncClient, db_session: AsyncSession, admin_user: User, tutor_profile: TutorProfile
):
    await _pending_tutor(db_session)

    response = await client.get("/admin/tutors/pending", headers=auth_headers(admin_user))
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["total_pages"] == 1
    item = data["items"][0]
    assert item["full_name"] == "Abel Tadesse"
    assert item["email"] == "applicant@example.com"
    assert item["subjects"] == ["Mathematics"]


@pytest.mark.asyncio
async def test_approve_tutor_activates_account(
    client: AsyncClient, db_session: AsyncSession, admin_user: User
):
    tutor = await _pending_tutor(db_session)

    response = await client.post(f"/admin/tutors/{tutor.id}/approve", headers=auth_headers(admin_user))
    assert response.status_code == 200

    row = (await db_session.execute(
        select(TutorProfile.verification_status, TutorProfile.verified_at)
        .where(TutorProfile.id == tutor.id)
    )).one()
    assert row.verification_status == VerificationStatus.APPROVED
    assert row.verified_at is not None
    status = await db_session.scalar(select(User.status).where(User.id == tutor.user_id))
    assert status == UserStatus.ACTIVE

    # Now visible in search
    search = await client.get("/search/tutors")
    assert [t["full_name"] for t in search.json()["items"]] == ["Abel Tadesse"]


@pytest.mark.asyncio
async def test_approve_twice_conflicts(
    client: AsyncClient, admin_user: User, tutor_profile: TutorProfile
):
    response = await client.post(
        f"/admin/tutors/{tutor_profile.id}/approve", headers=auth_headers(admin_user)
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_reject_tutor_records_reason(
    client: AsyncClient, db_session: AsyncSession, admin_user: User
):
    tutor = await _pending_tutor(db_session)

    response = await client.post(
        f"/admin/tutors/{tutor.id}/reject",
        headers=auth_headers(admin_user),
        json={"reason": "Certificates could not be verified"},
    )
    assert response.status_code == 200

    row = (await db_session.execute(
        select(TutorProfile.verification_status, TutorProfile.verification_notes)
        .where(TutorProfile.id == tutor.id)
    )).one()
    assert row.verification_status == VerificationStatus.REJECTED
    assert row.verification_notes == "Certificates could not be verified"


@pytest.mark.asyncio
async def test_approve_unknown_tutor(client: AsyncClient, admin_user: User):
    response = await client.post(
        "/admin/tutors/00000000-0000-0000-0000-000000000000/approve",
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 404


# ── Moderation ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_suspend_user_blocks_login_and_requests(
    client: AsyncClient, db_session: AsyncSession, admin_user: User, student_user: User
):
    headers = auth_headers(student_user)

    response = await client.post(
        f"/admin/users/{student_user.id}/suspend",
        headers=auth_headers(admin_user),
        json={"reason": "Repeated no-shows"},
    )
    assert response.status_code == 200
    status = await db_session.scalar(select(User.status).where(User.id == student_user.id))
    assert status == UserStatus.SUSPENDED

    assert (await client.get("/auth/me", headers=headers)).status_code == 403
    login = await client.post("/auth/login", json={"email": student_user.email, "password": PASSWORD})
    assert login.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_be_suspended(client: AsyncClient, admin_user: User):
    response = await client.post(
        f"/admin/users/{admin_user.id}/suspend",
        headers=auth_headers(admin_user),
        json={"reason": "Testing limits"},
    )
    assert response.status_code == 400


# ── Stats ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_platform_stats(
    client: AsyncClient,
    db_session: AsyncSession,
    admin_user: User,
    student_profile,
    tutor_profile: TutorProfile,
):
    await _pending_tutor(db_session)
    await create_booking(db_session, student_profile, tutor_profile)
    await create_booking(db_session, student_profile, tutor_profile)
    await create_booking(
        db_session, student_profile, tutor_profile,
        status=BookingStatus.PENDING, scheduled_for=future(), escrow_status=EscrowStatus.HELD,
    )
    await db_session.commit()

    response = await client.get("/admin/stats", headers=auth_headers(admin_user))
    assert response.status_code == 200
    data = response.json()
    # admin + student + two tutors
    assert data["total_users"] == 4
    assert data["total_tutors"] == 2
    assert data["approved_tutors"] == 1
    assert data["pending_tutors"] == 1
    assert data["total_bookings"] == 3
    assert data["active_bookings"] == 1
    assert Decimal(data["total_revenue"]) == Decimal("40.00")
