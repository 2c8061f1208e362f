"""
tests/test_dashboard.py
Student and tutor dashboard summaries.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import BookingStatus, EscrowStatus, User
from tests.conftest import auth_headers, create_booking, future


@pytest.mark.asyncio
async def test_student_dashboard(
    client: AsyncClient, db_session: AsyncSession, student_user: User, student_profile, tutor_profile
):
    await create_booking(db_session, student_profile, tutor_profile)
    await create_booking(
        db_session, student_profile, tutor_profile,
        status=BookingStatus.ACCEPTED, scheduled_for=future(), escrow_status=EscrowStatus.HELD,
    )
    await db_session.commit()

    response = await client.get("/dashboard/student", headers=auth_headers(student_user))
    assert response.status_code == 200
    data = response.json()
    assert data["full_name"] == "Abebe Kebede"
    assert Decimal(data["balance"]) == Decimal("1000.00")
    assert data["currency"] == "ETB"
    assert data["upcoming_sessions"] == 1
    assert data["completed_sessions"] == 1
    assert Decimal(data["total_spent"]) == Decimal("200.00")
    assert len(data["recent_bookings"]) == 2


@pytest.mark.asyncio
async def test_student_dashboard_recent_is_capped(
    client: AsyncClient, db_session: AsyncSession, student_user: User, student_profile, tutor_profile
):
    for _ in range(7):
        await create_booking(db_session, student_profile, tutor_profile)
    await db_session.commit()

    response = await client.get("/dashboard/student", headers=auth_headers(student_user))
    assert len(response.json()["recent_bookings"]) == 5


@pytest.mark.asyncio
async def test_tutor_dashboard_after_completed_session(
    client: AsyncClient, db_session: AsyncSession, student_user: User,
    tutor_user: User, tutor_profile, admin_user: User,
):
    headers = auth_headers(student_user)
    booked = await client.post(
        "/bookings",
        headers=headers,
        json={
            "tutor_id": str(tutor_profile.id),
            "subject_name": "Mathematics",
            "scheduled_for": future().isoformat(),
            "duration": 60,
        },
    )
    booking_id = booked.json()["id"]
    await client.post(f"/bookings/{booking_id}/accept", headers=auth_headers(tutor_user))

    pending = await client.post(
        "/bookings",
        headers=headers,
        json={
            "tutor_id": str(tutor_profile.id),
            "subject_name": "Mathematics",
            "scheduled_for": future(6).isoformat(),
            "duration": 30,
        },
    )
    assert pending.status_code == 201

    completed = await client.post(f"/bookings/{booking_id}/complete", headers=auth_headers(admin_user))
    assert completed.status_code == 200

    response = await client.get("/dashboard/tutor", headers=auth_headers(tutor_user))
    assert response.status_code == 200
    data = response.json()
    assert data["full_name"] == "Sara Tesfaye"
    assert data["verification_status"] == "APPROVED"
    assert Decimal(data["available_balance"]) == Decimal("180.00")
    assert Decimal(data["total_earnings"]) == Decimal("180.00")
    assert [b["id"] for b in data["pending_requests"]] == [pending.json()["id"]]
    assert len(data["recent_bookings"]) == 2


@pytest.mark.asyncio
async def test_dashboards_are_role_specific(client: AsyncClient, student_user: User, tutor_user: User):
    assert (await client.get("/dashboard/tutor", headers=auth_headers(student_user))).status_code == 403
    assert (await client.get("/dashboard/student", headers=auth_headers(tutor_user))).status_code == 403
