"""
tests/test_search.py
Tests for tutor search, subject list and name suggestions.
"""

import json
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Gender, TutoringMode, VerificationStatus
from tests.conftest import create_tutor


@pytest_asyncio.fixture
async def catalogue(db_session: AsyncSession):
    """Four approved tutors and one pending."""
    sara = await create_tutor(
        db_session, "sara@example.com", "Sara Tesfaye",
        hourly_rate=Decimal("200"), subjects=("Mathematics", "Physics"),
        city="Addis Ababa", mode=TutoringMode.VIRTUAL, rating=Decimal("4.80"),
    )
    sara.gender = Gender.FEMALE
    sara.grade_levels = "Grade 9-12, University"
    dawit = await create_tutor(
        db_session, "dawit@example.com", "Dawit Alemu",
        hourly_rate=Decimal("150"), subjects=("Chemistry",),
        city="Adama", mode=TutoringMode.IN_PERSON, rating=Decimal("4.20"),
    )
    dawit.grade_levels = "Grade 7-10"
    await create_tutor(
        db_session, "liya@example.com", "Liya Mekonnen",
        hourly_rate=Decimal("350"), subjects=("Mathematics",),
        city="Addis Ababa", mode=TutoringMode.BOTH, rating=Decimal("3.50"),
    )
    await create_tutor(
        db_session, "kebede@example.com", "Kebede Haile",
        hourly_rate=Decimal("90"), subjects=("English",),
        city="Bahir Dar", mode=TutoringMode.VIRTUAL, rating=Decimal("0"),
    )
    await create_tutor(
        db_session, "waiting@example.com", "Selam Waiting",
        subjects=("Mathematics",), verification=VerificationStatus.PENDING,
    )
    await db_session.commit()


def _names(response) -> list:
    return [t["full_name"] for t in response.json()["items"]]


@pytest.mark.asyncio
async def test_search_lists_only_approved_tutors_by_rating(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 4
    assert _names(response) == ["Sara Tesfaye", "Dawit Alemu", "Liya Mekonnen", "Kebede Haile"]


@pytest.mark.asyncio
async def test_search_by_subject_is_case_insensitive(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"subject": "math"})
    assert _names(response) == ["Sara Tesfaye", "Liya Mekonnen"]
    assert response.json()["items"][0]["subjects"] == ["Mathematics", "Physics"]


@pytest.mark.asyncio
async def test_search_by_city(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"city": "addis"})
    assert set(_names(response)) == {"Sara Tesfaye", "Liya Mekonnen"}


@pytest.mark.asyncio
async def test_search_by_grade_level(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"grade_level": "grade 9"})
    assert _names(response) == ["Sara Tesfaye"]
    assert response.json()["items"][0]["grade_levels"] == "Grade 9-12, University"

    response = await client.get("/search/tutors", params={"grade_level": "GRADE"})
    assert _names(response) == ["Sara Tesfaye", "Dawit Alemu"]


@pytest.mark.asyncio
async def test_search_by_price_band(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"min_price": 100, "max_price": 250})
    assert set(_names(response)) == {"Sara Tesfaye", "Dawit Alemu"}


@pytest.mark.asyncio
async def test_search_by_mode(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"mode": "VIRTUAL"})
    assert set(_names(response)) == {"Sara Tesfaye", "Kebede Haile"}

    # BOTH means no mode filter
    response = await client.get("/search/tutors", params={"mode": "BOTH"})
    assert response.json()["total"] == 4


@pytest.mark.asyncio
async def test_search_by_gender_and_rating(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"gender": "FEMALE"})
    assert _names(response) == ["Sara Tesfaye"]

    response = await client.get("/search/tutors", params={"min_rating": 4})
    assert set(_names(response)) == {"Sara Tesfaye", "Dawit Alemu"}


@pytest.mark.asyncio
async def test_search_pagination(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"page": 2, "page_size": 3})
    data = response.json()
    assert data["total"] == 4
    assert data["page"] == 2
    assert _names(response) == ["Kebede Haile"]


@pytest.mark.asyncio
async def test_search_page_size_is_capped(client: AsyncClient):
    response = await client.get("/search/tutors", params={"page_size": 51})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_search_empty_result(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors", params={"subject": "Astronomy"})
    assert response.status_code == 200
    assert response.json() == {"items": [], "total": 0, "page": 1, "page_size": 20}


@pytest.mark.asyncio
async def test_subjects_are_listed_and_cached(client: AsyncClient, catalogue, fake_redis):
    response = await client.get("/search/subjects")
    assert response.status_code == 200
    assert response.json() == ["Chemistry", "English", "Mathematics", "Physics"]
    assert json.loads(fake_redis.store["subjects:all"]) == response.json()

    fake_redis.store["subjects:all"] = json.dumps(["Cached"])
    assert (await client.get("/search/subjects")).json() == ["Cached"]


@pytest.mark.asyncio
async def test_suggestions_match_names(client: AsyncClient, catalogue):
    response = await client.get("/search/tutors/suggestions", params={"q": "te"})
    assert response.status_code == 200
    names = [t["full_name"] for t in response.json()]
    assert "Sara Tesfaye" in names
    assert "Selam Waiting" not in names


@pytest.mark.asyncio
async def test_suggestions_need_two_characters(client: AsyncClient):
    response = await client.get("/search/tutors/suggestions", params={"q": "s"})
    assert response.status_code == 422
