"""Tests for the registration wizard API: draft lifecycle, navigation, completion, anti-forgery."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import make_user
from liftingtracker.config import settings
from liftingtracker.db.session import async_session_maker
from liftingtracker.models.fitness_profile import FitnessProfile
from liftingtracker.models.registration_draft import RegistrationDraft
from liftingtracker.models.user import User

STEP1 = {
    "email": "New.Lifter@Example.com",
    "password": "securepass123",
    "confirm_password": "securepass123",
    "terms_accepted": True,
}
STEP2 = {"first_name": "New", "last_name": "Lifter", "username": "newlifter", "bio": "Deadlifts"}
STEP3 = {"height_feet": "5", "height_inches": "11", "current_weight": "180", "target_weight": "175"}
STEP4 = {
    "fitness_level": "intermediate",
    "primary_goal": "strength",
    "protein_percentage": "35",
    "carbs_percentage": "40",
    "fat_percentage": "25",
    "dietary_restrictions": ["vegetarian"],
}


async def _start(client: AsyncClient) -> dict:
    resp = await client.post("/api/v1/registration/start")
    assert resp.status_code == 200
    data = resp.json()["data"]
    return {"X-Registration-Draft": data["draft_token"], "X-CSRF-Token": data["csrf_token"]}


async def _step(client: AsyncClient, headers: dict, **body):
    return await client.post("/api/v1/registration/step", json=body, headers=headers)


async def _walk_to_last_step(client: AsyncClient, headers: dict, step1: dict = STEP1, step2: dict = STEP2):
    for fields in (step1, step2, STEP3):
        resp = await _step(client, headers, next_step=True, **fields)
        assert resp.status_code == 200, resp.json()
    assert resp.json()["data"]["current_step"] == 4


@pytest.mark.asyncio
async def test_start_returns_step_one_with_defaults(client: AsyncClient, clean_db):
    resp = await client.post("/api/v1/registration/start")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["current_step"] == 1
    assert data["total_steps"] == 4
    assert data["step_title"] == "Create Account"
    assert data["fields"]["preferred_units"] == "imperial"
    assert data["fields"]["protein_percentage"] == "30"


@pytest.mark.asyncio
async def test_get_draft(client: AsyncClient, clean_db):
    headers = await _start(client)
    resp = await client.get("/api/v1/registration", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["current_step"] == 1


@pytest.mark.asyncio
async def test_unknown_draft_token(client: AsyncClient, clean_db):
    resp = await client.get("/api/v1/registration", headers={"X-Registration-Draft": "nope"})
    assert resp.status_code == 404
    assert resp.json()["message"] == "Registration session expired or not found"


@pytest.mark.asyncio
async def test_rules_endpoint(client: AsyncClient):
    resp = await client.get("/api/v1/registration/rules")
    assert resp.status_code == 200
    assert resp.json()["data"]["2"]["title"] == "Personal Information"


@pytest.mark.asyncio
async def test_step_without_csrf_is_rejected(client: AsyncClient, clean_db):
    headers = await _start(client)
    resp = await _step(
        client, {"X-Registration-Draft": headers["X-Registration-Draft"], "X-CSRF-Token": "forged"},
        next_step=True, **STEP1,
    )
    assert resp.status_code == 403
    assert resp.json()["message"] == "Security check failed"

    current = await client.get("/api/v1/registration", headers=headers)
    assert current.json()["data"]["current_step"] == 1


@pytest.mark.asyncio
async def test_invalid_step_keeps_values(client: AsyncClient, clean_db):
    headers = await _start(client)
    resp = await _step(client, headers, next_step=True, **{**STEP1, "confirm_password": "mismatch!"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Passwords do not match"
    assert body["data"]["current_step"] == 1
    assert body["data"]["fields"]["email"] == "New.Lifter@Example.com"
    assert "password" not in body["data"]["fields"]


@pytest.mark.asyncio
async def test_prev_from_step_one_stays(client: AsyncClient, clean_db):
    headers = await _start(client)
    resp = await _step(client, headers, prev_step=True)
    assert resp.status_code == 200
    assert resp.json()["data"]["current_step"] == 1


@pytest.mark.asyncio
async def test_prev_goes_back_and_keeps_data(client: AsyncClient, clean_db):
    headers = await _start(client)
    await _step(client, headers, next_step=True, **STEP1)
    await _step(client, headers, next_step=True, **STEP2)
    resp = await _step(client, headers, prev_step=True)
    data = resp.json()["data"]
    assert data["current_step"] == 2
    assert data["fields"]["username"] == "newlifter"


@pytest.mark.asyncio
async def test_complete_before_last_step(client: AsyncClient, clean_db):
    headers = await _start(client)
    await _step(client, headers, next_step=True, **STEP1)
    resp = await _step(client, headers, complete_registration=True)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Please finish all registration steps first"


@pytest.mark.asyncio
async def test_full_registration_creates_account_and_signs_in(client: AsyncClient, clean_db):
    headers = await _start(client)
    await _walk_to_last_step(client, headers)
    resp = await _step(client, headers, complete_registration=True, **STEP4)
    assert resp.status_code == 200, resp.json()
    data = resp.json()["data"]
    assert data["completed"] is True
    assert data["redirect"] == "/dashboard"
    assert data["user"]["email"] == "new.lifter@example.com"
    assert data["user"]["display_name"] == "New Lifter"

    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200

    async with async_session_maker() as session:
        user = (await session.execute(select(User).where(User.username == "newlifter"))).scalar_one()
        profile = (
            await session.execute(select(FitnessProfile).where(FitnessProfile.user_id == user.id))
        ).scalar_one()
        assert profile.current_weight == 180.0
        assert profile.height_feet == 5
        assert profile.protein_percentage == 35
        assert profile.dietary_restrictions == ["vegetarian"]
        assert profile.is_complete
        drafts = (await session.execute(select(RegistrationDraft))).scalars().all()
        assert drafts == []

    # The draft is gone once the account exists
    again = await client.get("/api/v1/registration", headers=headers)
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_macros_not_totalling_100_block_completion(client: AsyncClient, clean_db):
    headers = await _start(client)
    await _walk_to_last_step(client, headers)
    resp = await _step(client, headers, complete_registration=True, **{**STEP4, "fat_percentage": "24"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Macro percentages must total 100%"
    assert resp.json()["data"]["current_step"] == 4


@pytest.mark.asyncio
async def test_duplicate_email_keeps_draft_at_last_step(client: AsyncClient, clean_db):
    await make_user("new.lifter@example.com", "someoneelse")
    headers = await _start(client)
    await _walk_to_last_step(client, headers)
    resp = await _step(client, headers, complete_registration=True, **STEP4)
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Sorry, that email address is already used!"
    assert body["data"]["current_step"] == 4
    assert body["data"]["fields"]["fitness_level"] == "intermediate"

    current = await client.get("/api/v1/registration", headers=headers)
    assert current.status_code == 200
    assert current.json()["data"]["current_step"] == 4


@pytest.mark.asyncio
async def test_duplicate_username(client: AsyncClient, clean_db):
    await make_user("other@example.com", "newlifter")
    headers = await _start(client)
    await _walk_to_last_step(client, headers)
    resp = await _step(client, headers, complete_registration=True, **STEP4)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Sorry, that username already exists!"


@pytest.mark.asyncio
async def test_restart_discards_draft(client: AsyncClient, clean_db):
    headers = await _start(client)
    await _step(client, headers, next_step=True, **STEP1)
    resp = await client.post("/api/v1/registration/restart", headers=headers)
    assert resp.status_code == 200
    fresh = resp.json()["data"]
    assert fresh["current_step"] == 1
    assert fresh["draft_token"] != headers["X-Registration-Draft"]

    old = await client.get("/api/v1/registration", headers=headers)
    assert old.status_code == 404


@pytest.mark.asyncio
async def test_registration_disabled(client: AsyncClient, clean_db):
    headers = await _start(client)
    with patch.object(settings, "registration_enabled", False):
        start = await client.post("/api/v1/registration/start")
        current = await client.get("/api/v1/registration", headers=headers)
    assert start.status_code == 403
    assert start.json()["message"] == "Registration is currently disabled"
    assert current.status_code == 403


@pytest.mark.asyncio
async def test_overlong_profile_value_fails_inline_and_keeps_draft(client: AsyncClient, clean_db):
    headers = await _start(client)
    for fields in (STEP1, STEP2, {**STEP3, "date_of_birth": "January 15, 1990"}):
        resp = await _step(client, headers, next_step=True, **fields)
        assert resp.status_code == 200, resp.json()

    resp = await _step(client, headers, complete_registration=True, **STEP4)
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Date of birth must be at most 10 characters"
    assert body["data"]["current_step"] == 4
    assert body["data"]["fields"]["date_of_birth"] == "January 15, 1990"

    async with async_session_maker() as session:
        users = (await session.execute(select(User))).scalars().all()
    assert users == []
