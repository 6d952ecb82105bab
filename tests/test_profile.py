"""Tests for profile API: read, partial update, completeness flag."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_get_profile_without_fitness_data(client: AsyncClient, auth_headers: dict):
    resp = await client.get("/api/v1/profile", headers=auth_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["username"] == "tester"
    assert data["current_weight"] is None
    assert data["profile_complete"] is False


@pytest.mark.asyncio
async def test_update_profile_partial(client: AsyncClient, auth_headers: dict):
    resp = await client.patch(
        "/api/v1/profile",
        json={"current_weight": "182.5", "fitness_level": "advanced", "primary_goal": "strength"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["current_weight"] == 182.5
    assert data["profile_complete"] is True

    resp = await client.patch("/api/v1/profile", json={"target_weight": 190}, headers=auth_headers)
    data = resp.json()["data"]
    assert data["target_weight"] == 190.0
    assert data["current_weight"] == 182.5


@pytest.mark.asyncio
async def test_update_name_refreshes_display_name(client: AsyncClient, auth_headers: dict):
    resp = await client.patch(
        "/api/v1/profile", json={"first_name": "Ada", "bio": "Powerlifter"}, headers=auth_headers
    )
    data = resp.json()["data"]
    assert data["display_name"] == "Ada Lifter"
    assert data["bio"] == "Powerlifter"


@pytest.mark.asyncio
async def test_update_profile_requires_csrf(client: AsyncClient, test_user):
    _, __, token, _csrf = test_user
    resp = await client.patch(
        "/api/v1/profile", json={"current_weight": 150}, headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 403
