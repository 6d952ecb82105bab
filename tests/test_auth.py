"""Tests for auth endpoints: login, me, refresh, logout."""

import pytest
from httpx import AsyncClient

from conftest import TEST_PASSWORD, headers_for


@pytest.mark.asyncio
async def test_login_with_email(client: AsyncClient, test_user):
    resp = await client.post(
        "/api/v1/auth/login",
        json={"login": "test@test.com", "password": TEST_PASSWORD},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["user"]["email"] == "test@test.com"
    assert data["user"]["username"] == "tester"
    assert "access_token" in data
    assert data["csrf_token"]
    assert data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_login_with_username(client: AsyncClient, test_user):
    resp = await client.post(
        "/api/v1/auth/login",
        json={"login": "tester", "password": TEST_PASSWORD},
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == test_user[0]


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    resp = await client.post(
        "/api/v1/auth/login",
        json={"login": "test@test.com", "password": "wrong"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me(client: AsyncClient, auth_headers: dict):
    resp = await client.get("/api/v1/auth/me", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == "test@test.com"


@pytest.mark.asyncio
async def test_me_unauthorized(client: AsyncClient):
    resp = await client.get("/api/v1/auth/me")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_token(client: AsyncClient, test_user):
    login = await client.post(
        "/api/v1/auth/login",
        json={"login": "tester", "password": TEST_PASSWORD},
    )
    refresh_token = login.json()["refresh_token"]

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert resp.status_code == 200
    assert resp.json()["refresh_token"] != refresh_token

    # Old refresh token was consumed
    again = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert again.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_refresh_token(client: AsyncClient, test_user):
    login = (
        await client.post("/api/v1/auth/login", json={"login": "tester", "password": TEST_PASSWORD})
    ).json()
    headers = headers_for(login["access_token"], login["csrf_token"])

    resp = await client.post(
        "/api/v1/auth/logout", json={"refresh_token": login["refresh_token"]}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    again = await client.post("/api/v1/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert again.status_code == 401


@pytest.mark.asyncio
async def test_logout_without_csrf_is_rejected(client: AsyncClient, test_user):
    login = (
        await client.post("/api/v1/auth/login", json={"login": "tester", "password": TEST_PASSWORD})
    ).json()
    resp = await client.post(
        "/api/v1/auth/logout",
        json={"refresh_token": login["refresh_token"]},
        headers={"Authorization": f"Bearer {login['access_token']}"},
    )
    assert resp.status_code == 403
    assert resp.json() == {"success": False, "message": "Security check failed"}
