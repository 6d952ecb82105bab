"""Tests for the dashboard summary and the active-subscription gate."""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from liftingtracker.db.session import async_session_maker
from liftingtracker.models.subscription import Subscription


async def _give_subscription(user_id: int, status: str) -> None:
    async with async_session_maker() as session:
        session.add(
            Subscription(
                user_id=user_id,
                stripe_customer_id="cus_1",
                stripe_subscription_id="sub_1",
                status=status,
            )
        )
        await session.commit()


@pytest.mark.asyncio
async def test_dashboard_requires_subscription(client: AsyncClient, auth_headers: dict):
    resp = await client.get("/api/v1/dashboard/summary", headers=auth_headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Active subscription required"
    assert resp.headers["X-Upgrade-Required"] == "true"


@pytest.mark.asyncio
async def test_dashboard_blocks_past_due(client: AsyncClient, auth_headers: dict, test_user):
    await _give_subscription(test_user[0], "past_due")
    resp = await client.get("/api/v1/dashboard/summary", headers=auth_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_dashboard_summary(client: AsyncClient, auth_headers: dict, test_user):
    await _give_subscription(test_user[0], "active")
    today = date.today()
    for offset in range(6):
        await client.post(
            "/api/v1/workouts",
            json={"title": f"W{offset}", "date": (today - timedelta(days=offset * 40)).isoformat()},
            headers=auth_headers,
        )
    resp = await client.get("/api/v1/dashboard/summary", headers=auth_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_workouts"] == 6
    assert data["workouts_this_month"] == 1
    assert [w["title"] for w in data["recent_workouts"]] == ["W0", "W1", "W2", "W3", "W4"]
    assert data["membership"] == "Pro Member"
    assert data["display_name"] == "Test Lifter"


@pytest.mark.asyncio
async def test_dashboard_trial_membership(client: AsyncClient, auth_headers: dict, test_user):
    await _give_subscription(test_user[0], "trialing")
    resp = await client.get("/api/v1/dashboard/summary", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["membership"] == "Free Trial"


@pytest.mark.asyncio
async def test_this_month_count_excludes_future_workouts(client: AsyncClient, auth_headers: dict, test_user):
    await _give_subscription(test_user[0], "active")
    today = date.today()
    for day in (today, today + timedelta(days=1), today + timedelta(days=45)):
        await client.post(
            "/api/v1/workouts", json={"title": "Planned", "date": day.isoformat()}, headers=auth_headers
        )
    data = (await client.get("/api/v1/dashboard/summary", headers=auth_headers)).json()["data"]
    assert data["workouts_this_month"] == 1
    assert data["total_workouts"] == 3
