"""Pytest configuration and shared fixtures for API tests."""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

# Set test DB and Stripe config before app imports so config/engine use them
_db_dir = tempfile.mkdtemp(prefix="liftingtracker-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_db_dir}/test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_DEFAULT", "10000/minute")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_PRICE_ID", "price_test")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from liftingtracker.core.auth import create_access_token, hash_password, make_csrf_token, new_session_id
from liftingtracker.db.base import Base
from liftingtracker.db.session import async_session_maker, engine, init_db
from liftingtracker.main import app
from liftingtracker.models.user import User

pytest_plugins = ["pytest_asyncio"]

TEST_PASSWORD = "password123"


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def ensure_db():
    """Create tables once per test session (no scheduler)."""
    await init_db()
    yield
    await engine.dispose()


async def _truncate_all():
    """Delete all rows in reverse dependency order so tests start clean."""
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(text(f"DELETE FROM {table.name}"))


@pytest_asyncio.fixture
async def client(ensure_db):
    """Yield AsyncClient. No session override; use clean_db + test_user for isolated state."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def clean_db(ensure_db):
    """Empty all tables so the next test has a clean DB."""
    await _truncate_all()
    yield


async def make_user(
    email: str, username: str, password: str = TEST_PASSWORD, is_admin: bool = False
) -> tuple[int, str, str, str]:
    """Create a committed user and return (user_id, email, access_token, csrf_token)."""
    async with async_session_maker() as session:
        user = User(
            email=email,
            username=username,
            first_name="Test",
            last_name="Lifter",
            display_name="Test Lifter",
            password_hash=hash_password(password),
            is_admin=is_admin,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        sid = new_session_id()
        return user.id, user.email, create_access_token(user.id, user.email, sid), make_csrf_token(sid)


def headers_for(token: str, csrf: str) -> dict:
    return {"Authorization": f"Bearer {token}", "X-CSRF-Token": csrf}


@pytest_asyncio.fixture
async def test_user(clean_db, client):
    """Create a user via DB (committed) and return (user_id, email, access_token, csrf_token)."""
    return await make_user("test@test.com", "tester")


@pytest.fixture
def auth_headers(test_user):
    """Authorization and anti-forgery headers for test_user."""
    _, __, token, csrf = test_user
    return headers_for(token, csrf)


@pytest_asyncio.fixture
async def admin_headers(test_user):
    """Headers for an administrator created alongside test_user."""
    _, __, token, csrf = await make_user("admin@test.com", "site_admin", is_admin=True)
    return headers_for(token, csrf)
