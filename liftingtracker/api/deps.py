"""FastAPI dependencies: current user from JWT, anti-forgery checks, active subscription gate."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.config import settings
from liftingtracker.core.auth import csrf_token_matches, decode_token, draft_csrf_scope
from liftingtracker.core.errors import PermissionDeniedError, SecurityError
from liftingtracker.db.session import get_db
from liftingtracker.models.subscription import Subscription
from liftingtracker.models.user import User

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
DRAFT_HEADER = "X-Registration-Draft"


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def _token_payload(request: Request) -> dict:
    token = _bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return decode_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


async def get_current_user(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    payload = _token_payload(request)
    user_id_str = payload.get("sub")
    if not user_id_str:
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        user_id = int(user_id_str)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")
    r = await session.execute(select(User).where(User.id == user_id))
    user = r.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def verify_csrf(request: Request) -> None:
    """Match X-CSRF-Token against the token derived from the access token's session id."""
    payload = _token_payload(request)
    sid = payload.get("sid")
    if not sid or not csrf_token_matches(sid, request.headers.get(CSRF_HEADER)):
        logger.warning("CSRF check failed for %s %s", request.method, request.url.path)
        raise SecurityError()


async def get_draft_token(
    draft_token: Annotated[str | None, Header(alias=DRAFT_HEADER)] = None,
) -> str:
    if not settings.registration_enabled:
        raise PermissionDeniedError("Registration is currently disabled")
    if not draft_token:
        raise HTTPException(status_code=400, detail="Missing registration draft token")
    return draft_token


async def verify_draft_csrf(request: Request) -> None:
    """Anti-forgery check for the anonymous registration wizard (scoped to the draft token)."""
    draft_token = request.headers.get(DRAFT_HEADER)
    if not draft_token or not csrf_token_matches(
        draft_csrf_scope(draft_token), request.headers.get(CSRF_HEADER)
    ):
        logger.warning("Registration CSRF check failed")
        raise SecurityError()


async def get_user_subscription(session: AsyncSession, user: User) -> Subscription | None:
    r = await session.execute(select(Subscription).where(Subscription.user_id == user.id))
    return r.scalar_one_or_none()


async def require_active_subscription(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Require an active or trialing subscription. Raises 403 otherwise."""
    sub = await get_user_subscription(session, user)
    if sub is None or not sub.is_active:
        raise PermissionDeniedError(
            "Active subscription required",
            headers={"X-Upgrade-Required": "true"},
        )
    return user


async def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Catalog management is limited to administrators. Raises 403 otherwise."""
    if not user.is_admin:
        raise PermissionDeniedError("Administrator access required")
    return user
