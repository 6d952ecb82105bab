"""Auth: login, refresh, logout, me. Accounts are created by the registration wizard."""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.api.deps import get_current_user, verify_csrf
from liftingtracker.core.auth import hash_refresh_token
from liftingtracker.db.session import get_db
from liftingtracker.models.refresh_token import RefreshToken
from liftingtracker.models.user import User
from liftingtracker.services.identity import authenticate, issue_tokens

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class LoginBody(BaseModel):
    login: str  # email or username
    password: str


class UserOut(BaseModel):
    id: int
    email: str
    username: str
    display_name: str | None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    csrf_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires
    user: UserOut


class RefreshBody(BaseModel):
    refresh_token: str


def user_out(user: User) -> UserOut:
    return UserOut(id=user.id, email=user.email, username=user.username, display_name=user.display_name)


def token_response(tokens: dict, user: User) -> TokenResponse:
    return TokenResponse(**tokens, user=user_out(user))


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with email or username and password",
    responses={
        401: {"description": "Invalid login or password"},
    },
)
async def login(
    session: Annotated[AsyncSession, Depends(get_db)],
    body: LoginBody,
) -> TokenResponse:
    user = await authenticate(session, body.login, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid login or password")
    tokens = issue_tokens(session, user)
    await session.flush()
    logger.info("User %s logged in", user.id)
    return token_response(tokens, user)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Exchange refresh token for new access and refresh tokens",
    responses={
        401: {"description": "Refresh token required, invalid or expired"},
    },
)
async def refresh_tokens(
    session: Annotated[AsyncSession, Depends(get_db)],
    body: RefreshBody,
) -> TokenResponse:
    """Exchange refresh_token for new access_token and refresh_token (rotation)."""
    if not body.refresh_token or not body.refresh_token.strip():
        raise HTTPException(status_code=401, detail="Refresh token required")
    token_hash = hash_refresh_token(body.refresh_token.strip())
    r = await session.execute(
        select(RefreshToken).where(
            RefreshToken.token_hash == token_hash,
            RefreshToken.expires_at > datetime.now(timezone.utc),
        )
    )
    row = r.scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")
    user_id = row.user_id
    await session.delete(row)
    await session.flush()
    r_user = await session.execute(select(User).where(User.id == user_id))
    user = r_user.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    tokens = issue_tokens(session, user)
    await session.flush()
    return token_response(tokens, user)


@router.post(
    "/logout",
    summary="Revoke a refresh token",
    dependencies=[Depends(verify_csrf)],
    responses={401: {"description": "Not authenticated"}, 403: {"description": "Security check failed"}},
)
async def logout(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: RefreshBody,
) -> dict:
    await session.execute(
        delete(RefreshToken).where(
            RefreshToken.user_id == user.id,
            RefreshToken.token_hash == hash_refresh_token(body.refresh_token.strip()),
        )
    )
    return {"success": True, "data": {"message": "Logged out"}}


@router.get(
    "/me",
    response_model=UserOut,
    summary="Get current authenticated user",
    responses={
        401: {"description": "Not authenticated or invalid token"},
    },
)
async def me(user: Annotated[User, Depends(get_current_user)]) -> UserOut:
    return user_out(user)
