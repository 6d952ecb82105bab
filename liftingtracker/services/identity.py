"""Account creation, credential checks and session token issuing."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pydantic
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.config import settings
from liftingtracker.core.auth import (
    create_access_token,
    create_refresh_token,
    hash_refresh_token,
    make_csrf_token,
    new_session_id,
    verify_password,
)
from liftingtracker.core.errors import ValidationError
from liftingtracker.models.fitness_profile import FitnessProfile
from liftingtracker.models.refresh_token import RefreshToken
from liftingtracker.models.user import User
from liftingtracker.schemas.profile import PROFILE_FIELDS, FitnessProfileFields

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_SECONDS = settings.access_token_expire_minutes * 60


def issue_tokens(session: AsyncSession, user: User) -> dict:
    """Access token (new session id), refresh token stored hashed, and the session's CSRF token."""
    sid = new_session_id()
    access = create_access_token(user.id, user.email, sid)
    refresh_plain = create_refresh_token()
    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days)
    session.add(
        RefreshToken(
            user_id=user.id,
            token_hash=hash_refresh_token(refresh_plain),
            expires_at=expires_at,
        )
    )
    return {
        "access_token": access,
        "refresh_token": refresh_plain,
        "csrf_token": make_csrf_token(sid),
        "expires_in": ACCESS_TOKEN_EXPIRE_SECONDS,
    }


def _schema_error_message(exc: pydantic.ValidationError) -> str:
    error = exc.errors()[0]
    field = str(error["loc"][0]) if error.get("loc") else "value"
    label = field.replace("_", " ").capitalize()
    if error.get("type") == "string_too_long":
        limit = error.get("ctx", {}).get("max_length")
        return f"{label} must be at most {limit} characters"
    return f"{label} is invalid"


def profile_values(data: dict) -> dict:
    """
    Typed profile columns from raw wizard data; blank fields are left out.
    Raises ValidationError when a value does not fit its column.
    """
    raw = {f: data.get(f) for f in PROFILE_FIELDS if data.get(f) not in (None, "", [])}
    try:
        return FitnessProfileFields.model_validate(raw).model_dump(exclude_none=True)
    except pydantic.ValidationError as e:
        raise ValidationError(_schema_error_message(e)) from e


async def create_account(session: AsyncSession, data: dict) -> User:
    """
    Create the user and their fitness profile from completed wizard data.
    Raises ValidationError when the email or username is taken or a profile value does not fit.
    """
    profile = profile_values(data)
    email = (data.get("email") or "").strip().lower()
    username = (data.get("username") or "").strip()
    r = await session.execute(select(User.email, User.username).where(
        or_(User.email == email, User.username == username)
    ))
    for existing_email, existing_username in r.all():
        if existing_email == email:
            raise ValidationError("Sorry, that email address is already used!")
        if existing_username == username:
            raise ValidationError("Sorry, that username already exists!")

    first_name = (data.get("first_name") or "").strip()
    last_name = (data.get("last_name") or "").strip()
    user = User(
        email=email,
        username=username,
        first_name=first_name,
        last_name=last_name,
        display_name=f"{first_name} {last_name}".strip() or username,
        bio=(data.get("bio") or "").strip() or None,
        password_hash=data["password_hash"],
    )
    try:
        session.add(user)
        await session.flush()
        session.add(FitnessProfile(user_id=user.id, **profile))
        await session.flush()
    except IntegrityError as e:
        logger.warning("Account creation IntegrityError: %s", e)
        raise ValidationError("Sorry, that email address or username is already used!") from e
    return user


async def authenticate(session: AsyncSession, login: str, password: str) -> User | None:
    """Look up by email or username and check the password. None on any mismatch."""
    login = (login or "").strip()
    if not login or not password:
        return None
    r = await session.execute(
        select(User).where(or_(User.email == login.lower(), User.username == login))
    )
    user = r.scalars().first()
    if not user or not user.password_hash:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
