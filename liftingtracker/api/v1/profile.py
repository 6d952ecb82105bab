"""Profile: identity fields plus fitness metadata collected at registration."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.api.deps import get_current_user, verify_csrf
from liftingtracker.db.session import get_db
from liftingtracker.models.fitness_profile import FitnessProfile
from liftingtracker.models.user import User
from liftingtracker.schemas.profile import PROFILE_FIELDS, ProfileUpdate
from liftingtracker.services.audit import client_ip, log_action

router = APIRouter(prefix="/profile", tags=["profile"])

IDENTITY_FIELDS = ("first_name", "last_name", "bio")


def _profile_response(profile: FitnessProfile | None, user: User) -> dict:
    fields = {f: getattr(profile, f) if profile else None for f in PROFILE_FIELDS}
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "display_name": user.display_name or user.username,
        "bio": user.bio,
        **fields,
        "profile_complete": bool(profile and profile.is_complete),
    }


async def _load_profile(session: AsyncSession, user_id: int) -> FitnessProfile | None:
    r = await session.execute(select(FitnessProfile).where(FitnessProfile.user_id == user_id))
    return r.scalar_one_or_none()


@router.get("")
async def get_profile(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
) -> dict:
    """Return identity and fitness profile, with completeness flag."""
    return {"success": True, "data": _profile_response(await _load_profile(session, user.id), user)}


@router.patch("", dependencies=[Depends(verify_csrf)])
async def update_profile(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: ProfileUpdate,
) -> dict:
    """Partial update; fields not sent are left as they are."""
    changes = body.model_dump(exclude_unset=True)
    profile = await _load_profile(session, user.id)
    if not profile:
        profile = FitnessProfile(user_id=user.id)
        session.add(profile)
    for key, value in changes.items():
        if key in IDENTITY_FIELDS:
            setattr(user, key, value)
        else:
            setattr(profile, key, value)
    if "first_name" in changes or "last_name" in changes:
        user.display_name = f"{user.first_name or ''} {user.last_name or ''}".strip() or user.username
    await session.flush()
    await log_action(
        session, user.id, "update", "profile", user.id,
        details={"fields": sorted(changes)}, ip_address=client_ip(request),
    )
    return {"success": True, "data": _profile_response(profile, user)}
