"""
Multi-step registration wizard.

`RegistrationWizard` is the finite-state object for one draft: step cursor plus raw
field values. It is rebuilt from the stored draft on every request and written back
afterwards; nothing lives in process memory between requests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.config import settings
from liftingtracker.core.auth import create_draft_token, hash_draft_token, hash_password
from liftingtracker.core.errors import NotFoundError
from liftingtracker.models.registration_draft import RegistrationDraft
from liftingtracker.services.registration_rules import first_failure

logger = logging.getLogger(__name__)

TOTAL_STEPS = 4

DRAFT_DEFAULTS: dict = {
    "email": "",
    "terms_accepted": False,
    "first_name": "",
    "last_name": "",
    "username": "",
    "date_of_birth": "",
    "gender": "",
    "bio": "",
    "height_feet": "",
    "height_inches": "",
    "height_cm": "",
    "current_weight": "",
    "target_weight": "",
    "body_fat_percentage": "",
    "preferred_units": "imperial",
    "fitness_level": "beginner",
    "years_training": "",
    "primary_goal": "build_muscle",
    "workout_frequency": "3",
    "activity_level": "1.4",
    "protein_percentage": "30",
    "carbs_percentage": "40",
    "fat_percentage": "30",
    "dietary_restrictions": [],
    "allergies": [],
}
PASSWORD_FIELDS = ("password", "confirm_password")
LIST_FIELDS = ("dietary_restrictions", "allergies")
# Never sent back to the browser
PRIVATE_FIELDS = PASSWORD_FIELDS + ("password_hash",)


def _clean(field: str, value):
    if field in LIST_FIELDS:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(v).strip() for v in value if str(v).strip()]
    if field == "terms_accepted":
        return value
    if value is None:
        return ""
    return str(value) if field in PASSWORD_FIELDS else str(value).strip()


class RegistrationWizard:
    """Step cursor and raw field values for one in-progress registration."""

    def __init__(self, current_step: int = 1, data: dict | None = None):
        self.current_step = current_step
        self.data = dict(DRAFT_DEFAULTS)
        if data:
            self.data.update(data)

    @classmethod
    def from_draft(cls, draft: RegistrationDraft) -> "RegistrationWizard":
        return cls(draft.current_step, draft.data)

    def write_to(self, draft: RegistrationDraft) -> None:
        draft.current_step = self.current_step
        # Plaintext passwords are never stored
        draft.data = {k: v for k, v in self.data.items() if k not in PASSWORD_FIELDS}

    @property
    def is_last_step(self) -> bool:
        return self.current_step == TOTAL_STEPS

    def merge(self, submitted: dict) -> None:
        """Take known fields from a submission. Passwords are only accepted on step 1."""
        for field, value in submitted.items():
            if field in PASSWORD_FIELDS:
                if self.current_step == 1:
                    self.data[field] = _clean(field, value)
            elif field in DRAFT_DEFAULTS:
                self.data[field] = _clean(field, value)

    def validate_current(self) -> str | None:
        return first_failure(self.current_step, self.data)

    def next(self) -> str | None:
        """Advance if the current step validates; otherwise return the failure message."""
        message = self.validate_current()
        if message:
            return message
        if self.current_step == 1:
            self.data["password_hash"] = hash_password(self.data["password"])
            for field in PASSWORD_FIELDS:
                self.data.pop(field, None)
        self.current_step = min(self.current_step + 1, TOTAL_STEPS)
        return None

    def prev(self) -> None:
        self.current_step = max(self.current_step - 1, 1)

    def check_complete(self) -> str | None:
        """Validation gate for `complete`: last step only, re-validated."""
        if not self.is_last_step:
            return "Please finish all registration steps first"
        message = self.validate_current()
        if message:
            return message
        if not self.data.get("password_hash"):
            return "Password is required"
        return None

    def public_fields(self) -> dict:
        return {k: v for k, v in self.data.items() if k not in PRIVATE_FIELDS}


def _expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=settings.registration_draft_ttl_hours)


async def start_draft(session: AsyncSession) -> tuple[RegistrationDraft, str]:
    """Create an empty draft. Returns (draft, plain draft token)."""
    token = create_draft_token()
    draft = RegistrationDraft(
        token_hash=hash_draft_token(token),
        current_step=1,
        data=dict(DRAFT_DEFAULTS),
        expires_at=_expiry(),
    )
    session.add(draft)
    await session.flush()
    return draft, token


async def load_draft(session: AsyncSession, token: str) -> RegistrationDraft:
    r = await session.execute(
        select(RegistrationDraft).where(
            RegistrationDraft.token_hash == hash_draft_token(token),
            RegistrationDraft.expires_at > datetime.now(timezone.utc),
        )
    )
    draft = r.scalar_one_or_none()
    if draft is None:
        raise NotFoundError("Registration session expired or not found")
    return draft


async def save_draft(session: AsyncSession, draft: RegistrationDraft, wizard: RegistrationWizard) -> None:
    wizard.write_to(draft)
    draft.expires_at = _expiry()
    await session.flush()


async def discard_draft(session: AsyncSession, token: str) -> None:
    await session.execute(
        delete(RegistrationDraft).where(RegistrationDraft.token_hash == hash_draft_token(token))
    )
    await session.flush()


async def purge_expired_drafts(session: AsyncSession) -> int:
    r = await session.execute(
        delete(RegistrationDraft).where(RegistrationDraft.expires_at <= datetime.now(timezone.utc))
    )
    count = r.rowcount or 0
    if count:
        logger.info("Purged %d expired registration drafts", count)
    return count
