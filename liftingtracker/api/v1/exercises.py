"""Exercise catalog: canonical exercises that workout entries link to. Members read it; administrators edit it."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.api.deps import get_current_user, require_admin, verify_csrf
from liftingtracker.core.errors import NotFoundError, ValidationError
from liftingtracker.db.session import get_db
from liftingtracker.models.exercise import Exercise
from liftingtracker.models.user import User

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/exercises", tags=["exercises"])


class ExerciseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    instructions: str | None = None
    default_sets: int | None = Field(None, ge=0)
    default_reps: int | None = Field(None, ge=0)
    default_weight: float | None = Field(None, ge=0)
    category: str | None = Field(None, max_length=64)
    muscle_group: str | None = Field(None, max_length=64)


class ExerciseUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    instructions: str | None = None
    default_sets: int | None = Field(None, ge=0)
    default_reps: int | None = Field(None, ge=0)
    default_weight: float | None = Field(None, ge=0)
    category: str | None = Field(None, max_length=64)
    muscle_group: str | None = Field(None, max_length=64)


def _exercise_response(row: Exercise) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "instructions": row.instructions,
        "default_sets": row.default_sets,
        "default_reps": row.default_reps,
        "default_weight": row.default_weight,
        "category": row.category,
        "muscle_group": row.muscle_group,
    }


async def _get_exercise(session: AsyncSession, exercise_id: int) -> Exercise:
    r = await session.execute(select(Exercise).where(Exercise.id == exercise_id))
    row = r.scalar_one_or_none()
    if row is None:
        raise NotFoundError("Exercise not found")
    return row


async def _ensure_name_free(session: AsyncSession, name: str, exclude_id: int | None = None) -> None:
    q = select(Exercise.id).where(Exercise.name == name)
    if exclude_id is not None:
        q = q.where(Exercise.id != exclude_id)
    if (await session.execute(q)).first() is not None:
        raise ValidationError("An exercise with this name already exists")


@router.get("", summary="List exercises")
async def list_exercises(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    category: str | None = None,
    muscle_group: str | None = None,
) -> dict:
    """Alphabetical; optionally narrowed to one category and/or muscle group."""
    q = select(Exercise)
    if category:
        q = q.where(Exercise.category == category)
    if muscle_group:
        q = q.where(Exercise.muscle_group == muscle_group)
    r = await session.execute(q.order_by(Exercise.name.asc()))
    return {"success": True, "data": [_exercise_response(e) for e in r.scalars().all()]}


@router.get("/{exercise_id}", summary="Get exercise", responses={404: {"description": "Not found"}})
async def get_exercise(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    exercise_id: int,
) -> dict:
    return {"success": True, "data": _exercise_response(await _get_exercise(session, exercise_id))}


@router.post(
    "",
    status_code=201,
    summary="Create exercise",
    dependencies=[Depends(verify_csrf)],
    responses={403: {"description": "Not an administrator"}},
)
async def create_exercise(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(require_admin)],
    body: ExerciseCreate,
) -> dict:
    name = body.name.strip()
    await _ensure_name_free(session, name)
    row = Exercise(**body.model_dump(exclude={"name"}), name=name)
    session.add(row)
    await session.flush()
    return {"success": True, "data": _exercise_response(row)}


@router.patch(
    "/{exercise_id}",
    summary="Update or rename exercise",
    dependencies=[Depends(verify_csrf)],
    responses={403: {"description": "Not an administrator"}, 404: {"description": "Not found"}},
)
async def update_exercise(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(require_admin)],
    exercise_id: int,
    body: ExerciseUpdate,
) -> dict:
    """Renaming keeps logged history: entries are linked by id, not by name."""
    row = await _get_exercise(session, exercise_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name"):
        changes["name"] = changes["name"].strip()
        await _ensure_name_free(session, changes["name"], exclude_id=row.id)
        logger.info("Renaming exercise %s: %r -> %r", row.id, row.name, changes["name"])
    for key, value in changes.items():
        if key == "name" and not value:
            continue
        setattr(row, key, value)
    await session.flush()
    return {"success": True, "data": _exercise_response(row)}
