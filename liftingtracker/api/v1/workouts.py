"""Workouts API: save, list, read, delete, and the per-exercise progress series."""

from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.api.deps import get_current_user, verify_csrf
from liftingtracker.db.session import get_db
from liftingtracker.models.user import User
from liftingtracker.models.workout import Workout
from liftingtracker.schemas.pagination import PaginatedResponse
from liftingtracker.schemas.workout import ExerciseEntry, ProgressPoint, WorkoutCreate, WorkoutResponse
from liftingtracker.services import workout_service
from liftingtracker.services.audit import client_ip

router = APIRouter(prefix="/workouts", tags=["workouts"])


def _row_to_response(row: Workout) -> dict:
    return WorkoutResponse(
        id=row.id,
        title=row.title,
        notes=row.notes,
        date=row.date.isoformat(),
        duration_minutes=row.duration_minutes,
        calories=row.calories,
        exercises=[ExerciseEntry.model_validate(e) for e in row.exercises or []],
    ).model_dump()


@router.post(
    "",
    status_code=201,
    summary="Save workout",
    dependencies=[Depends(verify_csrf)],
    responses={401: {"description": "Not authenticated"}, 403: {"description": "Security check failed"}},
)
async def save_workout(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: WorkoutCreate,
) -> dict:
    workout = await workout_service.save_workout(
        session,
        user,
        title=body.title,
        notes=body.notes,
        workout_date=body.date,
        duration_minutes=body.duration,
        calories=body.calories,
        exercises=body.exercises,
        ip_address=client_ip(request),
    )
    return {"success": True, "data": {"workoutId": workout.id, "message": "Workout saved successfully"}}


@router.get(
    "",
    response_model=PaginatedResponse,
    summary="List workouts",
    responses={401: {"description": "Not authenticated"}},
)
async def list_workouts(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    from_date: date | None = None,
    to_date: date | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PaginatedResponse:
    """Workouts for the current user, newest first, optionally within a date range."""
    rows, total = await workout_service.list_workouts(
        session, user, from_date=from_date, to_date=to_date, limit=limit, offset=offset
    )
    return PaginatedResponse(
        items=[_row_to_response(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
        has_more=(offset + limit) < total,
    )


@router.get(
    "/progress",
    summary="Progress series for one exercise",
    responses={401: {"description": "Not authenticated"}},
)
async def get_progress(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    exercise_name: str = Query(..., min_length=1),
    period: Literal["week", "month", "year"] = "month",
) -> dict:
    """One point per matching exercise entry, oldest first. Empty list when nothing matches."""
    rows = await workout_service.get_progress(session, user, exercise_name, period)
    return {"success": True, "data": [ProgressPoint(**r).model_dump() for r in rows]}


@router.get(
    "/{workout_id}",
    summary="Get workout",
    responses={401: {"description": "Not authenticated"}, 403: {"description": "Not the owner or not found"}},
)
async def get_workout(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    workout_id: int,
) -> dict:
    workout = await workout_service.get_owned_workout(session, user, workout_id)
    return {"success": True, "data": _row_to_response(workout)}


@router.delete(
    "/{workout_id}",
    summary="Delete workout",
    dependencies=[Depends(verify_csrf)],
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Security check failed, not the owner or not found"},
    },
)
async def delete_workout(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    workout_id: int,
) -> dict:
    await workout_service.delete_workout(session, user, workout_id, ip_address=client_ip(request))
    return {"success": True, "data": {"message": "Workout deleted successfully"}}
