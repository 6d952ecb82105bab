"""Workout persistence and the per-exercise progress series."""

from __future__ import annotations

import logging
from calendar import monthrange
from datetime import date, timedelta
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.core.errors import PermissionDeniedError
from liftingtracker.models.exercise import Exercise
from liftingtracker.models.user import User
from liftingtracker.models.workout import Workout
from liftingtracker.schemas.workout import ExerciseEntry
from liftingtracker.services.audit import log_action

logger = logging.getLogger(__name__)

Period = Literal["week", "month", "year"]


def _months_back(day: date, months: int) -> date:
    """Same calendar day `months` months earlier, clamped to the month's last day."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def period_start(period: Period, today: date) -> date:
    """First day (inclusive) of the trailing window that ends on `today`."""
    if period == "week":
        return today - timedelta(days=7)
    if period == "year":
        return _months_back(today, 12)
    return _months_back(today, 1)


def entry_to_dict(entry: ExerciseEntry) -> dict:
    return {
        "name": entry.name,
        "sets": entry.sets,
        "reps": entry.reps,
        "weight": entry.weight,
        "notes": entry.notes,
        "exercise_id": entry.exercise_id,
    }


async def _catalog_ids_by_name(session: AsyncSession, names: set[str]) -> dict[str, int]:
    if not names:
        return {}
    r = await session.execute(select(Exercise.name, Exercise.id).where(Exercise.name.in_(names)))
    return {name: eid for name, eid in r.all()}


async def save_workout(
    session: AsyncSession,
    user: User,
    *,
    title: str,
    notes: str | None,
    workout_date: date,
    duration_minutes: int,
    calories: int,
    exercises: list[ExerciseEntry],
    ip_address: str | None = None,
) -> Workout:
    """
    Persist a new workout owned by `user`. Only type coercion happens upstream;
    duplicate dates, negative numbers and empty exercise lists are accepted.
    """
    unlinked = {e.name for e in exercises if e.exercise_id is None and e.name}
    catalog = await _catalog_ids_by_name(session, unlinked)
    entries = []
    for e in exercises:
        row = entry_to_dict(e)
        if row["exercise_id"] is None:
            row["exercise_id"] = catalog.get(e.name)
        entries.append(row)

    workout = Workout(
        user_id=user.id,
        title=title,
        notes=notes,
        date=workout_date,
        duration_minutes=duration_minutes,
        calories=calories,
        exercises=entries,
    )
    session.add(workout)
    await session.flush()
    await log_action(
        session,
        user.id,
        "create",
        "workout",
        workout.id,
        details={"date": workout_date.isoformat(), "exercises": len(entries)},
        ip_address=ip_address,
    )
    return workout


async def get_owned_workout(session: AsyncSession, user: User, workout_id: int) -> Workout:
    r = await session.execute(select(Workout).where(Workout.id == workout_id))
    workout = r.scalar_one_or_none()
    if workout is None or workout.user_id != user.id:
        raise PermissionDeniedError("Permission denied or workout not found")
    return workout


async def delete_workout(
    session: AsyncSession, user: User, workout_id: int, ip_address: str | None = None
) -> None:
    """Hard-delete a workout owned by `user`; someone else's or a missing id is a permission error."""
    workout = await get_owned_workout(session, user, workout_id)
    await session.delete(workout)
    await session.flush()
    await log_action(session, user.id, "delete", "workout", workout_id, ip_address=ip_address)


async def list_workouts(
    session: AsyncSession,
    user: User,
    *,
    from_date: date | None = None,
    to_date: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Workout], int]:
    """Newest first. Returns (page, total)."""
    base = select(Workout).where(Workout.user_id == user.id)
    if from_date is not None:
        base = base.where(Workout.date >= from_date)
    if to_date is not None:
        base = base.where(Workout.date <= to_date)
    total = (await session.execute(select(func.count()).select_from(base.subquery()))).scalar() or 0
    r = await session.execute(
        base.order_by(Workout.date.desc(), Workout.id.desc()).offset(offset).limit(limit)
    )
    return list(r.scalars().all()), total


async def get_progress(
    session: AsyncSession,
    user: User,
    exercise_name: str,
    period: Period,
    today: date | None = None,
) -> list[dict]:
    """
    One {date, weight, reps, sets} row per matching exercise entry in the user's
    workouts dated within the trailing `period`, oldest workout first. Entries
    within a workout keep their logged order.

    An entry matches on exact (case-sensitive) name, or when it is linked to the
    catalog exercise currently carrying that name, so renames keep history.

    Linear scan over the window; fine for per-user volumes.
    """
    today = today or date.today()
    start = period_start(period, today)

    r = await session.execute(select(Exercise.id).where(Exercise.name == exercise_name))
    catalog_id = r.scalar_one_or_none()

    r = await session.execute(
        select(Workout)
        .where(
            Workout.user_id == user.id,
            Workout.date >= start,
            Workout.date <= today,
        )
        .order_by(Workout.date.asc(), Workout.id.asc())
    )
    rows: list[dict] = []
    for workout in r.scalars().all():
        for entry in workout.exercises or []:
            linked = catalog_id is not None and entry.get("exercise_id") == catalog_id
            if entry.get("name") != exercise_name and not linked:
                continue
            rows.append(
                {
                    "date": workout.date.isoformat(),
                    "weight": float(entry.get("weight") or 0),
                    "reps": int(entry.get("reps") or 0),
                    "sets": int(entry.get("sets") or 0),
                }
            )
    return rows


async def count_workouts(
    session: AsyncSession, user: User, since: date | None = None, until: date | None = None
) -> int:
    """Workouts dated within [since, until]; either bound may be omitted."""
    q = select(func.count(Workout.id)).where(Workout.user_id == user.id)
    if since is not None:
        q = q.where(Workout.date >= since)
    if until is not None:
        q = q.where(Workout.date <= until)
    return (await session.execute(q)).scalar() or 0
