"""Pydantic schemas for workout API."""

from datetime import date

from pydantic import BaseModel, Field, field_validator

from liftingtracker.core.coerce import parse_float, parse_int


class ExerciseEntry(BaseModel):
    """One logged exercise inside a workout."""

    name: str = Field("", max_length=255)
    sets: int = 0
    reps: int = 0
    weight: float = 0.0
    notes: str | None = None
    exercise_id: int | None = None

    @field_validator("sets", "reps", mode="before")
    @classmethod
    def _coerce_int(cls, v):
        return parse_int(v)

    @field_validator("weight", mode="before")
    @classmethod
    def _coerce_float(cls, v):
        return parse_float(v)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v


class WorkoutCreate(BaseModel):
    """Body for saving a workout. Numbers are coerced, not range-checked."""

    title: str = Field("", max_length=512)
    notes: str | None = None
    date: date
    duration: int = 0
    calories: int = 0
    exercises: list[ExerciseEntry] = Field(default_factory=list)

    @field_validator("duration", "calories", mode="before")
    @classmethod
    def _coerce_int(cls, v):
        return parse_int(v)


class WorkoutResponse(BaseModel):
    """Single workout as returned by the API."""

    id: int
    title: str
    notes: str | None
    date: str
    duration_minutes: int
    calories: int
    exercises: list[ExerciseEntry]


class ProgressPoint(BaseModel):
    date: str
    weight: float
    reps: int
    sets: int
