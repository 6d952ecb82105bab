"""Pydantic schemas for the fitness profile (registration output and profile edits)."""

from pydantic import BaseModel, Field, field_validator

from liftingtracker.core.coerce import parse_optional_float, parse_optional_int

PROFILE_FIELDS = (
    "date_of_birth",
    "gender",
    "height_feet",
    "height_inches",
    "height_cm",
    "current_weight",
    "target_weight",
    "body_fat_percentage",
    "preferred_units",
    "fitness_level",
    "years_training",
    "primary_goal",
    "workout_frequency",
    "activity_level",
    "protein_percentage",
    "carbs_percentage",
    "fat_percentage",
    "dietary_restrictions",
    "allergies",
)


class FitnessProfileFields(BaseModel):
    """Every field optional; blank strings become None, numbers are parsed leniently."""

    date_of_birth: str | None = Field(None, max_length=10)
    gender: str | None = Field(None, max_length=32)
    height_feet: int | None = None
    height_inches: float | None = None
    height_cm: float | None = None
    current_weight: float | None = None
    target_weight: float | None = None
    body_fat_percentage: float | None = None
    preferred_units: str | None = Field(None, max_length=16)
    fitness_level: str | None = Field(None, max_length=32)
    years_training: float | None = None
    primary_goal: str | None = Field(None, max_length=32)
    workout_frequency: int | None = None
    activity_level: float | None = None
    protein_percentage: int | None = None
    carbs_percentage: int | None = None
    fat_percentage: int | None = None
    dietary_restrictions: list[str] | None = None
    allergies: list[str] | None = None

    @field_validator("height_feet", "workout_frequency", "protein_percentage", "carbs_percentage", "fat_percentage", mode="before")
    @classmethod
    def _int(cls, v):
        return parse_optional_int(v)

    @field_validator(
        "height_inches", "height_cm", "current_weight", "target_weight",
        "body_fat_percentage", "years_training", "activity_level",
        mode="before",
    )
    @classmethod
    def _float(cls, v):
        return parse_optional_float(v)

    @field_validator("date_of_birth", "gender", "preferred_units", "fitness_level", "primary_goal", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("dietary_restrictions", "allergies", mode="before")
    @classmethod
    def _list(cls, v):
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v


class ProfileUpdate(FitnessProfileFields):
    """PATCH body: identity fields plus any profile field. Omitted fields are left untouched."""

    first_name: str | None = Field(None, max_length=128)
    last_name: str | None = Field(None, max_length=128)
    bio: str | None = None
