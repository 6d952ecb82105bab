"""User-scoped fitness metadata collected by the registration wizard and edited from the profile screen."""

from __future__ import annotations

from datetime import datetime
from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liftingtracker.db.base import Base

# Fields that must be set for the profile to count as complete
REQUIRED_PROFILE_FIELDS = ("fitness_level", "primary_goal", "current_weight")


class FitnessProfile(Base):
    __tablename__ = "fitness_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    date_of_birth: Mapped[str | None] = mapped_column(String(10), nullable=True)  # YYYY-MM-DD as entered
    gender: Mapped[str | None] = mapped_column(String(32), nullable=True)
    height_feet: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height_inches: Mapped[float | None] = mapped_column(Float, nullable=True)
    height_cm: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    target_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    body_fat_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    preferred_units: Mapped[str | None] = mapped_column(String(16), nullable=True)  # imperial | metric
    fitness_level: Mapped[str | None] = mapped_column(String(32), nullable=True)  # beginner | intermediate | advanced
    years_training: Mapped[float | None] = mapped_column(Float, nullable=True)
    primary_goal: Mapped[str | None] = mapped_column(String(32), nullable=True)
    workout_frequency: Mapped[int | None] = mapped_column(Integer, nullable=True)  # days per week
    activity_level: Mapped[float | None] = mapped_column(Float, nullable=True)  # TDEE multiplier
    protein_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    carbs_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fat_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dietary_restrictions: Mapped[list | None] = mapped_column(JSON, nullable=True)
    allergies: Mapped[list | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="fitness_profile")

    @property
    def is_complete(self) -> bool:
        return all(getattr(self, f) not in (None, "") for f in REQUIRED_PROFILE_FIELDS)
