from liftingtracker.models.user import User
from liftingtracker.models.fitness_profile import FitnessProfile
from liftingtracker.models.subscription import Subscription
from liftingtracker.models.workout import Workout
from liftingtracker.models.exercise import Exercise
from liftingtracker.models.registration_draft import RegistrationDraft
from liftingtracker.models.refresh_token import RefreshToken
from liftingtracker.models.audit_log import AuditLog

__all__ = [
    "User",
    "FitnessProfile",
    "Subscription",
    "Workout",
    "Exercise",
    "RegistrationDraft",
    "RefreshToken",
    "AuditLog",
]
