"""Dashboard summary for subscribed members: counts, recent workouts, membership label."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.api.deps import require_active_subscription
from liftingtracker.db.session import get_db
from liftingtracker.models.user import User
from liftingtracker.services import stripe_service, workout_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

RECENT_WORKOUTS = 5


@router.get(
    "/summary",
    responses={401: {"description": "Not authenticated"}, 403: {"description": "Active subscription required"}},
)
async def get_summary(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(require_active_subscription)],
) -> dict:
    today = date.today()
    recent, total = await workout_service.list_workouts(session, user, limit=RECENT_WORKOUTS)
    sub = await stripe_service.get_subscription(session, user.id)
    this_month = await workout_service.count_workouts(session, user, since=today.replace(day=1), until=today)
    return {
        "success": True,
        "data": {
            "display_name": user.display_name or user.username,
            "total_workouts": total,
            "workouts_this_month": this_month,
            "recent_workouts": [
                {
                    "id": w.id,
                    "title": w.title,
                    "date": w.date.isoformat(),
                    "duration_minutes": w.duration_minutes,
                    "calories": w.calories,
                    "notes": w.notes,
                }
                for w in recent
            ],
            "membership": "Free Trial" if sub and sub.status == "trialing" else "Pro Member",
        },
    }
