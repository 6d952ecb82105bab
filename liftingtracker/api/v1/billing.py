"""Billing: Stripe subscription create/cancel, webhook, subscription status."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.api.deps import get_current_user, verify_csrf
from liftingtracker.config import settings
from liftingtracker.core.errors import ProviderError
from liftingtracker.db.session import async_session_maker, get_db
from liftingtracker.models.user import User
from liftingtracker.services import stripe_service
from liftingtracker.services.audit import client_ip

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/billing", tags=["billing"])


class CreateSubscriptionRequest(BaseModel):
    payment_method_id: str


@router.get("/config", summary="Publishable Stripe settings for the client")
async def get_billing_config() -> dict:
    return {
        "success": True,
        "data": {
            "enabled": settings.stripe_configured,
            "publishable_key": settings.stripe_publishable_key,
            "price_id": settings.stripe_price_id,
        },
    }


@router.post(
    "/subscription",
    summary="Create subscription",
    dependencies=[Depends(verify_csrf)],
    responses={
        401: {"description": "Not authenticated"},
        402: {"description": "Rejected by Stripe"},
        403: {"description": "Security check failed"},
        503: {"description": "Stripe not configured"},
    },
)
async def create_subscription(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    body: CreateSubscriptionRequest,
) -> dict:
    """
    Attach the payment method and request the subscription. When `clientSecret` is
    present the client must confirm the payment (3-D Secure) with Stripe.js.
    """
    try:
        result = await stripe_service.create_subscription(
            session, user, body.payment_method_id, ip_address=client_ip(request)
        )
    except ProviderError:
        # A customer created before the rejection must survive the rollback
        await session.commit()
        raise
    return {
        "success": True,
        "data": {
            "subscriptionId": result["subscription_id"],
            "clientSecret": result["client_secret"],
            "status": result["status"],
        },
    }


@router.post(
    "/subscription/cancel",
    summary="Cancel subscription",
    dependencies=[Depends(verify_csrf)],
    responses={
        401: {"description": "Not authenticated"},
        402: {"description": "Rejected by Stripe"},
        403: {"description": "Security check failed"},
        404: {"description": "No subscription on record"},
    },
)
async def cancel_subscription(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
) -> dict:
    await stripe_service.cancel_subscription(session, user, ip_address=client_ip(request))
    return {"success": True, "data": {"message": "Subscription canceled successfully"}}


@router.get(
    "/subscription",
    summary="Get current subscription status",
    responses={401: {"description": "Not authenticated"}},
)
async def get_subscription(
    session: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
) -> dict:
    """Locally stored subscription state for the authenticated user."""
    sub = await stripe_service.get_subscription(session, user.id)
    if not sub:
        return {
            "success": True,
            "data": {
                "has_subscription": False,
                "has_active_subscription": False,
                "status": None,
                "subscription_id": None,
                "current_period_end": None,
                "cancel_at_period_end": None,
            },
        }
    return {
        "success": True,
        "data": {
            "has_subscription": True,
            "has_active_subscription": stripe_service.has_active_subscription(sub),
            "status": sub.status,
            "subscription_id": sub.stripe_subscription_id,
            "current_period_end": sub.current_period_end.isoformat() if sub.current_period_end else None,
            "cancel_at_period_end": sub.cancel_at_period_end,
        },
    }


@router.post(
    "/webhook",
    summary="Stripe webhook",
    include_in_schema=False,
)
async def stripe_webhook(request: Request):
    """Stripe sends events here. Signature is verified; then the local subscription status is updated."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing stripe-signature")
    try:
        event = stripe_service.construct_webhook_event(payload, sig_header)
    except Exception as e:
        logger.warning("Stripe webhook rejected: %s", e)
        raise HTTPException(status_code=400, detail=f"Invalid signature: {e}")
    async with async_session_maker() as session:
        try:
            await stripe_service.handle_webhook_event(session, event)
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.exception("Stripe webhook processing failed")
            raise HTTPException(status_code=500, detail=str(e))
    return {"received": True}
