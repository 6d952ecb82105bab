"""Stripe billing: subscription create/cancel, webhook ingestion, status reconciliation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import stripe
from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liftingtracker.config import settings
from liftingtracker.core.errors import NotFoundError, ProviderError, ValidationError
from liftingtracker.models.subscription import ACTIVE_STATUSES, Subscription
from liftingtracker.models.user import User
from liftingtracker.services.audit import log_action

logger = logging.getLogger(__name__)

stripe.api_key = settings.stripe_secret_key

SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)
INVOICE_EVENTS = ("invoice.payment_succeeded", "invoice.payment_failed")
# A tracked subscription in one of these states may be replaced by a newer one from Stripe
ENDED_STATUSES = ("canceled", "incomplete_expired")

SUBSCRIPTION_OPERATIONS = Counter(
    "liftingtracker_subscription_operations_total",
    "Subscription operations against Stripe by outcome",
    ["operation", "outcome"],
)


def _get(obj: Any, key: str) -> Any:
    """Read a field from a Stripe object or a plain dict (webhook payloads)."""
    if obj is None or isinstance(obj, str):
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _provider_message(exc: stripe.StripeError) -> str:
    return exc.user_message or str(exc) or "Payment provider error"


def _ensure_configured(require_price: bool = True) -> None:
    if not settings.stripe_secret_key or (require_price and not settings.stripe_price_id):
        raise ProviderError("Stripe is not configured", status_code=503)
    stripe.api_key = settings.stripe_secret_key


def _client_secret(sub: Any) -> str | None:
    """Client secret for 3-D Secure confirmation while the first invoice is unpaid."""
    invoice = _get(sub, "latest_invoice")
    if invoice is None or isinstance(invoice, str):
        return None
    if _get(invoice, "status") == "paid":
        return None
    intent = _get(invoice, "payment_intent")
    if intent is not None and not isinstance(intent, str):
        return _get(intent, "client_secret")
    # Newer API versions expose the secret on the invoice itself
    return _get(_get(invoice, "confirmation_secret"), "client_secret")


def _customer_id(obj: Any) -> str | None:
    customer = _get(obj, "customer")
    if isinstance(customer, str):
        return customer
    return _get(customer, "id")


def _apply_provider_fields(db_sub: Subscription, sub: Any) -> None:
    status = (_get(sub, "status") or "").lower()
    if status:
        db_sub.status = status
    period_end = _get(sub, "current_period_end")
    if period_end:
        db_sub.current_period_end = datetime.fromtimestamp(period_end, tz=timezone.utc)
    cancel_at_period_end = _get(sub, "cancel_at_period_end")
    if cancel_at_period_end is not None:
        db_sub.cancel_at_period_end = bool(cancel_at_period_end)


def has_active_subscription(subscription: Subscription | None) -> bool:
    """Local judgement only: may lag Stripe until the next webhook or reconciliation."""
    return subscription is not None and subscription.status in ACTIVE_STATUSES


async def get_subscription(session: AsyncSession, user_id: int) -> Subscription | None:
    r = await session.execute(select(Subscription).where(Subscription.user_id == user_id))
    return r.scalar_one_or_none()


async def _upsert_subscription(
    session: AsyncSession, user: User, customer_id: str, sub: Any
) -> Subscription:
    db_sub = await get_subscription(session, user.id)
    if db_sub is None:
        db_sub = Subscription(
            user_id=user.id,
            stripe_customer_id=customer_id,
            stripe_subscription_id=_get(sub, "id"),
            status=(_get(sub, "status") or "incomplete").lower(),
        )
        session.add(db_sub)
    else:
        db_sub.stripe_customer_id = customer_id
        db_sub.stripe_subscription_id = _get(sub, "id")
        db_sub.current_period_end = None
        db_sub.cancel_at_period_end = False
    _apply_provider_fields(db_sub, sub)
    await session.flush()
    return db_sub


async def create_subscription(
    session: AsyncSession,
    user: User,
    payment_method_id: str,
    ip_address: str | None = None,
) -> dict:
    """
    Create (or reuse) the Stripe customer, make payment_method_id its default and
    request a subscription on the configured price. Returns subscription_id, status
    and, while the first invoice is unpaid, the client_secret for 3-D Secure.
    """
    _ensure_configured()
    payment_method_id = (payment_method_id or "").strip()
    if not payment_method_id:
        raise ValidationError("Payment method is required")

    customer_id = user.stripe_customer_id
    try:
        if not customer_id:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.display_name or user.username,
                payment_method=payment_method_id,
                invoice_settings={"default_payment_method": payment_method_id},
                metadata={"user_id": str(user.id)},
            )
            customer_id = _get(customer, "id")
            # Persist right away so a failed subscription call never leads to a second customer
            user.stripe_customer_id = customer_id
            await session.flush()
        else:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )

        sub = stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": settings.stripe_price_id}],
            payment_behavior="default_incomplete",
            payment_settings={"save_default_payment_method": "on_subscription"},
            expand=["latest_invoice.payment_intent"],
        )
    except stripe.StripeError as e:
        SUBSCRIPTION_OPERATIONS.labels("create", "provider_error").inc()
        logger.warning("Stripe rejected subscription for user %s: %s", user.id, e)
        raise ProviderError(_provider_message(e)) from e

    db_sub = await _upsert_subscription(session, user, customer_id, sub)
    await log_action(
        session,
        user.id,
        "create",
        "subscription",
        db_sub.stripe_subscription_id,
        details={"status": db_sub.status},
        ip_address=ip_address,
    )
    SUBSCRIPTION_OPERATIONS.labels("create", "ok").inc()
    return {
        "subscription_id": db_sub.stripe_subscription_id,
        "status": db_sub.status,
        "client_secret": _client_secret(sub),
    }


async def cancel_subscription(
    session: AsyncSession, user: User, ip_address: str | None = None
) -> Subscription:
    """Cancel at Stripe, then mark the local row canceled."""
    db_sub = await get_subscription(session, user.id)
    if db_sub is None or not db_sub.stripe_subscription_id:
        raise NotFoundError("No active subscription found")
    _ensure_configured(require_price=False)
    try:
        stripe.Subscription.cancel(db_sub.stripe_subscription_id)
    except stripe.StripeError as e:
        SUBSCRIPTION_OPERATIONS.labels("cancel", "provider_error").inc()
        logger.warning("Stripe rejected cancel of %s: %s", db_sub.stripe_subscription_id, e)
        raise ProviderError(_provider_message(e)) from e
    db_sub.status = "canceled"
    db_sub.cancel_at_period_end = False
    await session.flush()
    await log_action(
        session, user.id, "cancel", "subscription", db_sub.stripe_subscription_id, ip_address=ip_address
    )
    SUBSCRIPTION_OPERATIONS.labels("cancel", "ok").inc()
    return db_sub


def construct_webhook_event(payload: bytes, sig_header: str):
    """Verify and construct Stripe event. Raises on invalid signature."""
    return stripe.Webhook.construct_event(
        payload, sig_header, settings.stripe_webhook_secret
    )


async def apply_subscription_object(session: AsyncSession, obj: Any) -> Subscription | None:
    """
    Write a provider subscription object onto the local row. Matches by subscription id,
    then by customer id. Returns None for subscriptions we do not know about.

    A customer-id match only adopts the incoming subscription when the user has none
    tracked, or the tracked one has ended and the incoming one has not. Late events for
    an older subscription never replace the current one.
    """
    sub_id = _get(obj, "id")
    if not sub_id:
        return None
    r = await session.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == sub_id)
    )
    db_sub = r.scalar_one_or_none()
    if db_sub is None:
        customer_id = _customer_id(obj)
        if not customer_id:
            return None
        ru = await session.execute(select(User).where(User.stripe_customer_id == customer_id))
        user = ru.scalar_one_or_none()
        if user is None:
            logger.info("Stripe subscription %s for unknown customer %s ignored", sub_id, customer_id)
            return None
        current = await get_subscription(session, user.id)
        incoming_status = (_get(obj, "status") or "").lower()
        if current is not None and (
            current.status not in ENDED_STATUSES or incoming_status in ENDED_STATUSES
        ):
            logger.info(
                "Stripe subscription %s ignored: user %s tracks %s (%s)",
                sub_id, user.id, current.stripe_subscription_id, current.status,
            )
            return None
        db_sub = await _upsert_subscription(session, user, customer_id, obj)
        await log_action(session, user.id, "sync", "subscription", sub_id, details={"status": db_sub.status})
        return db_sub

    previous = db_sub.status
    _apply_provider_fields(db_sub, obj)
    await session.flush()
    if previous != db_sub.status:
        logger.info("Subscription %s status %s -> %s", sub_id, previous, db_sub.status)
        await log_action(
            session,
            db_sub.user_id,
            "status_change",
            "subscription",
            sub_id,
            details={"from": previous, "to": db_sub.status},
        )
    return db_sub


async def handle_webhook_event(session: AsyncSession, event: Any) -> Subscription | None:
    """Dispatch a verified Stripe event. Safe to replay."""
    event_type = _get(event, "type")
    obj = _get(_get(event, "data"), "object")
    if event_type in SUBSCRIPTION_EVENTS:
        return await apply_subscription_object(session, obj)
    if event_type in INVOICE_EVENTS:
        sub_id = _get(obj, "subscription")
        if not sub_id:
            return None
        if not isinstance(sub_id, str):
            sub_id = _get(sub_id, "id")
        _ensure_configured(require_price=False)
        try:
            remote = stripe.Subscription.retrieve(sub_id)
        except stripe.StripeError as e:
            raise ProviderError(_provider_message(e), status_code=502) from e
        return await apply_subscription_object(session, remote)
    logger.debug("Ignoring Stripe event %s", event_type)
    return None


async def reconcile_subscriptions(session: AsyncSession) -> int:
    """Refresh every non-canceled local subscription from Stripe. Returns how many changed status."""
    if not settings.stripe_secret_key:
        return 0
    stripe.api_key = settings.stripe_secret_key
    r = await session.execute(select(Subscription).where(Subscription.status != "canceled"))
    changed = 0
    for db_sub in r.scalars().all():
        try:
            remote = stripe.Subscription.retrieve(db_sub.stripe_subscription_id)
        except stripe.StripeError as e:
            logger.warning("Reconcile: could not fetch %s: %s", db_sub.stripe_subscription_id, e)
            continue
        previous = db_sub.status
        await apply_subscription_object(session, remote)
        if db_sub.status != previous:
            changed += 1
    return changed
