"""Stripe subscription billing: checkout sessions and webhook plan transitions.

The webhook is the only writer of ``User.plan`` and ``Subscription`` rows.
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

import stripe
import structlog
from sqlalchemy.orm import Session

import crud
import models
from database import utcnow
from errors import BillingError
from settings import Settings

logger = structlog.get_logger(__name__)


def _user_id_from_metadata(obj) -> Optional[int]:
    raw = (obj.get("metadata") or {}).get("user_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


async def create_checkout_session(
    user: models.User, settings: Settings, success_url: str, cancel_url: str
) -> str:
    """Create a Stripe subscription checkout for the premium plan; returns its URL."""
    if not settings.stripe_secret_key or not settings.stripe_price_id_premium:
        raise BillingError("Stripe configuration missing")

    stripe.api_key = settings.stripe_secret_key
    logger.info("Creating Stripe checkout session", user_id=user.id)

    loop = asyncio.get_running_loop()
    session = await loop.run_in_executor(
        None,
        lambda: stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{"price": settings.stripe_price_id_premium, "quantity": 1}],
            mode="subscription",
            customer_email=user.email,
            success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url,
            metadata={"user_id": str(user.id)},
            subscription_data={"metadata": {"user_id": str(user.id)}},
            locale="en",
        ),
    )
    logger.info("Stripe checkout session created", session_id=session.id, user_id=user.id)
    return session.url


def _handle_checkout_completed(db: Session, session) -> None:
    user_id = _user_id_from_metadata(session)
    if user_id is None:
        logger.error("No user_id in checkout session metadata")
        return
    user = crud.set_user_plan(db, user_id, models.Plan.PREMIUM)
    if not user:
        logger.warning("User not found for checkout; skipping upgrade", user_id=user_id)
        return
    if session.get("customer"):
        user.stripe_customer_id = session["customer"]

    subscription = session.get("subscription")
    if subscription:
        subscription_id = subscription if isinstance(subscription, str) else subscription.get("id")
        crud.create_subscription(
            db, user_id, models.Plan.PREMIUM, status="active", payment_id=subscription_id
        )
    db.commit()
    logger.info("User upgraded to PREMIUM", user_id=user_id)


def _handle_subscription_updated(db: Session, subscription) -> None:
    user_id = _user_id_from_metadata(subscription)
    if user_id is None:
        logger.error("No user_id in subscription metadata")
        return
    status = subscription.get("status")
    plan = models.Plan.PREMIUM if status == "active" else models.Plan.FREE
    if not crud.set_user_plan(db, user_id, plan):
        logger.warning("User not found for subscription update", user_id=user_id)
        return

    cancel_at = subscription.get("cancel_at")
    crud.update_subscriptions(
        db,
        user_id,
        subscription.get("id"),
        status=status,
        end_date=(
            datetime.fromtimestamp(cancel_at, tz=timezone.utc).replace(tzinfo=None)
            if cancel_at
            else None
        ),
    )
    db.commit()
    logger.info("Subscription updated", user_id=user_id, status=status, plan=plan.value)


def _handle_subscription_deleted(db: Session, subscription) -> None:
    user_id = _user_id_from_metadata(subscription)
    if user_id is None:
        logger.error("No user_id in subscription metadata")
        return
    if not crud.set_user_plan(db, user_id, models.Plan.FREE):
        logger.warning("User not found for subscription cancel", user_id=user_id)
        return
    crud.update_subscriptions(
        db, user_id, subscription.get("id"), status="canceled", end_date=utcnow()
    )
    db.commit()
    logger.info("User downgraded to FREE", user_id=user_id)


def handle_event(db: Session, event) -> None:
    """Apply one verified Stripe event."""
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "checkout.session.completed":
        _handle_checkout_completed(db, obj)
    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        _handle_subscription_updated(db, obj)
    elif event_type == "customer.subscription.deleted":
        _handle_subscription_deleted(db, obj)
    elif event_type == "invoice.payment_succeeded":
        logger.info("Payment succeeded", user_id=_user_id_from_metadata(obj))
    elif event_type == "invoice.payment_failed":
        logger.error("Payment failed", user_id=_user_id_from_metadata(obj))
    else:
        logger.info("Unhandled Stripe event type", event_type=event_type)
