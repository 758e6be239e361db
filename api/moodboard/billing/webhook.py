"""Stripe webhook verification and event handling.

Subscription events move a profile between the free and pro tiers; every
handled event is recorded once in ``billing_events`` keyed by the Stripe
event id, so redelivered events are acknowledged without being applied
again.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID
import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from moodboard.logging_config import logger
from moodboard.models import BillingEvent, Profile, ProfileRole, SubscriptionTier

# Subscription statuses that keep pro access
PRO_STATUSES = frozenset({"active", "trialing", "past_due"})


class WebhookVerificationError(Exception):
    """Signature or payload of a webhook request is invalid."""


def verify_event(payload: bytes, signature: Optional[str], secret: str, tolerance: int = 300) -> dict:
    """Check the ``Stripe-Signature`` header and decode the event.

    Raises:
        WebhookVerificationError: If the signature does not match or the body is not JSON
    """
    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise WebhookVerificationError("Invalid payload") from e
    try:
        stripe.WebhookSignature.verify_header(body, signature or "", secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise WebhookVerificationError(str(e)) from e

    try:
        event = json.loads(body)
    except ValueError as e:
        raise WebhookVerificationError("Invalid payload") from e
    if not isinstance(event, dict) or not event.get("type"):
        raise WebhookVerificationError("Invalid payload")
    return event


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _uuid(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def _find_profile(db: AsyncSession, user_id: Optional[UUID], customer_id: Optional[str]) -> Optional[Profile]:
    if user_id is not None:
        result = await db.execute(select(Profile).where(Profile.id == user_id))
        profile = result.scalar_one_or_none()
        if profile is not None:
            return profile
    if customer_id:
        result = await db.execute(select(Profile).where(Profile.stripe_customer_id == customer_id))
        return result.scalar_one_or_none()
    return None


def _subscription_user(sub: dict) -> Optional[UUID]:
    metadata = sub.get("metadata") or {}
    return _uuid(metadata.get("supabase_user_id") or metadata.get("user_id") or sub.get("client_reference_id"))


def _invoice_user(invoice: dict) -> Optional[UUID]:
    details = invoice.get("subscription_details") or {}
    user_id = (details.get("metadata") or {}).get("supabase_user_id")
    if not user_id:
        lines = (invoice.get("lines") or {}).get("data") or []
        if lines:
            user_id = (lines[0].get("metadata") or {}).get("supabase_user_id")
    return _uuid(user_id)


def _first_item(sub: dict) -> dict:
    items = (sub.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _apply_subscription(profile: Profile, sub: dict) -> None:
    item = _first_item(sub)
    status = sub.get("status")
    is_pro = status in PRO_STATUSES

    profile.subscription_status = status
    profile.subscription_tier = SubscriptionTier.PRO if is_pro else SubscriptionTier.FREE
    profile.subscription_price_id = (item.get("price") or {}).get("id")
    profile.current_period_end = _timestamp(sub.get("current_period_end") or item.get("current_period_end"))
    profile.cancel_at = _timestamp(sub.get("cancel_at"))
    profile.trial_ends_at = _timestamp(sub.get("trial_end"))
    if sub.get("customer") and not profile.stripe_customer_id:
        profile.stripe_customer_id = sub["customer"]
    if profile.role != ProfileRole.ADMIN:
        profile.role = ProfileRole.PRO if is_pro else ProfileRole.USER


def _cancel_subscription(profile: Profile) -> None:
    profile.subscription_status = "canceled"
    profile.subscription_tier = SubscriptionTier.FREE
    if profile.role != ProfileRole.ADMIN:
        profile.role = ProfileRole.USER


async def process_event(db: AsyncSession, event: dict) -> Optional[BillingEvent]:
    """Apply a verified event and record it.

    Returns:
        The recorded billing event, or None when the event type is ignored,
        no user could be resolved or the event was already processed
    """
    event_id = event.get("id")
    event_type = event["type"]
    obj = (event.get("data") or {}).get("object") or {}

    if event_id:
        existing = await db.execute(select(BillingEvent.id).where(BillingEvent.stripe_event_id == event_id))
        if existing.scalar_one_or_none() is not None:
            logger.info("Duplicate Stripe event ignored", event_id=event_id, event_type=event_type)
            return None

    customer_id = obj.get("customer") if isinstance(obj.get("customer"), str) else None

    if event_type in ("customer.subscription.created", "customer.subscription.updated"):
        profile = await _find_profile(db, _subscription_user(obj), customer_id)
        if profile is None:
            return _unmatched(event_id, event_type)
        _apply_subscription(profile, obj)
        created = event_type.endswith("created")
        record = (
            "subscription.created" if created else "subscription.updated",
            (_first_item(obj).get("price") or {}).get("unit_amount"),
            "Pro Plan Subscription Created" if created else "Subscription Updated",
            obj.get("status"),
        )
    elif event_type == "customer.subscription.deleted":
        profile = await _find_profile(db, _subscription_user(obj), customer_id)
        if profile is None:
            return _unmatched(event_id, event_type)
        _cancel_subscription(profile)
        record = ("subscription.canceled", None, "Subscription Canceled", "canceled")
    elif event_type == "invoice.payment_succeeded":
        profile = await _find_profile(db, _invoice_user(obj), customer_id)
        if profile is None:
            return _unmatched(event_id, event_type)
        record = ("payment.succeeded", obj.get("amount_paid"), "Payment Successful", "completed")
    elif event_type == "invoice.payment_failed":
        profile = await _find_profile(db, _invoice_user(obj), customer_id)
        if profile is None:
            return _unmatched(event_id, event_type)
        record = ("payment.failed", obj.get("amount_due"), "Payment Failed", "failed")
    elif event_type == "checkout.session.completed":
        profile = await _find_profile(db, _uuid(obj.get("client_reference_id")), None)
        if profile is None or not customer_id:
            return _unmatched(event_id, event_type)
        profile.stripe_customer_id = customer_id
        record = ("checkout.completed", obj.get("amount_total"), "Checkout Completed", "completed")
    else:
        logger.debug("Unhandled Stripe event type", event_type=event_type)
        return None

    kind, amount, description, status = record
    billing_event = BillingEvent(
        user_id=profile.id,
        stripe_customer_id=customer_id or profile.stripe_customer_id,
        event_type=kind,
        amount=amount,
        currency=obj.get("currency") or "usd",
        status=status,
        description=description,
        stripe_event_id=event_id,
        event_metadata={"stripe_event": event_type},
    )
    db.add(billing_event)
    logger.info(
        "Stripe event processed",
        event_id=event_id,
        event_type=event_type,
        user_id=str(profile.id),
        tier=profile.subscription_tier.value if profile.subscription_tier else None,
    )
    return billing_event


def _unmatched(event_id: Optional[str], event_type: str) -> None:
    logger.warning("Stripe event without a matching profile", event_id=event_id, event_type=event_type)
    return None
