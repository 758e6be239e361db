"""Billing routes: Stripe checkout, customer portal, webhook and history."""

from typing import Optional
import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from moodboard.auth.middleware import AuthUser, get_current_user
from moodboard.auth.profiles import ensure_profile
from moodboard.billing.stripe_client import StripeBilling, get_stripe
from moodboard.billing.webhook import WebhookVerificationError, process_event, verify_event
from moodboard.config import settings
from moodboard.db import get_db
from moodboard.logging_config import logger
from moodboard.metrics import webhook_events_total
from moodboard.models import BillingEvent
from moodboard.models.base import as_utc

router = APIRouter()


class CheckoutRequest(BaseModel):
    """Checkout session request; defaults to the monthly pro price."""

    priceId: Optional[str] = None
    mode: str = "subscription"
    interval: Optional[str] = None


def _origin(request: Request) -> str:
    return (request.headers.get("origin") or settings.site_url).rstrip("/")


@router.post("/checkout")
async def create_checkout(
    body: CheckoutRequest,
    request: Request,
    current_user: AuthUser = Depends(get_current_user),
    billing: StripeBilling = Depends(get_stripe),
    db: AsyncSession = Depends(get_db),
):
    """Create a Stripe Checkout session, creating the Stripe customer first if needed."""
    price_id = body.priceId or (
        settings.stripe_price_pro_yearly if body.interval == "yearly" else settings.stripe_price_pro_monthly
    )
    if not price_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing price id")
    if body.mode not in ("subscription", "payment"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid checkout mode")

    profile = await ensure_profile(db, current_user)
    user_id = str(current_user.user_id)
    try:
        if not profile.stripe_customer_id:
            profile.stripe_customer_id = await run_in_threadpool(
                billing.create_customer, profile.email or current_user.email, user_id
            )
            # Keep the customer even if session creation fails below
            await db.commit()
        url = await run_in_threadpool(
            billing.create_checkout_session,
            profile.stripe_customer_id,
            price_id,
            user_id,
            _origin(request),
            body.mode,
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e) or "Server error")

    logger.info("Checkout session created", user_id=user_id, price_id=price_id)
    return {"url": url}


@router.post("/portal")
async def create_portal(
    request: Request,
    current_user: AuthUser = Depends(get_current_user),
    billing: StripeBilling = Depends(get_stripe),
    db: AsyncSession = Depends(get_db),
):
    """Open the Stripe customer portal for an existing customer."""
    profile = await ensure_profile(db, current_user)
    if not profile.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No Stripe customer")

    try:
        url = await run_in_threadpool(billing.create_portal_session, profile.stripe_customer_id, _origin(request))
    except stripe.StripeError as e:
        logger.error("Stripe portal failed", user_id=str(current_user.user_id), error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e) or "Server error")

    return {"url": url}


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Receive Stripe events; the raw body is needed for signature verification."""
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Missing webhook secret",
        )

    payload = await request.body()
    try:
        event = verify_event(
            payload,
            request.headers.get("stripe-signature"),
            settings.stripe_webhook_secret,
            settings.stripe_webhook_tolerance_seconds,
        )
    except WebhookVerificationError as e:
        webhook_events_total.labels(event_type="unknown", status="invalid").inc()
        logger.warning("Stripe webhook rejected", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {e}")

    try:
        recorded = await process_event(db, event)
        await db.commit()
    except IntegrityError:
        # Same event delivered concurrently and recorded by the other request
        await db.rollback()
        recorded = None
        logger.info("Stripe event recorded concurrently", event_id=event.get("id"))

    webhook_events_total.labels(
        event_type=event["type"],
        status="processed" if recorded is not None else "skipped",
    ).inc()
    return {"received": True}


@router.get("/history")
async def billing_history(
    limit: int = 50,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Billing events of the current user, newest first."""
    result = await db.execute(
        select(BillingEvent)
        .where(BillingEvent.user_id == current_user.user_id)
        .order_by(BillingEvent.created_at.desc())
        .limit(max(1, min(limit, 200)))
    )
    return {
        "events": [
            {
                "id": str(event.id),
                "event_type": event.event_type,
                "amount": event.amount,
                "currency": event.currency,
                "status": event.status,
                "description": event.description,
                "created_at": as_utc(event.created_at).isoformat() if event.created_at else None,
            }
            for event in result.scalars().all()
        ]
    }
