"""Thin wrapper over the Stripe API calls the billing routes make."""

from typing import Optional
import stripe
from fastapi import HTTPException, status
from moodboard.config import settings
from moodboard.logging_config import logger


class StripeBilling:
    """Stripe operations bound to one secret key."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def create_customer(self, email: Optional[str], user_id: str) -> str:
        customer = stripe.Customer.create(
            api_key=self.api_key,
            email=email or None,
            metadata={"supabase_user_id": user_id},
        )
        logger.info("Stripe customer created", user_id=user_id, customer_id=customer.id)
        return customer.id

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        origin: str,
        mode: str = "subscription",
    ) -> str:
        params = {
            "api_key": self.api_key,
            "mode": mode,
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{origin}/?billing=success",
            "cancel_url": f"{origin}/?billing=cancel",
            "allow_promotion_codes": True,
            "client_reference_id": user_id,
            "metadata": {"supabase_user_id": user_id},
        }
        if mode == "subscription":
            params["subscription_data"] = {"metadata": {"supabase_user_id": user_id}}
        session = stripe.checkout.Session.create(**params)
        return session.url

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        portal = stripe.billing_portal.Session.create(
            api_key=self.api_key,
            customer=customer_id,
            return_url=return_url,
        )
        return portal.url


def get_stripe() -> StripeBilling:
    """Dependency; 500 when STRIPE_SECRET_KEY is missing."""
    if not settings.stripe_secret_key:
        logger.error("STRIPE_SECRET_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Missing STRIPE_SECRET_KEY",
        )
    return StripeBilling(settings.stripe_secret_key)
