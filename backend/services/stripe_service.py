"""Stripe Service - Checkout session creation.

Key Principles:
- Uses plan_registry as single source of truth for pricing
- All price_ids come from plan_registry
- Metadata carries accessKey and tier so the webhook can find the account
"""
import stripe
import os
import logging
from typing import Optional, Dict, Any

from services.account_store import AccountStore, account_store
from services.errors import CheckoutFailed, InvalidRequest, InvalidTier, StoreWriteFailure
from services.plan_registry import plan_registry

logger = logging.getLogger(__name__)

# Initialize Stripe (no placeholder default; missing key fails at checkout with clear error)
stripe.api_key = (os.getenv("STRIPE_SECRET_KEY") or os.getenv("STRIPE_API_KEY") or "").strip()

DEFAULT_FRONTEND_URL = "https://snapitforms.com"


def _frontend_url() -> str:
    return (os.getenv("FRONTEND_URL") or DEFAULT_FRONTEND_URL).strip().rstrip("/")


class StripeService:
    """Stripe billing operations service."""

    def __init__(self, store: Optional[AccountStore] = None):
        self.store = store or account_store

    async def create_checkout_session(
        self,
        access_key: Optional[str],
        tier: Optional[str],
        frontend_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create Stripe checkout session for a tier subscription.

        Args:
            access_key: Account access key (MANDATORY for webhook)
            tier: Tier name from the tier registry (starter ... unlimited)
            frontend_url: Base URL for success/cancel redirects; defaults to FRONTEND_URL

        Returns:
            Dict with url and sessionId

        Raises:
            InvalidRequest: access_key or tier missing
            InvalidTier: tier is not purchasable
            CheckoutFailed: Stripe rejected the session
        """
        if not access_key or not tier:
            raise InvalidRequest("Missing required fields: accessKey and tier")

        if not plan_registry.is_purchasable(tier):
            raise InvalidTier(
                f"Invalid tier: {tier}. Available tiers: {', '.join(plan_registry.purchasable_tiers())}"
            )
        tier_code = plan_registry.resolve_tier(tier)
        tier_def = plan_registry.get_tier(tier_code)

        # Email is only a prefill; Stripe collects it when we can't
        customer_email = None
        try:
            account = await self.store.find_by_access_key(access_key)
            if account:
                customer_email = account.get("email")
        except StoreWriteFailure as e:
            logger.error("Account lookup failed for checkout, continuing without email: %s", e)

        base = (frontend_url or _frontend_url()).rstrip("/")
        session_params = {
            "payment_method_types": ["card"],
            "mode": "subscription",
            "line_items": [
                {
                    "price": tier_def["stripe_price_id"],
                    "quantity": 1,
                },
            ],
            "success_url": f"{base}/dashboard.html?key={access_key}&success=true&session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base}/?cancelled=true",
            "metadata": {
                "accessKey": access_key,
                "tier": tier_code.value,
                "submissions": str(tier_def["submissions"]),
            },
        }
        if customer_email:
            session_params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**session_params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout error for account {access_key}: {e}")
            raise CheckoutFailed(f"Failed to create checkout session: {e}") from e

        logger.info(f"Checkout session created for account {access_key}: {session.id} ({tier_code.value})")
        return {
            "url": session.url,
            "sessionId": session.id,
        }


# Singleton instance
stripe_service = StripeService()
