"""Canonical Tier Registry - Single Source of Truth for subscription tiers.

This is the AUTHORITATIVE source for:
- Tier codes
- Monthly submission quotas
- Pricing (monthly, USD cents)
- Stripe price ID mappings

RULES:
1. maxSubmissions on an account is ALWAYS derived from its tier via this table
2. The free tier has no Stripe price and cannot be purchased
3. Price IDs can be overridden per tier with STRIPE_PRICE_<TIER> env vars
"""
from enum import Enum
from typing import Dict, List, Optional, Any
import os
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# TIER ENUM - Canonical Tier Codes
# ============================================================================
class TierCode(str, Enum):
    """Canonical subscription tiers, cheapest first."""
    FREE = "free"
    STARTER = "starter"
    BASIC = "basic"
    PREMIUM = "premium"
    PRO = "pro"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"
    SCALE = "scale"
    UNLIMITED = "unlimited"


FREE_TIER_SUBMISSIONS = 1000


# ============================================================================
# TIER DEFINITIONS - Complete tier configuration
# ============================================================================
TIER_DEFINITIONS: Dict[TierCode, Dict[str, Any]] = {
    TierCode.FREE: {
        "name": "Free Plan",
        "amount": 0,
        "submissions": FREE_TIER_SUBMISSIONS,
        "stripe_price_id": None,
    },
    TierCode.STARTER: {
        "name": "Starter Plan",
        "amount": 299,
        "submissions": 1000,
        "stripe_price_id": "price_1QJcj0EpdWEENcj1VWAHZIzr",
    },
    TierCode.BASIC: {
        "name": "Basic Plan",
        "amount": 499,
        "submissions": 2500,
        "stripe_price_id": "price_1QJcjSEpdWEENcj1o8Fq4fDH",
    },
    TierCode.PREMIUM: {
        "name": "Premium Plan",
        "amount": 999,
        "submissions": 5000,
        "stripe_price_id": "price_1QJcjrEpdWEENcj1YVvhq8sH",
    },
    TierCode.PRO: {
        "name": "Pro Plan",
        "amount": 1499,
        "submissions": 25000,
        "stripe_price_id": "price_1QJck7EpdWEENcj1rKtmUWJ7",
    },
    TierCode.BUSINESS: {
        "name": "Business Plan",
        "amount": 2999,
        "submissions": 75000,
        "stripe_price_id": "price_1QJckOEpdWEENcj1d4xQJBvH",
    },
    TierCode.ENTERPRISE: {
        "name": "Enterprise Plan",
        "amount": 5999,
        "submissions": 300000,
        "stripe_price_id": "price_1QJckhEpdWEENcj1gHLz4Rfv",
    },
    TierCode.SCALE: {
        "name": "Scale Plan",
        "amount": 9999,
        "submissions": 1000000,
        "stripe_price_id": "price_1QJckzEpdWEENcj1vK8c7xJ5",
    },
    TierCode.UNLIMITED: {
        "name": "Unlimited Plan",
        "amount": 19999,
        "submissions": 2500000,
        "stripe_price_id": "price_1QJclGEpdWEENcj1h9gq4QfZ",
    },
}


# ============================================================================
# TIER REGISTRY SERVICE
# ============================================================================
class TierRegistryService:
    """Lookups over the fixed tier table."""

    def resolve_tier(self, tier: Optional[str]) -> Optional[TierCode]:
        """Return the TierCode for a tier name, or None if unknown. Case-insensitive."""
        if not tier:
            return None
        try:
            return TierCode(str(tier).strip().lower())
        except ValueError:
            return None

    def get_tier(self, tier: TierCode) -> Dict[str, Any]:
        """Get complete tier definition, including the effective price ID."""
        definition = dict(TIER_DEFINITIONS[tier])
        definition["code"] = tier.value
        definition["stripe_price_id"] = self.get_price_id(tier)
        return definition

    def get_submission_limit(self, tier: Optional[str]) -> int:
        """Quota for a tier name; unknown or missing tiers get the free quota."""
        code = self.resolve_tier(tier)
        if code is None:
            return FREE_TIER_SUBMISSIONS
        return TIER_DEFINITIONS[code]["submissions"]

    def get_price_id(self, tier: TierCode) -> Optional[str]:
        if tier == TierCode.FREE:
            return None
        override = (os.getenv(f"STRIPE_PRICE_{tier.name}") or "").strip()
        return override or TIER_DEFINITIONS[tier]["stripe_price_id"]

    def purchasable_tiers(self) -> List[str]:
        """Tier names that can be bought through checkout, in price order."""
        return [code.value for code in TierCode if code != TierCode.FREE]

    def is_purchasable(self, tier: Optional[str]) -> bool:
        code = self.resolve_tier(tier)
        return code is not None and code != TierCode.FREE


# Singleton instance
plan_registry = TierRegistryService()
