"""Billing summary for the account dashboard."""
import logging
from typing import Any, Dict, Optional

from models import AccountSubscription
from services.account_store import AccountStore, account_store
from services.plan_registry import plan_registry, TierCode

logger = logging.getLogger(__name__)


class BillingService:
    def __init__(self, store: Optional[AccountStore] = None):
        self.store = store or account_store

    async def get_account(self, access_key: Optional[str]) -> AccountSubscription:
        """Stored record as a model; an unknown or absent key gets free-tier defaults."""
        record = await self.store.find_by_access_key(access_key) if access_key else None
        if not record:
            return AccountSubscription(accessKey=access_key or "")
        return AccountSubscription.model_validate(record)

    async def get_billing_summary(self, access_key: Optional[str]) -> Dict[str, Any]:
        """Plan, quota and last payment for an account; free-tier defaults when unknown."""
        account = await self.get_account(access_key)

        tier = plan_registry.resolve_tier(account.subscriptionTier) or TierCode.FREE
        tier_def = plan_registry.get_tier(tier)

        return {
            "plan": tier.value,
            "status": account.subscriptionStatus,
            "usage": {
                "monthlyLimit": plan_registry.get_submission_limit(tier.value),
                "formsLimit": "unlimited",
            },
            "billing": {
                "lastPaymentDate": account.lastPaymentDate.isoformat() if account.lastPaymentDate else None,
                "amount": tier_def["amount"] / 100,
                "currency": "USD",
            },
        }


billing_service = BillingService()
