"""Account Store - MongoDB access to account subscription records.

Records live in the users collection:
- accessKey is the primary key (unique index)
- stripeCustomerId is a secondary lookup key (sparse index)

Writes are single-document update_one calls keyed by accessKey. updatedAt is
applied with $max so it never moves backwards for a record.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pymongo.errors import PyMongoError

from database import database, USERS_COLLECTION
from services.errors import StoreWriteFailure

logger = logging.getLogger(__name__)


class AccountStore:
    """Keyed reads and partial updates of account records."""

    def __init__(self, db_provider: Optional[Callable[[], Any]] = None):
        self._db_provider = db_provider or database.get_db

    def _users(self):
        return self._db_provider()[USERS_COLLECTION]

    async def find_by_access_key(self, access_key: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._users().find_one({"accessKey": access_key}, {"_id": 0})
        except PyMongoError as e:
            raise StoreWriteFailure(f"Account lookup failed: {e}", {"accessKey": access_key}) from e

    async def find_by_customer_id(self, customer_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Secondary lookup by Stripe customer id.

        If several accounts share a customer id the one with the lowest
        accessKey wins, so repeated deliveries always hit the same record.
        """
        if not customer_id:
            return None
        try:
            return await self._users().find_one(
                {"stripeCustomerId": customer_id},
                {"_id": 0},
                sort=[("accessKey", 1)],
            )
        except PyMongoError as e:
            raise StoreWriteFailure(f"Account lookup failed: {e}", {"stripeCustomerId": customer_id}) from e

    async def update_account(
        self,
        access_key: str,
        fields: Dict[str, Any],
        upsert: bool = False,
        now: Optional[datetime] = None,
    ) -> bool:
        """Set ``fields`` on one account and bump updatedAt.

        Returns True if a record was matched or created.
        """
        now = now or datetime.now(timezone.utc)
        update = {
            "$set": {k: v for k, v in fields.items() if k != "updatedAt"},
            "$max": {"updatedAt": now},
        }
        try:
            result = await self._users().update_one({"accessKey": access_key}, update, upsert=upsert)
        except PyMongoError as e:
            logger.error("Account update failed accessKey=%s error=%s", access_key, e)
            raise StoreWriteFailure(f"Account update failed: {e}", {"accessKey": access_key}) from e
        return bool(result.matched_count or getattr(result, "upserted_id", None))


# Singleton instance bound to the process-wide database
account_store = AccountStore()
