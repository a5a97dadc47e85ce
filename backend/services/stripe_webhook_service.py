"""Stripe Webhook Service - subscription state reconciliation.

This service applies Stripe webhook events to account subscription records.

Key Principles:
1. Signature verification: the raw, undecoded body is verified before anything else
2. One event, at most one account write (single-document update keyed by accessKey)
3. Idempotent transitions: every write is a $set of values carried by the event,
   so redelivery converges on the same record
4. Forward compatible: unknown event types are acknowledged and ignored
5. Quota is always derived from the tier table, never from the event
6. Only a new checkout moves an account out of cancelled

Events Handled:
- checkout.session.completed (activates the purchased tier)
- invoice.payment_succeeded
- invoice.payment_failed
- customer.subscription.created (informational)
- customer.subscription.updated
- customer.subscription.deleted (forced downgrade to free)

Event ordering is not reconciled: events are applied in receipt order and each
one is authoritative for the fields it carries.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import stripe

from models import SubscriptionStatus
from services.account_store import AccountStore, account_store
from services.errors import InvalidSignature, MissingMetadata, StoreWriteFailure
from services.plan_registry import plan_registry, TierCode, FREE_TIER_SUBMISSIONS

logger = logging.getLogger(__name__)

# Max age of the signed timestamp (Stripe's default)
SIGNATURE_TOLERANCE_SECONDS = 300


def get_webhook_secret() -> str:
    """STRIPE_WEBHOOK_SECRET, else the _TEST/_LIVE variant matching the API key mode."""
    explicit = (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()
    if explicit:
        return explicit
    key = (os.getenv("STRIPE_SECRET_KEY") or os.getenv("STRIPE_API_KEY") or "").strip()
    if key.startswith("sk_live_"):
        return (os.getenv("STRIPE_WEBHOOK_SECRET_LIVE") or "").strip()
    if key.startswith("sk_test_"):
        return (os.getenv("STRIPE_WEBHOOK_SECRET_TEST") or "").strip()
    return ""


# ============================================================================
# EVENT MODEL
# ============================================================================
class EventKind(str, Enum):
    """Stripe event types this service understands. Anything else is UNKNOWN."""
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    UNKNOWN = "unknown"

    @classmethod
    def from_event_type(cls, event_type: Optional[str]) -> "EventKind":
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNKNOWN


class Outcome(str, Enum):
    APPLIED = "applied"
    NO_ACCOUNT = "no_account"
    SKIPPED = "skipped"
    IGNORED = "ignored"


@dataclass
class WebhookEvent:
    """A verified, decoded Stripe event."""
    event_id: Optional[str]
    event_type: Optional[str]
    kind: EventKind
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookResult:
    event_id: Optional[str]
    event_type: Optional[str]
    outcome: Outcome
    access_key: Optional[str] = None
    error: Optional[str] = None


# ============================================================================
# SERVICE
# ============================================================================
class StripeWebhookService:
    """Verifies Stripe webhooks and applies them to account records."""

    def __init__(
        self,
        store: Optional[AccountStore] = None,
        webhook_secret: Optional[str] = None,
        tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
    ):
        self.store = store or account_store
        self._webhook_secret = webhook_secret
        self.tolerance = tolerance
        self._handlers: Dict[EventKind, Callable[[WebhookEvent], Awaitable[WebhookResult]]] = {
            EventKind.CHECKOUT_SESSION_COMPLETED: self._handle_checkout_completed,
            EventKind.INVOICE_PAYMENT_SUCCEEDED: self._handle_payment_succeeded,
            EventKind.INVOICE_PAYMENT_FAILED: self._handle_payment_failed,
            EventKind.SUBSCRIPTION_CREATED: self._handle_subscription_created,
            EventKind.SUBSCRIPTION_UPDATED: self._handle_subscription_updated,
            EventKind.SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
        }

    @property
    def webhook_secret(self) -> str:
        if self._webhook_secret is not None:
            return self._webhook_secret
        return get_webhook_secret()

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Verify, decode and apply one webhook delivery.

        Raises:
            InvalidSignature: signature, secret or payload rejected (nothing written)
            StoreWriteFailure: the account store failed; Stripe should retry
        """
        event = self.construct_event(payload, signature)
        logger.info(
            "WEBHOOK_RECEIVED event_id=%s event_type=%s kind=%s",
            event.event_id, event.event_type, event.kind.value,
        )

        handler = self._handlers.get(event.kind, self._handle_unknown)
        try:
            result = await handler(event)
        except MissingMetadata as e:
            logger.error(
                "WEBHOOK_SKIPPED event_id=%s event_type=%s reason=%s",
                event.event_id, event.event_type, e.message,
            )
            return WebhookResult(event.event_id, event.event_type, Outcome.SKIPPED, error=e.message)
        except StoreWriteFailure as e:
            logger.error(
                "WEBHOOK_PROCESSING_FAILED event_id=%s event_type=%s error=%s",
                event.event_id, event.event_type, e.message,
            )
            raise

        logger.info(
            "WEBHOOK_PROCESSED_OK event_id=%s event_type=%s outcome=%s access_key=%s",
            event.event_id, event.event_type, result.outcome.value, result.access_key,
        )
        return result

    def construct_event(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        """Verify the signature over the raw body, then decode it."""
        secret = self.webhook_secret
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET not set - rejecting webhook")
            raise InvalidSignature("Webhook secret not configured")
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
            stripe.WebhookSignature.verify_header(body, signature, secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise InvalidSignature("Invalid signature") from e
        except UnicodeDecodeError as e:
            raise InvalidSignature("Payload is not valid UTF-8") from e

        try:
            raw_event = json.loads(body)
        except ValueError as e:
            logger.warning("Webhook payload is not valid JSON: %s", e)
            raise InvalidSignature("Invalid payload") from e
        if not isinstance(raw_event, dict):
            raise InvalidSignature("Invalid payload")

        event_type = raw_event.get("type")
        data = raw_event.get("data") or {}
        obj = (data.get("object") if isinstance(data, dict) else None) or {}
        if not isinstance(obj, dict):
            logger.warning("Webhook data.object is not an object (event %s)", raw_event.get("id"))
            raise InvalidSignature("Invalid payload")
        return WebhookEvent(
            event_id=raw_event.get("id"),
            event_type=event_type,
            kind=EventKind.from_event_type(event_type),
            data=obj,
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _handle_checkout_completed(self, event: WebhookEvent) -> WebhookResult:
        """Activate the purchased tier on the account named in session metadata."""
        session = event.data
        metadata = session.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise MissingMetadata(f"Metadata of checkout session {session.get('id')} is not an object")
        access_key = metadata.get("accessKey")
        if not access_key:
            raise MissingMetadata(f"No accessKey in metadata of checkout session {session.get('id')}")

        tier = plan_registry.resolve_tier(metadata.get("tier"))
        if tier is None:
            raise MissingMetadata(
                f"Missing or unknown tier {metadata.get('tier')!r} in checkout session {session.get('id')}"
            )

        max_submissions = plan_registry.get_submission_limit(tier.value)
        submissions = metadata.get("submissions")
        if submissions is not None and str(submissions) != str(max_submissions):
            logger.warning(
                "Checkout metadata submissions=%s disagrees with tier %s quota %s; using tier quota",
                submissions, tier.value, max_submissions,
            )

        # Upsert: the first paid checkout may precede the account's local record
        await self.store.update_account(
            access_key,
            {
                "subscriptionTier": tier.value,
                "subscriptionStatus": SubscriptionStatus.ACTIVE.value,
                "stripeCustomerId": session.get("customer"),
                "stripeSessionId": session.get("id"),
                "maxSubmissions": max_submissions,
            },
            upsert=True,
        )
        logger.info("Subscription for account %s set to %s tier", access_key, tier.value)
        return WebhookResult(event.event_id, event.event_type, Outcome.APPLIED, access_key=access_key)

    async def _handle_payment_succeeded(self, event: WebhookEvent) -> WebhookResult:
        invoice = event.data
        created = invoice.get("created")
        paid_at = (
            datetime.fromtimestamp(int(created), timezone.utc)
            if created is not None
            else datetime.now(timezone.utc)
        )
        return await self._update_customer_account(
            event,
            {
                "subscriptionStatus": SubscriptionStatus.ACTIVE.value,
                "lastPaymentDate": paid_at,
            },
        )

    async def _handle_payment_failed(self, event: WebhookEvent) -> WebhookResult:
        # Tier and quota are kept; any grace period is business policy elsewhere
        return await self._update_customer_account(
            event,
            {"subscriptionStatus": SubscriptionStatus.PAYMENT_FAILED.value},
        )

    async def _handle_subscription_created(self, event: WebhookEvent) -> WebhookResult:
        logger.info("Subscription created: %s (customer %s)", event.data.get("id"), event.data.get("customer"))
        return WebhookResult(event.event_id, event.event_type, Outcome.IGNORED)

    async def _handle_subscription_updated(self, event: WebhookEvent) -> WebhookResult:
        subscription = event.data
        fields = {"stripeSubscriptionId": subscription.get("id")}
        if subscription.get("status") is not None:
            fields["subscriptionStatus"] = subscription["status"]
        return await self._update_customer_account(event, fields)

    async def _handle_subscription_deleted(self, event: WebhookEvent) -> WebhookResult:
        return await self._update_customer_account(
            event,
            {
                "subscriptionStatus": SubscriptionStatus.CANCELLED.value,
                "subscriptionTier": TierCode.FREE.value,
                "maxSubmissions": FREE_TIER_SUBMISSIONS,
            },
            from_cancelled=True,
        )

    async def _handle_unknown(self, event: WebhookEvent) -> WebhookResult:
        logger.info("Unhandled event type: %s", event.event_type)
        return WebhookResult(event.event_id, event.event_type, Outcome.IGNORED)

    async def _update_customer_account(
        self,
        event: WebhookEvent,
        fields: Dict[str, Any],
        from_cancelled: bool = False,
    ) -> WebhookResult:
        """Apply ``fields`` to the account owning the event's Stripe customer, if any.

        A cancelled account only leaves that state through a new checkout, so
        unless ``from_cancelled`` is set the event is ignored for it.
        """
        customer_id = event.data.get("customer")
        account = await self.store.find_by_customer_id(customer_id)
        if not account:
            logger.info(
                "No account for customer %s (event %s) - nothing to update",
                customer_id, event.event_type,
            )
            return WebhookResult(event.event_id, event.event_type, Outcome.NO_ACCOUNT)

        access_key = account["accessKey"]
        if not from_cancelled and account.get("subscriptionStatus") == SubscriptionStatus.CANCELLED.value:
            logger.info(
                "Account %s is cancelled - %s ignored until a new checkout",
                access_key, event.event_type,
            )
            return WebhookResult(event.event_id, event.event_type, Outcome.IGNORED, access_key=access_key)

        await self.store.update_account(access_key, fields)
        logger.info("Event %s applied to account %s", event.event_type, access_key)
        return WebhookResult(event.event_id, event.event_type, Outcome.APPLIED, access_key=access_key)


# Singleton instance
stripe_webhook_service = StripeWebhookService()
