"""Billing and notification exceptions.

Every error carries a machine-readable ``code`` so route handlers can map it
onto an HTTP status and a JSON envelope without string matching.
"""
from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base exception for billing and webhook errors."""

    code = "BILLING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class InvalidSignature(BillingError):
    """Webhook payload does not match its signature header."""
    code = "INVALID_SIGNATURE"


class MissingMetadata(BillingError):
    """A correlation field required by an event is absent."""
    code = "MISSING_METADATA"


class StoreWriteFailure(BillingError):
    """The account store rejected a read or write."""
    code = "STORE_WRITE_FAILURE"


class InvalidRequest(BillingError):
    """Request is missing a required field."""
    code = "INVALID_REQUEST"


class InvalidTier(BillingError):
    """Tier name is not in the purchasable tier table."""
    code = "INVALID_TIER"


class CheckoutFailed(BillingError):
    """Stripe refused to create a checkout session."""
    code = "CHECKOUT_FAILED"


class EmailValidationError(BillingError):
    code = "EMAIL_VALIDATION_ERROR"


class EmailDeliveryError(BillingError):
    code = "EMAIL_DELIVERY_ERROR"
