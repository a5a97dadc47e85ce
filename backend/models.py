from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any, List, Union
from datetime import datetime
from enum import Enum

from services.plan_registry import TierCode, FREE_TIER_SUBMISSIONS

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class SubscriptionStatus(str, Enum):
    """Statuses written by this service. Stripe may report others (e.g. past_due)."""
    ACTIVE = "active"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"

# ============================================================================
# ACCOUNT
# ============================================================================

class AccountSubscription(BaseModel):
    """Account subscription record as stored in the users collection."""
    model_config = ConfigDict(extra="ignore")

    accessKey: str
    email: Optional[str] = None
    subscriptionTier: Optional[str] = TierCode.FREE.value
    subscriptionStatus: Optional[str] = None
    stripeCustomerId: Optional[str] = None
    stripeSubscriptionId: Optional[str] = None
    stripeSessionId: Optional[str] = None
    maxSubmissions: Optional[int] = FREE_TIER_SUBMISSIONS
    lastPaymentDate: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

# ============================================================================
# REQUEST BODIES
# ============================================================================

class CheckoutRequest(BaseModel):
    """Checkout body; fields are validated by the service so missing ones map to 400."""
    model_config = ConfigDict(extra="ignore")

    accessKey: Optional[str] = None
    tier: Optional[str] = None


class SendEmailRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    to: Optional[Union[str, List[str]]] = None
    subject: Optional[str] = None
    html_body: Optional[str] = Field(default=None, alias="htmlBody")
    text_body: Optional[str] = Field(default=None, alias="textBody")
    from_name: Optional[str] = Field(default=None, alias="fromName")
    reply_to: Optional[str] = Field(default=None, alias="replyTo")


class FormNotificationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    form_data: Optional[Dict[str, Any]] = Field(default=None, alias="formData")
    form_name: Optional[str] = Field(default=None, alias="formName")
    owner_email: Optional[str] = Field(default=None, alias="ownerEmail")
    submission_id: Optional[str] = Field(default=None, alias="submissionId")
