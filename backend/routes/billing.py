"""Billing Routes - Checkout and billing summary.

Endpoints:
- POST /api/stripe/checkout - Create Stripe checkout session for a tier
- GET /api/billing - Current plan, quota and last payment for an account
"""
from fastapi import APIRouter, Request, Header, Query
from pydantic import ValidationError
from typing import Optional
import json
import logging

from models import CheckoutRequest
from services.billing_service import billing_service
from services.errors import InvalidRequest, InvalidTier, CheckoutFailed, StoreWriteFailure
from services.stripe_service import stripe_service
from utils.cors import cors_json, preflight_response

logger = logging.getLogger(__name__)
router = APIRouter(tags=["billing"])


@router.post("/api/stripe/checkout")
async def create_checkout(request: Request):
    """
    Create Stripe checkout session for a subscription tier.

    Body: {"accessKey": "...", "tier": "pro"}
    """
    raw = await request.body()
    try:
        data = json.loads(raw or b"{}")
    except ValueError as e:
        logger.error(f"Failed to parse checkout request body: {e}")
        return cors_json({"success": False, "error": "Invalid JSON in request body"}, status_code=400)

    try:
        body = CheckoutRequest.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Checkout request has invalid fields: {e}")
        return cors_json(
            {"success": False, "error": "Invalid request: accessKey and tier must be strings"},
            status_code=400,
        )

    try:
        result = await stripe_service.create_checkout_session(access_key=body.accessKey, tier=body.tier)
    except (InvalidRequest, InvalidTier) as e:
        return cors_json({"success": False, "error": e.message}, status_code=400)
    except CheckoutFailed as e:
        return cors_json(
            {"success": False, "error": "Failed to create checkout session", "message": e.message},
            status_code=500,
        )

    return cors_json({"success": True, **result})


@router.get("/api/billing")
async def get_billing(
    access_key_query: Optional[str] = Query(None, alias="accessKey"),
    access_key_header: Optional[str] = Header(None, alias="X-Access-Key"),
):
    """Billing summary; the access key may come from ?accessKey= or X-Access-Key."""
    try:
        summary = await billing_service.get_billing_summary(access_key_query or access_key_header)
    except StoreWriteFailure as e:
        logger.error(f"Billing lookup failed: {e}")
        return cors_json({"error": "Internal server error"}, status_code=500)
    return cors_json(summary)


@router.options("/api/stripe/checkout")
@router.options("/api/billing")
async def billing_preflight():
    return preflight_response()
