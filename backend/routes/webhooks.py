"""Webhook Routes - Stripe subscription webhooks.

POST /api/stripe/webhook - Main Stripe webhook endpoint
POST /api/webhooks/stripe - Alias (Stripe may be configured with this URL)

Responses:
- 200 {success: true, received: true} once the event is applied or legitimately skipped
- 400 {success: false, error: "Invalid signature"} when verification fails (nothing written)
- 500 {success: false, error, message} when the account store fails, so Stripe retries
"""
from fastapi import APIRouter, Request, Header
from services.errors import InvalidSignature
from services.stripe_webhook_service import stripe_webhook_service
from utils.cors import cors_json, preflight_response
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


async def _handle_stripe_webhook(request: Request, stripe_signature: str = None):
    """
    Core Stripe webhook handler.

    The body is read raw and handed to the service untouched; the signature
    covers the exact bytes Stripe sent.
    """
    payload = await request.body()

    try:
        await stripe_webhook_service.process_webhook(payload=payload, signature=stripe_signature)
    except InvalidSignature as e:
        logger.error(f"Webhook rejected: {e.message}")
        return cors_json({"success": False, "error": "Invalid signature"}, status_code=400)
    except Exception as e:
        logger.exception(f"Stripe webhook error: {e}")
        return cors_json(
            {"success": False, "error": "Webhook processing failed", "message": str(e)},
            status_code=500,
        )

    return cors_json({"success": True, "received": True})


# Primary webhook endpoint
@router.post("/api/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    """Handle Stripe webhooks at /api/stripe/webhook"""
    return await _handle_stripe_webhook(request, stripe_signature)


@router.post("/api/webhooks/stripe")
async def stripe_webhook_alias(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    """Handle Stripe webhooks at /api/webhooks/stripe (alias)"""
    return await _handle_stripe_webhook(request, stripe_signature)


@router.options("/api/stripe/webhook")
@router.options("/api/webhooks/stripe")
async def stripe_webhook_preflight():
    return preflight_response()
