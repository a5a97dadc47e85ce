"""Email Routes - transactional email and form-submission notifications.

POST /api/email/send - Send an email
POST /api/email/form-notification - Notify a form owner of a new submission
POST /api/email/test - Send a provider self-test email
"""
from fastapi import APIRouter, Request
from pydantic import ValidationError
import json
import logging

from models import SendEmailRequest, FormNotificationRequest
from services.email_service import email_service
from services.errors import EmailValidationError, EmailDeliveryError
from utils.cors import cors_json, preflight_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/email", tags=["email"])


async def _parse(request: Request, model):
    """Decode and validate the body. Wrongly typed fields raise EmailValidationError."""
    raw = await request.body()
    data = json.loads(raw or b"{}")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise EmailValidationError(f"Invalid field types: {fields or 'request body'}") from e


def _sent(result):
    return cors_json({
        "success": True,
        "messageId": result["messageId"],
        "message": "Email sent successfully",
    })


@router.post("/send")
async def send_email(request: Request):
    try:
        body = await _parse(request, SendEmailRequest)
        result = await email_service.send_email(
            to=body.to,
            subject=body.subject,
            html_body=body.html_body,
            text_body=body.text_body,
            from_name=body.from_name,
            reply_to=body.reply_to,
        )
    except ValueError:
        return cors_json({"error": "Invalid JSON in request body"}, status_code=400)
    except EmailValidationError as e:
        return cors_json({"error": e.message}, status_code=400)
    except EmailDeliveryError as e:
        return cors_json({"error": e.message, "details": e.details.get("provider_error")}, status_code=500)
    return _sent(result)


@router.post("/form-notification")
async def send_form_notification(request: Request):
    try:
        body = await _parse(request, FormNotificationRequest)
        result = await email_service.send_form_notification(
            form_data=body.form_data,
            owner_email=body.owner_email,
            form_name=body.form_name,
            submission_id=body.submission_id,
        )
    except ValueError:
        return cors_json({"error": "Invalid JSON in request body"}, status_code=400)
    except EmailValidationError as e:
        return cors_json({"error": e.message}, status_code=400)
    except EmailDeliveryError as e:
        return cors_json(
            {"error": "Failed to send form notification", "details": e.message},
            status_code=500,
        )
    return _sent(result)


@router.post("/test")
async def send_test_email():
    try:
        result = await email_service.send_test_email()
    except EmailDeliveryError as e:
        return cors_json({"error": "Email test failed", "details": e.message}, status_code=500)
    return cors_json({
        "success": True,
        "message": "Test email sent successfully",
        "messageId": result["messageId"],
    })


@router.options("/send")
@router.options("/form-notification")
@router.options("/test")
async def email_preflight():
    return preflight_response()
