from postmarker.core import PostmarkClient
from postmarker.exceptions import ClientError
from services.errors import EmailValidationError, EmailDeliveryError
from datetime import datetime, timezone
from html import escape
import os
import logging
import uuid
from typing import Optional, Dict, Any, List, Union

logger = logging.getLogger(__name__)

# Verified sender in Postmark
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "noreply@snapitforms.com")
DEFAULT_TEST_RECIPIENT = "test@snapitforms.com"
BRAND_NAME = "SnapIT Forms"
DASHBOARD_URL = "https://snapitforms.com/dashboard.html"

# Postmark API error codes with a message we can show to the caller
POSTMARK_ERROR_MESSAGES = {
    300: "Email was rejected. Please check the recipient address.",
    406: "Email was rejected. Please check the recipient address.",
    400: "Sender address not verified with the email provider.",
    401: "Sender address not verified with the email provider.",
    10: "Email configuration issue. Please contact support.",
}


class EmailService:
    def __init__(self, client: Optional[PostmarkClient] = None):
        if client is not None:
            self.client = client
            return
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    async def send_email(
        self,
        to: Union[str, List[str], None],
        subject: Optional[str],
        html_body: Optional[str] = None,
        text_body: Optional[str] = None,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a single email. Returns {"messageId": ...}.

        Raises EmailValidationError when recipient, subject or both bodies are
        missing, EmailDeliveryError when Postmark rejects the message.
        """
        if not to or not subject or (not html_body and not text_body):
            raise EmailValidationError("Missing required fields: to, subject, and body content")

        recipients = to if isinstance(to, list) else [to]
        sender = f"{from_name} <{DEFAULT_SENDER}>" if from_name else DEFAULT_SENDER

        message = {
            "From": sender,
            "To": ", ".join(recipients),
            "Subject": subject,
        }
        if html_body:
            message["HtmlBody"] = html_body
        if text_body:
            message["TextBody"] = text_body
        if reply_to:
            message["ReplyTo"] = reply_to

        if not self.client:
            # Dev mode - just log
            message_id = f"dev-{uuid.uuid4()}"
            logger.info(f"[DEV MODE] Email logged (not sent) to {message['To']}: {subject}")
            return {"messageId": message_id}

        try:
            response = self.client.emails.send(**message)
        except ClientError as e:
            error_code = getattr(e, "error_code", None)
            logger.error(f"Failed to send email to {message['To']}: {e} (code={error_code})")
            raise EmailDeliveryError(
                POSTMARK_ERROR_MESSAGES.get(error_code, "Failed to send email"),
                {"provider_error": str(e), "provider_error_code": error_code},
            ) from e

        logger.info(f"Email sent to {message['To']}: {response['MessageID']}")
        return {"messageId": response["MessageID"]}

    async def send_form_notification(
        self,
        form_data: Optional[Dict[str, Any]],
        owner_email: Optional[str],
        form_name: Optional[str] = None,
        submission_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Notify a form owner of a new submission."""
        if not form_data or not owner_email:
            raise EmailValidationError("Missing required fields: formData and ownerEmail")

        submitted_at = datetime.now(timezone.utc)
        return await self.send_email(
            to=owner_email,
            subject=f"New {form_name or 'Form'} Submission - {BRAND_NAME}",
            html_body=build_form_notification_html(form_data, form_name, submission_id, submitted_at),
            text_body=build_form_notification_text(form_data, form_name, submission_id, submitted_at),
            from_name=BRAND_NAME,
            reply_to=form_data.get("email") or None,
        )

    async def send_test_email(self) -> Dict[str, Any]:
        """Send a provider self-test message to EMAIL_TEST_RECIPIENT."""
        sent_at = datetime.now(timezone.utc).isoformat()
        return await self.send_email(
            to=os.getenv("EMAIL_TEST_RECIPIENT", DEFAULT_TEST_RECIPIENT),
            subject=f"{BRAND_NAME} - Email Test",
            html_body=(
                "<h2>Email Test Successful!</h2>"
                "<p>Your email provider is configured correctly.</p>"
                f"<p><strong>Test Time:</strong> {sent_at}</p>"
                f"<p><em>This is an automated test from {BRAND_NAME}.</em></p>"
            ),
            text_body=(
                "Email Test Successful!\n\n"
                "Your email provider is configured correctly.\n"
                f"Test Time: {sent_at}\n\n"
                f"This is an automated test from {BRAND_NAME}."
            ),
            from_name=f"{BRAND_NAME} Test",
        )


# ============================================================================
# Form notification bodies
# ============================================================================

def _submission_fields(form_data: Dict[str, Any]):
    """(label, value) pairs for display; the form's access_key is never shown."""
    for key, value in form_data.items():
        if key == "access_key":
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        yield key.replace("_", " "), str(value)


def build_form_notification_html(
    form_data: Dict[str, Any],
    form_name: Optional[str] = None,
    submission_id: Optional[str] = None,
    submitted_at: Optional[datetime] = None,
) -> str:
    timestamp = (submitted_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S UTC")
    rows = "".join(
        f"""
                <tr>
                    <td style="padding: 8px; border-bottom: 1px solid #eee; font-weight: 600; text-transform: capitalize;">{escape(label)}:</td>
                    <td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(value)}</td>
                </tr>"""
        for label, value in _submission_fields(form_data)
    )

    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <title>New Form Submission</title>
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 20px; border-radius: 8px 8px 0 0;">
                    <h1 style="color: white; margin: 0; font-size: 24px;">New Form Submission</h1>
                </div>
                <div style="background: #f9f9f9; padding: 20px; border-radius: 0 0 8px 8px; border: 1px solid #ddd;">
                    <p style="margin-top: 0;"><strong>Form:</strong> {escape(form_name or 'Contact Form')}</p>
                    <p><strong>Submitted:</strong> {timestamp}</p>
                    <p><strong>Submission ID:</strong> {escape(submission_id or 'N/A')}</p>
                    <h3 style="color: #667eea; border-bottom: 2px solid #667eea; padding-bottom: 5px;">Submission Details</h3>
                    <table style="width: 100%; border-collapse: collapse; background: white; border-radius: 4px;">{rows}
                    </table>
                    <div style="margin-top: 20px; padding: 15px; background: #e8f2ff; border-radius: 4px; border-left: 4px solid #667eea;">
                        <p style="margin: 0; font-size: 14px;">
                            <strong>Powered by {BRAND_NAME}</strong><br>
                            Manage your forms at: <a href="{DASHBOARD_URL}" style="color: #667eea;">snapitforms.com</a>
                        </p>
                    </div>
                </div>
            </div>
        </body>
        </html>
    """


def build_form_notification_text(
    form_data: Dict[str, Any],
    form_name: Optional[str] = None,
    submission_id: Optional[str] = None,
    submitted_at: Optional[datetime] = None,
) -> str:
    timestamp = (submitted_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S UTC")
    fields = "\n".join(f"{label.upper()}: {value}" for label, value in _submission_fields(form_data))

    return f"""
NEW FORM SUBMISSION - {BRAND_NAME.upper()}

Form: {form_name or 'Contact Form'}
Submitted: {timestamp}
Submission ID: {submission_id or 'N/A'}

SUBMISSION DETAILS:
{fields}

---
Powered by {BRAND_NAME}
Manage your forms at: {DASHBOARD_URL}
""".strip()


email_service = EmailService()
