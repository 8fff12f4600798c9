"""Email sending via SendGrid API.

Verification and confirmation emails for registry claims. Delivery is best
effort: failures are reported through EmailResult, never raised, and never
roll back a claim.
"""

import logging
from dataclasses import dataclass
from html import escape

import httpx

from registry.core.config import settings

logger = logging.getLogger(__name__)

_SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"
_SENDGRID_TIMEOUT = 10.0


@dataclass(frozen=True)
class EmailResult:
    """Outcome of a send attempt.

    Attributes:
        success: Whether SendGrid accepted the message.
        error: Failure description when success is False.
    """

    success: bool
    error: str | None = None


async def send_email(
    *,
    to_email: str,
    subject: str,
    html_body: str,
    text_body: str,
    client: httpx.AsyncClient | None = None,
) -> EmailResult:
    """Send one email through SendGrid.

    Args:
        to_email: Recipient address.
        subject: Subject line.
        html_body: HTML part.
        text_body: Plain-text part.
        client: Optional shared client; a short-lived one is used otherwise.

    Returns:
        EmailResult describing the outcome.
    """
    message = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.email_from},
        "subject": subject,
        "content": [
            {"type": "text/plain", "value": text_body},
            {"type": "text/html", "value": html_body},
        ],
    }
    headers = {
        "Authorization": f"Bearer {settings.sendgrid_api_key.get_secret_value()}",
    }

    try:
        if client is not None:
            resp = await client.post(
                _SENDGRID_API_URL, headers=headers, json=message, timeout=_SENDGRID_TIMEOUT
            )
        else:
            async with httpx.AsyncClient() as own_client:
                resp = await own_client.post(
                    _SENDGRID_API_URL,
                    headers=headers,
                    json=message,
                    timeout=_SENDGRID_TIMEOUT,
                )
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.warning("SendGrid rejected email: HTTP %d", e.response.status_code)
        return EmailResult(success=False, error=e.response.text or str(e))
    except httpx.HTTPError as e:
        logger.warning("Failed to send email", exc_info=True)
        return EmailResult(success=False, error=str(e) or type(e).__name__)
    return EmailResult(success=True)


async def send_verification_email(
    *,
    to_email: str,
    item_name: str,
    verification_link: str,
    client: httpx.AsyncClient | None = None,
) -> EmailResult:
    """Ask the claimer to confirm their claim via a 24-hour link."""
    text_body = (
        f"Hello,\n\nPlease verify your claim for {item_name} by clicking the link "
        f"below:\n\n{verification_link}\n\nThis link will expire in 24 hours.\n\n"
        "Thank you!"
    )
    html_body = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        "<h2>Verify Your Baby Registry Claim</h2>"
        "<p>Hello there,</p>"
        f"<p>Please verify your claim for <strong>{escape(item_name)}</strong> "
        "by clicking the button below:</p>"
        '<div style="text-align: center; margin: 20px 0;">'
        f'<a href="{escape(verification_link, quote=True)}" '
        'style="background-color: #4CAF50; color: white; padding: 10px 20px; '
        'text-decoration: none; border-radius: 5px;">Verify Claim</a></div>'
        "<p>This link will expire in 24 hours.</p>"
        "<p>Thank you!</p></div>"
    )
    return await send_email(
        to_email=to_email,
        subject="Verify your baby registry claim",
        html_body=html_body,
        text_body=text_body,
        client=client,
    )


async def send_claim_confirmation_email(
    *,
    to_email: str,
    item_name: str,
    client: httpx.AsyncClient | None = None,
) -> EmailResult:
    """Tell the claimer their claim is confirmed."""
    text_body = (
        f"Hello,\n\nYour claim for {item_name} has been confirmed. Thank you for "
        "participating in the baby registry!\n\nBest regards,\nBaby Registry Team"
    )
    html_body = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        "<h2>Claim Confirmed</h2>"
        "<p>Hello there,</p>"
        f"<p>Your claim for <strong>{escape(item_name)}</strong> has been confirmed.</p>"
        "<p>Thank you for participating in the baby registry!</p>"
        "<p>Best regards,<br>Baby Registry Team</p></div>"
    )
    return await send_email(
        to_email=to_email,
        subject="Your baby registry claim has been confirmed",
        html_body=html_body,
        text_body=text_body,
        client=client,
    )
