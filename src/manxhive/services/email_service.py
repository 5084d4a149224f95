"""SendGrid email service for ManxHive seller notifications.

Uses asyncio.to_thread to wrap the synchronous SendGrid client.
Buyer contact details are never included; sellers unlock them in-app.
"""

import asyncio
import html
import logging

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from manxhive.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.email_from, s.site_url


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def _build_new_enquiry_html(seller_name: str, listing_title: str, message: str, site_url: str) -> str:
    """Build the new-enquiry notification body."""
    enquiries_url = f"{site_url.rstrip('/')}/account/enquiries"
    preview = message if len(message) <= 280 else message[:277] + "..."
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto;">
        <h2 style="color: #111827;">New enquiry on {html.escape(listing_title)}</h2>
        <p style="color: #4b5563; font-size: 15px;">Hi {html.escape(seller_name)},</p>
        <p style="color: #4b5563; font-size: 15px;">A buyer has sent you a message:</p>
        <blockquote style="border-left: 3px solid #e5e7eb; padding-left: 12px; color: #374151;">
            {html.escape(preview)}
        </blockquote>
        <p style="color: #4b5563; font-size: 15px;">
            Unlock the enquiry to see the buyer's contact details.
        </p>
        <p>
            <a href="{enquiries_url}"
               style="background: #111827; color: #ffffff; padding: 10px 18px;
                      border-radius: 6px; text-decoration: none;">View enquiries</a>
        </p>
    </div>
    """


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_new_enquiry_email(
    seller_email: str,
    seller_name: str,
    listing_title: str,
    message: str,
) -> bool:
    """Tell a seller that a buyer enquired about one of their listings.

    Returns:
        True on success, False on failure or when email is not configured.
    """
    api_key, email_from, site_url = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set, skipping new enquiry email")
        return False

    try:
        mail = Mail(
            from_email=Email(email_from, "ManxHive"),
            to_emails=To(seller_email),
            subject=f"New enquiry: {listing_title}",
            html_content=HtmlContent(
                _build_new_enquiry_html(seller_name, listing_title, message, site_url)
            ),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("New enquiry email sent to %s", seller_email)
        return result
    except Exception:
        logger.exception("Failed to send new enquiry email to %s", seller_email)
        return False
