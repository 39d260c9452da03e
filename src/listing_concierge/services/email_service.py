"""SendGrid email service for visitor confirmations and agent lead alerts.

Uses asyncio.to_thread to wrap the synchronous SendGrid client. Callers
treat a False return as a soft failure; nothing here raises.
"""

import asyncio
import html
import logging
from dataclasses import dataclass
from typing import Optional

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, PlainTextContent, To

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration: read from Pydantic settings (which loads .env)
# ---------------------------------------------------------------------------


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from listing_concierge.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.email_from, s.email_from_name


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def _wrap_html(text: str) -> str:
    """Plain HTML wrapper around a text body."""
    paragraphs = "".join(
        f'<p style="margin: 0 0 12px 0; color: #374151; font-size: 15px;">{html.escape(line)}</p>'
        for line in text.split("\n")
        if line.strip()
    )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 24px;">'
        f"{paragraphs}</div>"
    )


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


async def send_email(to: str, subject: str, text: str, html_body: Optional[str] = None) -> bool:
    """Send one email.

    Returns:
        True on success, False on failure or when SendGrid is not configured.
    """
    api_key, email_from, from_name = _get_config()
    if not api_key or not email_from:
        logger.warning("SENDGRID_API_KEY/EMAIL_FROM not set, skipping email to %s", to)
        return False
    if not to:
        logger.warning("No recipient for email %r, skipping", subject)
        return False

    try:
        mail = Mail(
            from_email=Email(email_from, from_name),
            to_emails=To(to),
            subject=subject,
            plain_text_content=PlainTextContent(text),
            html_content=HtmlContent(html_body or _wrap_html(text)),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("Email %r sent to %s", subject, to)
        return result
    except Exception:
        logger.exception("Failed to send email %r to %s", subject, to)
        return False


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str


def visitor_lead_message(agent_email: str, tenant_id: str, name: str, phone: str, email: str) -> EmailMessage:
    return EmailMessage(
        to=agent_email,
        subject=f"[{tenant_id}] New visitor lead: {name}",
        text=(
            "A website visitor left their contact details.\n"
            f"Name: {name}\n"
            f"Phone: {phone}\n"
            f"Email: {email}"
        ),
    )


def inquiry_message(
    agent_email: str,
    tenant_id: str,
    name: str,
    phone: str,
    email: str,
    summary: str,
    conversation: Optional[str] = None,
) -> EmailMessage:
    text = (
        "A website visitor sent an inquiry.\n"
        f"Name: {name}\n"
        f"Phone: {phone}\n"
        f"Email: {email}\n"
        f"Inquiry: {summary}"
    )
    if conversation:
        text += f"\nConversation:\n{conversation[:3000]}"
    return EmailMessage(to=agent_email, subject=f"[{tenant_id}] Inquiry from {name}", text=text)


def viewing_confirmation_message(
    visitor_email: str,
    name: str,
    property_title: str,
    date_label: str,
    time_label: str,
    language: str = "id",
) -> EmailMessage:
    if language == "en":
        return EmailMessage(
            to=visitor_email,
            subject=f"Viewing request: {property_title}",
            text=(
                f"Hi {name},\n"
                f"We have recorded your viewing request for {property_title} "
                f"on {date_label} at {time_label}.\n"
                "Our agent will contact you to confirm."
            ),
        )
    return EmailMessage(
        to=visitor_email,
        subject=f"Permintaan kunjungan: {property_title}",
        text=(
            f"Halo {name},\n"
            f"Permintaan kunjungan Anda untuk {property_title} "
            f"pada {date_label} pukul {time_label} sudah kami catat.\n"
            "Agen kami akan menghubungi Anda untuk konfirmasi."
        ),
    )


def viewing_agent_message(
    agent_email: str,
    tenant_id: str,
    name: str,
    phone: str,
    email: str,
    property_id: str,
    property_title: str,
    property_url: Optional[str],
    date_label: str,
    time_label: str,
    note: Optional[str] = None,
) -> EmailMessage:
    text = (
        "A visitor wants to view a property.\n"
        f"Property: {property_title} (ID {property_id})\n"
        f"Link: {property_url or '-'}\n"
        f"When: {date_label} {time_label}\n"
        f"Name: {name}\n"
        f"Phone: {phone}\n"
        f"Email: {email}"
    )
    if note:
        text += f"\nMessage: {note}"
    return EmailMessage(to=agent_email, subject=f"[{tenant_id}] Viewing request: {property_title}", text=text)
