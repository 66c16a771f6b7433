import base64
import logging

import httpx

from .core.config import Settings, get_settings
from .invites import AppointmentInvite

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


async def send_booking_email_with_ics(
    to_email: str,
    subject: str,
    html: str,
    ics_filename: str,
    ics_text: str,
    settings: Settings | None = None,
) -> bool:
    settings = settings or get_settings()
    if not settings.resend_api_key or not settings.resend_from:
        logger.warning("Resend is not configured; skipping email send.")
        return False

    attachment_content = base64.b64encode(ics_text.encode("utf-8")).decode("ascii")
    payload = {
        "from": settings.resend_from,
        "to": to_email,
        "subject": subject,
        "html": html,
        "attachments": [
            {
                "filename": ics_filename,
                "content": attachment_content,
                "content_type": "text/calendar; charset=utf-8",
            }
        ],
    }

    headers = {
        "Authorization": f"Bearer {settings.resend_api_key}",
        "Content-Type": "application/json",
    }

    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(RESEND_URL, json=payload, headers=headers)
        response.raise_for_status()
    return True


async def deliver_appointment_email(
    to_email: str, invite: AppointmentInvite, settings: Settings | None = None
) -> None:
    """Best-effort delivery; failures are logged and never reach the caller."""
    try:
        sent = await send_booking_email_with_ics(
            to_email=to_email,
            subject=invite.subject,
            html=invite.html,
            ics_filename=invite.ics_filename,
            ics_text=invite.ics_text,
            settings=settings,
        )
    except httpx.HTTPError as exc:
        logger.exception("Failed to send appointment email to %s: %s", to_email, exc)
        return
    if sent:
        logger.info("Sent appointment email to %s", to_email)
