"""
HTTP client for the Resend email API.
"""
import logging
from typing import List, Optional

import httpx

from .. import config

logger = logging.getLogger(__name__)


async def send_email(to: List[str], subject: str, html: str) -> Optional[dict]:
    """
    Send one HTML email.

    Args:
        to: Recipient addresses
        subject: Email subject
        html: HTML body

    Returns:
        Resend response body, or None when email is not configured

    Raises:
        httpx.HTTPError: If Resend is unreachable or rejects the message
    """
    if not config.RESEND_API_KEY:
        logger.warning(f"RESEND_API_KEY not configured, skipping email '{subject}'")
        return None

    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as client:
        response = await client.post(
            config.RESEND_API_URL,
            json={"from": config.EMAIL_FROM, "to": to, "subject": subject, "html": html},
            headers={"Authorization": f"Bearer {config.RESEND_API_KEY}"},
        )
        response.raise_for_status()

    logger.info(f"Email '{subject}' sent to {', '.join(to)}")
    return response.json()
