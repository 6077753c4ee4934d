"""Resend integration for outbound email delivery."""

import logging
from typing import List

import httpx

from agent_crm.core.config import get_settings
from agent_crm.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending emails via the Resend API.

    Only invoked by action executors once an action is approved;
    the engine itself never sends mail directly.
    """

    def __init__(self):
        """Initialize service with settings."""
        self._settings = None

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def is_available(self) -> bool:
        """Check if email service is configured."""
        return bool(self.settings.RESEND_API_KEY)

    @staticmethod
    def to_html(body: str) -> str:
        """Plain-text body to minimal HTML."""
        return body.replace("\n", "<br>")

    async def send_email(self, to: List[str], subject: str, body: str) -> str:
        """
        Send an email.

        Args:
            to: Recipient addresses
            subject: Subject line
            body: Plain-text body (converted to HTML)

        Returns:
            Provider message ID

        Raises:
            EmailDeliveryError: if not configured or the provider rejects the send
        """
        if not self.is_available():
            raise EmailDeliveryError("RESEND_API_KEY not configured")

        payload = {
            "from": self.settings.EMAIL_FROM,
            "to": to,
            "subject": subject,
            "html": self.to_html(body),
        }

        headers = {
            "Authorization": f"Bearer {self.settings.RESEND_API_KEY}",
            "Content-Type": "application/json"
        }

        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(
                    f"{self.settings.RESEND_API_URL}/emails",
                    json=payload,
                    headers=headers
                )
        except httpx.TimeoutException as e:
            logger.error("Resend API timeout")
            raise EmailDeliveryError("Email provider timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"Resend API error: {e}")
            raise EmailDeliveryError("Email provider unreachable", details={"cause": str(e)}) from e

        if response.status_code not in (200, 201):
            logger.error(f"Resend API error: {response.status_code} - {response.text}")
            raise EmailDeliveryError(
                "Email provider rejected the send",
                details={"status_code": response.status_code, "body": response.text}
            )

        message_id = response.json().get("id", "")
        logger.info(f"Email sent to {to}: {message_id}")
        return message_id


# Singleton instance
email_service = EmailService()
