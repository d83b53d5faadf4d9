"""
Live transport: Twilio for WhatsApp, SendGrid for email.

Both SDKs are blocking; calls run in a worker thread.

Author: Khalil Bannouri
Version: 3.0.0
"""

import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from ticket_queue.core.config import get_settings
from ticket_queue.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from ticket_queue.services.notifications.messages import normalize_phone

logger = logging.getLogger(__name__)


class RealNotificationService(BaseNotificationService):
    """Delivers through the configured providers; a missing provider fails its sends."""

    def __init__(self):
        settings = get_settings()
        self.default_country_code = settings.default_country_code

        if settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_whatsapp_number:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.whatsapp_from = f"whatsapp:{normalize_phone(settings.twilio_whatsapp_number, self.default_country_code)}"
        else:
            self.twilio_client = None
            logger.warning("No Twilio credentials, WhatsApp sends will fail")

        if settings.sendgrid_api_key:
            self.sendgrid_client = SendGridAPIClient(settings.sendgrid_api_key)
            self.sendgrid_from_email = settings.sendgrid_from_email
        else:
            self.sendgrid_client = None
            logger.warning("No SendGrid key, email sends will fail")

        logger.info(f"Live transport ready (whatsapp={self.twilio_client is not None}, email={self.sendgrid_client is not None})")

    @property
    def provider_name(self) -> str:
        return "real"

    async def send_whatsapp(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """One Twilio message to `to_phone`, normalized to E.164."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        to_address = f"whatsapp:{normalize_phone(to_phone, self.default_country_code)}"

        try:
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.whatsapp_from,
                to=to_address,
            )

            logger.info(f"Twilio accepted {result.sid} for {to_address}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio rejected message to {to_address}: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """One SendGrid message; any 2xx counts as delivered."""
        if not self.sendgrid_client:
            return NotificationResult(
                success=False,
                error_message="SendGrid not configured",
                provider="sendgrid"
            )

        try:
            message = Mail(
                from_email=self.sendgrid_from_email,
                to_emails=to_email,
                subject=subject,
                html_content=body_html,
                plain_text_content=body_text
            )

            response = await asyncio.to_thread(self.sendgrid_client.send, message)

            logger.info(f"SendGrid answered {response.status_code} for {to_email}")

            return NotificationResult(
                success=200 <= response.status_code < 300,
                message_id=response.headers.get('X-Message-Id'),
                provider="sendgrid"
            )

        except Exception as e:
            logger.error(f"SendGrid failed for {to_email}: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="sendgrid"
            )

    async def health_check(self) -> bool:
        """Both providers are configured."""
        return self.twilio_client is not None and self.sendgrid_client is not None
