"""
In-memory transport for development and tests.

Every successful send is logged and appended to `sent`; a configurable
share of sends fail at random to exercise the failure paths.

Author: Khalil Bannouri
Version: 3.0.0
"""

import asyncio
import random
import uuid
import logging
from typing import Optional

from ticket_queue.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Records messages instead of delivering them."""

    def __init__(self, failure_rate: float = 0.05, min_latency: float = 0.1, max_latency: float = 0.3):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.sent: list[dict] = []
        logger.info(f"Mock transport ready, {failure_rate:.0%} of sends will fail")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_whatsapp(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Record a WhatsApp message."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"[mock] WhatsApp to {to_phone} dropped")
            return NotificationResult(
                success=False,
                error_message="mock WhatsApp drop",
                provider="mock"
            )

        message_id = f"wa_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"channel": "whatsapp", "to": to_phone, "body": message, "id": message_id})
        logger.info(f"[mock] WhatsApp {message_id} -> {to_phone}: {message[:50]!r}")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Record an email."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"[mock] email to {to_email} dropped")
            return NotificationResult(
                success=False,
                error_message="mock email drop",
                provider="mock"
            )

        message_id = f"email_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"channel": "email", "to": to_email, "subject": subject, "id": message_id})
        logger.info(f"[mock] email {message_id} -> {to_email}: {subject}")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def health_check(self) -> bool:
        """Always healthy; nothing external behind it."""
        return True
