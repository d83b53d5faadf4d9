"""
Notification Channel Adapters

One adapter per delivery channel. Each turns an order event into
messages for its recipients, sends them through the configured
transport, and owns its retry policy.

Channels:
    - email: establishment inbox(es), new orders
    - whatsapp_admin: establishment staff phones, new orders
    - whatsapp_customer: the phone supplied with the request

Author: Khalil Bannouri
Version: 3.0.0
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ticket_queue.services.notifications.base import (
    BaseNotificationService,
    EventKind,
    NotificationEvent,
    NotificationResult,
)
from ticket_queue.services.notifications import messages
from ticket_queue.services.notifications.recipients import RecipientStore

logger = logging.getLogger(__name__)

EMAIL = "email"
WHATSAPP_ADMIN = "whatsapp_admin"
WHATSAPP_CUSTOMER = "whatsapp_customer"


class BaseChannelAdapter(ABC):
    """A single notification channel."""

    def __init__(self, max_attempts: int = 1, retry_delay: float = 0.0):
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel name used in outcome maps and logs."""
        pass

    @abstractmethod
    async def send(self, event: NotificationEvent) -> NotificationResult:
        """Deliver the event on this channel."""
        pass

    async def _with_retry(
        self,
        attempt: Callable[[], Awaitable[NotificationResult]],
        target: str,
    ) -> NotificationResult:
        """Run `attempt` until it succeeds or the attempts run out. A raise counts as a failed attempt."""
        result = NotificationResult(success=False, error_message="not attempted")
        for number in range(1, self.max_attempts + 1):
            try:
                result = await attempt()
            except Exception as e:
                result = NotificationResult(success=False, error_message=f"{type(e).__name__}: {e}")
            if result.success:
                return result
            logger.warning(
                f"[{self.name}] attempt {number}/{self.max_attempts} to {target} failed: "
                f"{result.error_message}"
            )
            if number < self.max_attempts and self.retry_delay:
                await asyncio.sleep(self.retry_delay)
        return result

    @staticmethod
    def _combine(results: list[NotificationResult], provider: str) -> NotificationResult:
        """Success only if every recipient got the message."""
        failed = [r for r in results if not r.success]
        return NotificationResult(
            success=not failed,
            message_id=next((r.message_id for r in results if r.message_id), None),
            error_message="; ".join(r.error_message or "failed" for r in failed) or None,
            provider=provider,
        )


class EmailChannel(BaseChannelAdapter):
    """New-order email to every establishment address."""

    def __init__(
        self,
        transport: BaseNotificationService,
        recipients: RecipientStore,
        restaurant_name: str,
        max_attempts: int = 1,
        retry_delay: float = 0.0,
    ):
        super().__init__(max_attempts, retry_delay)
        self.transport = transport
        self.recipients = recipients
        self.restaurant_name = restaurant_name

    @property
    def name(self) -> str:
        return EMAIL

    async def send(self, event: NotificationEvent) -> NotificationResult:
        emails = await asyncio.to_thread(self.recipients.get_emails)
        if not emails:
            return NotificationResult(
                success=False,
                error_message="No establishment email recipients configured",
                provider=self.transport.provider_name,
            )

        subject, html, text = messages.new_order_email(event.order, self.restaurant_name)
        results = []
        for email in emails:
            results.append(await self._with_retry(
                lambda email=email: self.transport.send_email(email, subject, html, text),
                email,
            ))
        return self._combine(results, self.transport.provider_name)


class AdminWhatsAppChannel(BaseChannelAdapter):
    """New-order alert to every admin WhatsApp number."""

    def __init__(
        self,
        transport: BaseNotificationService,
        recipients: RecipientStore,
        max_attempts: int = 1,
        retry_delay: float = 0.0,
    ):
        super().__init__(max_attempts, retry_delay)
        self.transport = transport
        self.recipients = recipients

    @property
    def name(self) -> str:
        return WHATSAPP_ADMIN

    async def send(self, event: NotificationEvent) -> NotificationResult:
        admins = await asyncio.to_thread(self.recipients.get_whatsapp_admins)
        if not admins:
            return NotificationResult(
                success=False,
                error_message="No admin WhatsApp recipients configured",
                provider=self.transport.provider_name,
            )

        body = messages.admin_new_order_message(event.order)
        results = []
        for admin in admins:
            results.append(await self._with_retry(
                lambda phone=admin.phone_number: self.transport.send_whatsapp(phone, body),
                admin.phone_number,
            ))
        return self._combine(results, self.transport.provider_name)


class CustomerWhatsAppChannel(BaseChannelAdapter):
    """Confirmation or status message to the customer's phone."""

    def __init__(
        self,
        transport: BaseNotificationService,
        restaurant_name: str,
        max_attempts: int = 1,
        retry_delay: float = 0.0,
    ):
        super().__init__(max_attempts, retry_delay)
        self.transport = transport
        self.restaurant_name = restaurant_name

    @property
    def name(self) -> str:
        return WHATSAPP_CUSTOMER

    async def send(self, event: NotificationEvent) -> NotificationResult:
        if not event.customer_phone:
            return NotificationResult(
                success=False,
                error_message="No customer phone",
                provider=self.transport.provider_name,
            )

        if event.kind == EventKind.NEW_ORDER:
            body = messages.customer_confirmation_message(event.order, self.restaurant_name)
        else:
            body = messages.customer_status_message(event.order, self.restaurant_name)

        return await self._with_retry(
            lambda: self.transport.send_whatsapp(event.customer_phone, body),
            event.customer_phone,
        )


@dataclass
class NotificationChannels:
    """The adapters available to the dispatcher."""
    email: Optional[BaseChannelAdapter] = None
    whatsapp_admin: Optional[BaseChannelAdapter] = None
    whatsapp_customer: Optional[BaseChannelAdapter] = None

    def for_event(self, event: NotificationEvent) -> list[BaseChannelAdapter]:
        """
        Channels that an event targets.

        New orders always go to email and admin WhatsApp, and to the
        customer only when the request supplied a phone. Status updates
        go to the customer only, and only with a phone.
        """
        selected: list[Optional[BaseChannelAdapter]] = []
        if event.kind == EventKind.NEW_ORDER:
            selected += [self.email, self.whatsapp_admin]
        if event.customer_phone:
            selected.append(self.whatsapp_customer)
        return [channel for channel in selected if channel is not None]
