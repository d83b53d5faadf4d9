"""
Transport selection and the notification package surface

Returns Mock or Real notification transport based on ENV_MODE, and
builds the channel adapters and recipient store on top of it.

Author: Khalil Bannouri
Version: 3.0.0
"""

import logging
from functools import lru_cache
from typing import Optional

from ticket_queue.core.config import Settings, get_settings
from ticket_queue.services.notifications.base import (
    BaseNotificationService,
    ChannelOutcome,
    EventKind,
    NotificationEvent,
    NotificationResult,
)
from ticket_queue.services.notifications.channels import (
    AdminWhatsAppChannel,
    BaseChannelAdapter,
    CustomerWhatsAppChannel,
    EmailChannel,
    NotificationChannels,
)
from ticket_queue.services.notifications.dispatcher import NotificationDispatcher
from ticket_queue.services.notifications.mock import MockNotificationService
from ticket_queue.services.notifications.real import RealNotificationService
from ticket_queue.services.notifications.recipients import RecipientStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    """Mock transport in development, live providers otherwise."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Notifications go to the mock transport")
        return MockNotificationService(failure_rate=settings.mock_notification_failure_rate)
    else:
        logger.info(f"Notifications go through Twilio and SendGrid ({settings.env_mode.value})")
        return RealNotificationService()


@lru_cache()
def get_recipient_store() -> RecipientStore:
    """Get the recipient store for the configured data directory."""
    settings = get_settings()
    return RecipientStore(
        settings.recipients_path,
        seed_emails=settings.establishment_emails_list,
        seed_whatsapp=settings.admin_whatsapp_numbers_list,
        lock_timeout=settings.queue_lock_timeout,
    )


def build_channels(
    transport: BaseNotificationService,
    recipients: RecipientStore,
    settings: Optional[Settings] = None,
) -> NotificationChannels:
    """Wire the three channel adapters over one transport."""
    settings = settings or get_settings()
    retry = {
        "max_attempts": settings.channel_max_attempts,
        "retry_delay": settings.channel_retry_delay_seconds,
    }
    return NotificationChannels(
        email=EmailChannel(transport, recipients, settings.restaurant_name, **retry),
        whatsapp_admin=AdminWhatsAppChannel(transport, recipients, **retry),
        whatsapp_customer=CustomerWhatsAppChannel(transport, settings.restaurant_name, **retry),
    )


def reset_notification_service() -> None:
    """Clear the cached service instances."""
    get_notification_service.cache_clear()
    get_recipient_store.cache_clear()


__all__ = [
    "get_notification_service",
    "get_recipient_store",
    "build_channels",
    "reset_notification_service",
    "BaseNotificationService",
    "BaseChannelAdapter",
    "MockNotificationService",
    "RealNotificationService",
    "ChannelOutcome",
    "EventKind",
    "NotificationChannels",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationResult",
    "RecipientStore",
]
