"""
Notification Service Abstract Base Class

Defines the transport interface for sending Email and WhatsApp messages,
plus the event and result types that flow through the channel adapters
and the dispatcher.

Supports both Mock (development) and Real (production) transports.

Author: Khalil Bannouri
Version: 3.0.0
"""

import uuid
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ticket_queue.models import OrderStatus, QueueOrder


class EventKind(str, enum.Enum):
    """Order lifecycle events that trigger notifications."""
    NEW_ORDER = "new_order"
    STATUS_UPDATE = "status_update"


@dataclass
class NotificationEvent:
    """
    One order lifecycle event.

    Attributes:
        kind: What happened
        order: Snapshot of the order after the committed change
        customer_phone: Phone supplied with the triggering request, if any
        previous_status: Status before a status update
    """
    kind: EventKind
    order: QueueOrder
    customer_phone: Optional[str] = None
    previous_status: Optional[OrderStatus] = None
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def new_order(cls, order: QueueOrder, customer_phone: Optional[str] = None) -> "NotificationEvent":
        return cls(kind=EventKind.NEW_ORDER, order=order, customer_phone=customer_phone or None)

    @classmethod
    def status_update(
        cls,
        order: QueueOrder,
        previous_status: Optional[OrderStatus],
        customer_phone: Optional[str] = None,
    ) -> "NotificationEvent":
        return cls(
            kind=EventKind.STATUS_UPDATE,
            order=order,
            customer_phone=customer_phone or None,
            previous_status=previous_status,
        )


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


@dataclass
class ChannelOutcome:
    """What one channel did with one event."""
    channel: str
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "channel": self.channel,
            "success": self.success,
            "error": self.error,
            "message_id": self.message_id,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


class BaseNotificationService(ABC):
    """Abstract base class for notification transports."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_whatsapp(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send a WhatsApp message."""
        pass

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send an email."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
