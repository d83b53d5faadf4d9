"""
Pydantic Schemas for Request/Response Validation

HTTP contract of the queue API. Field names are camelCase on the wire
to match the point-of-sale client.

Author: Khalil Bannouri
Version: 3.0.0
"""

import re
from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field, field_validator

from ticket_queue.models import CamelModel, OrderStatus, QueueOrder
from ticket_queue.services.notifications.recipients import WhatsAppRecipient


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class QueueSyncRequest(CamelModel):
    """Client snapshot pushed by the point-of-sale."""
    orders: List[QueueOrder]
    current_prefix: str = Field(..., min_length=1, max_length=10, examples=["A"])
    current_number: int = Field(..., ge=0, examples=[12])


class AddAndNotifyRequest(CamelModel):
    """A new walk-in order, optionally with the customer's phone."""
    order: dict[str, Any] = Field(
        ...,
        examples=[{"id": "o1", "items": [{"name": "Burger", "quantity": 2, "price": 18.0}], "total": 36.0}],
    )
    customer_phone: Optional[str] = Field(None, max_length=30, examples=["+15551234567"])

    @field_validator("customer_phone")
    @classmethod
    def blank_phone_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class EmailNotifyRequest(CamelModel):
    """An order to announce by email only."""
    order: dict[str, Any]


class UpdateStatusRequest(CamelModel):
    """Status change for one order."""
    order_id: str = Field(..., min_length=1)
    status: OrderStatus
    customer_phone: Optional[str] = Field(None, max_length=30)

    @field_validator("customer_phone")
    @classmethod
    def blank_phone_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class EmailRecipientRequest(CamelModel):
    email: str = Field(..., max_length=255, examples=["kitchen@restaurant.com"])

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if not re.match(r'^[^\s@]+@[^\s@]+\.[^\s@]+$', v):
            raise ValueError('Invalid email format')
        return v


class WhatsAppRecipientRequest(CamelModel):
    phone_number: str = Field(..., min_length=8, max_length=30, examples=["+15551234567"])
    name: Optional[str] = Field(None, max_length=100)

    @field_validator("phone_number")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        cleaned = re.sub(r'[^\d]', '', v)
        if len(cleaned) < 8:
            raise ValueError('Phone number must have at least 8 digits')
        return v


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class CheckResetResponse(CamelModel):
    reset: bool


class QueueSyncResponse(CamelModel):
    success: bool
    message: str
    order_count: int
    new_order_count: int
    timestamp: datetime


class AddAndNotifyResponse(CamelModel):
    success: bool
    message: str
    order_id: str
    ticket: Optional[str] = None


class UpdateStatusResponse(CamelModel):
    success: bool
    message: str
    order_id: str
    status: OrderStatus


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class EmailRecipientsResponse(CamelModel):
    emails: List[str]


class WhatsAppRecipientsResponse(CamelModel):
    recipients: List[WhatsAppRecipient]


class FieldError(CamelModel):
    field: str
    message: str


class ErrorResponse(CamelModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    errors: Optional[List[FieldError]] = None


class HealthResponse(CamelModel):
    """Health check response."""
    status: str
    queue_store: str
    redis: str
    notification_service: str
    timestamp: datetime
