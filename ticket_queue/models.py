"""
Queue Domain Models

The persisted queue document and the orders it holds.

Orders are keyed by a caller-assigned id and carry an opaque payload
(items, total, customer fields and anything else the point-of-sale
client sends). Unknown fields are kept verbatim so that a client
snapshot survives a round trip through the server untouched.

Wire format is camelCase (currentPrefix, createdAt, ...), matching the
point-of-sale client; Python code uses snake_case attributes.

Author: Khalil Bannouri
Version: 3.0.0
"""

import enum
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    RECEIVED = "received"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out-for-delivery"
    COMPLETED = "completed"
    CANCELED = "canceled"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class QueueOrder(CamelModel):
    """
    A walk-in order as seen by the queue.

    Attributes:
        id: Unique identifier, stable across client and server
        ticket: prefix + number, assigned once and never changed
        status: Current lifecycle status
        created_at: Arrival timestamp (None until ingestion applies the policy)
        items/total/customer_name/customer_phone: Opaque payload
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str = Field(..., min_length=1)
    ticket: Optional[str] = None
    status: OrderStatus = OrderStatus.RECEIVED
    created_at: Optional[datetime] = None
    items: list[Any] = Field(default_factory=list)
    total: Optional[float] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


class QueueState(CamelModel):
    """
    The whole durable queue document.

    Invariant: within one active prefix, ticket numbers increase in
    assignment order and are never reused.
    """

    orders: list[QueueOrder] = Field(default_factory=list)
    current_prefix: str = "A"
    current_number: int = 1
    last_reset_date: Optional[date] = None

    @classmethod
    def fresh(cls, prefix: str, today: date) -> "QueueState":
        """Empty queue starting a new ticket series today."""
        return cls(current_prefix=prefix, current_number=1, last_reset_date=today)

    def find_order(self, order_id: str) -> Optional[QueueOrder]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    @property
    def order_ids(self) -> set[str]:
        return {order.id for order in self.orders}
