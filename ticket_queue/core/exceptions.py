"""
Queue Exceptions

Errors raised by the queue subsystem and mapped to HTTP responses by the
exception handlers in ticket_queue.main.

Notification failures have no exception here: channel errors are
recovered inside the dispatcher and never raised to callers.
"""

from typing import Optional


class QueueError(Exception):
    """Base class for queue errors."""


class QueueValidationError(QueueError):
    """
    Input rejected before any state mutation.

    Attributes:
        errors: Field-level problems, each {"field": ..., "message": ...}
    """

    def __init__(self, errors: list[dict[str, str]], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message or "; ".join(f"{e['field']}: {e['message']}" for e in errors))


class OrderNotFoundError(QueueError):
    """The referenced order id is not in the live queue."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class QueuePersistenceError(QueueError):
    """The durable queue document could not be written or locked."""
