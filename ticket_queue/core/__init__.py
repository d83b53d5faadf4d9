"""
Core module initialization.
Exports configuration, logging utilities and queue exceptions.
"""

from ticket_queue.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from ticket_queue.core.exceptions import (
    QueueError,
    QueueValidationError,
    OrderNotFoundError,
    QueuePersistenceError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "QueueError",
    "QueueValidationError",
    "OrderNotFoundError",
    "QueuePersistenceError",
]
