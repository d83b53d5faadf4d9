"""
Queue Service Factory

Provides a single entry point for obtaining the queue service.

Usage:
    from ticket_queue.services.queue import get_queue_service

    queue = get_queue_service()
    result = await queue.add_order({"items": [...], "total": 36.0})

Author: Khalil Bannouri
Version: 3.0.0
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from ticket_queue.core.config import Settings, get_settings
from ticket_queue.services.notifications import (
    NotificationChannels,
    NotificationDispatcher,
    build_channels,
    get_notification_service,
    get_recipient_store,
)
from ticket_queue.services.queue.archive import OrderArchive
from ticket_queue.services.queue.reconciler import MergeResult, Reconciler
from ticket_queue.services.queue.sequencer import Ticket, TicketSequencer, business_clock
from ticket_queue.services.queue.service import (
    AddOrderResult,
    QueueService,
    StatusUpdateResult,
    SyncResult,
)
from ticket_queue.services.queue.store import QueueStore, fresh_state_factory

logger = logging.getLogger(__name__)


def build_queue_service(
    settings: Settings,
    channels: NotificationChannels,
    clock: Optional[Callable[[], datetime]] = None,
) -> QueueService:
    """Assemble store, sequencer, reconciler and dispatcher from settings."""
    archive = OrderArchive(settings.archive_path, settings.queue_lock_timeout) if settings.archive_on_reset else None
    now = business_clock(settings.timezone, clock)

    store = QueueStore(
        settings.queue_path,
        state_factory=fresh_state_factory(settings.default_ticket_prefix, lambda: now().date()),
        lock_timeout=settings.queue_lock_timeout,
    )
    sequencer = TicketSequencer(
        store,
        timezone=settings.timezone,
        prefix_mode=settings.ticket_prefix_mode,
        default_prefix=settings.default_ticket_prefix,
        number_width=settings.ticket_number_width,
        archive=archive,
        clock=now,
    )

    return QueueService(
        store=store,
        sequencer=sequencer,
        reconciler=Reconciler(settings.missing_created_at_policy, clock=now),
        dispatcher=NotificationDispatcher(timeout=settings.notification_timeout_seconds),
        channels=channels,
    )


@lru_cache()
def get_queue_service() -> QueueService:
    """Get the configured queue service (one owner per process)."""
    settings = get_settings()
    channels = build_channels(get_notification_service(), get_recipient_store(), settings)
    logger.info(f"Queue Service: data in {settings.data_path.resolve()}")
    return build_queue_service(settings, channels)


def reset_queue_service() -> None:
    """Clear the cached service instance."""
    get_queue_service.cache_clear()


__all__ = [
    "get_queue_service",
    "build_queue_service",
    "reset_queue_service",
    "AddOrderResult",
    "MergeResult",
    "OrderArchive",
    "QueueService",
    "QueueStore",
    "Reconciler",
    "StatusUpdateResult",
    "SyncResult",
    "Ticket",
    "TicketSequencer",
]
