"""
Notification Dispatcher

Fans one order event out to its channels and collects a per-channel
outcome map.

Every channel runs concurrently under its own timeout and exception
guard, so a slow or broken provider only ever fails its own entry. The
dispatcher never raises and never retries; retries belong to the
channel adapters.

Author: Khalil Bannouri
Version: 3.0.0
"""

import asyncio
import logging
import time
from typing import Iterable

from ticket_queue.services.notifications.base import ChannelOutcome, NotificationEvent
from ticket_queue.services.notifications.channels import BaseChannelAdapter

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Best-effort, all-outcomes-collected event fan-out."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def _invoke(self, channel: BaseChannelAdapter, event: NotificationEvent) -> ChannelOutcome:
        start = time.perf_counter()
        name = channel.name
        try:
            result = await asyncio.wait_for(channel.send(event), timeout=self.timeout)
        except asyncio.TimeoutError:
            outcome = ChannelOutcome(channel=name, success=False, error=f"timed out after {self.timeout}s")
        except Exception as e:
            logger.exception(f"[{name}] raised while notifying event {event.event_id}")
            outcome = ChannelOutcome(channel=name, success=False, error=f"{type(e).__name__}: {e}")
        else:
            outcome = ChannelOutcome(
                channel=name,
                success=result.success,
                error=None if result.success else (result.error_message or "delivery failed"),
                message_id=result.message_id,
            )
        outcome.elapsed_ms = (time.perf_counter() - start) * 1000

        if outcome.success:
            logger.info(f"[{name}] event {event.event_id} ({event.kind.value}) for order {event.order.id} delivered")
        else:
            logger.error(
                f"[{name}] event {event.event_id} ({event.kind.value}) for order {event.order.id} "
                f"failed: {outcome.error}"
            )
        return outcome

    async def dispatch(
        self,
        event: NotificationEvent,
        channels: Iterable[BaseChannelAdapter],
    ) -> dict[str, ChannelOutcome]:
        """
        Send `event` on every channel, one attempt each.

        Returns:
            Mapping of channel name to its outcome (empty if no channel)
        """
        channels = list(channels)
        if not channels:
            logger.debug(f"Event {event.event_id} ({event.kind.value}) targets no channel")
            return {}

        outcomes = await asyncio.gather(*(self._invoke(channel, event) for channel in channels))
        return {outcome.channel: outcome for outcome in outcomes}
