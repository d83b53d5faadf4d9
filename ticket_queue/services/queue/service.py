"""
Queue Service

Single owner of the ticket queue. Every mutating operation is one
method call that:

    1. takes the store lock,
    2. loads the document, applies the change, commits it,
    3. releases the lock,
    4. then dispatches notifications for what was committed.

The locked part is blocking file I/O and runs in a worker thread, so
the event loop keeps serving other requests while a cycle waits for
the lock. Notifications never run under the lock, and their outcome
never changes the result of the operation.

Author: Khalil Bannouri
Version: 3.0.0
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from ticket_queue.core.exceptions import OrderNotFoundError
from ticket_queue.models import OrderStatus, QueueOrder, QueueState
from ticket_queue.services.notifications.base import ChannelOutcome, NotificationEvent
from ticket_queue.services.notifications.channels import NotificationChannels
from ticket_queue.services.notifications.dispatcher import NotificationDispatcher
from ticket_queue.services.queue.reconciler import ClientOrder, MergeResult, Reconciler
from ticket_queue.services.queue.sequencer import Ticket, TicketSequencer
from ticket_queue.services.queue.store import QueueStore

logger = logging.getLogger(__name__)

Outcomes = dict[str, ChannelOutcome]


@dataclass
class SyncResult:
    """Result of merging a client snapshot."""
    order_count: int
    new_orders: list[QueueOrder]
    timestamp: datetime
    notifications: list[Outcomes] = field(default_factory=list)


@dataclass
class AddOrderResult:
    """Result of add-and-notify."""
    order: QueueOrder
    created: bool
    notifications: Outcomes = field(default_factory=dict)


@dataclass
class StatusUpdateResult:
    """Result of a status change."""
    order: QueueOrder
    previous_status: OrderStatus
    notifications: Outcomes = field(default_factory=dict)


class QueueService:
    """Serialized operations over the queue plus post-commit notifications."""

    def __init__(
        self,
        store: QueueStore,
        sequencer: TicketSequencer,
        reconciler: Reconciler,
        dispatcher: NotificationDispatcher,
        channels: NotificationChannels,
    ):
        self.store = store
        self.sequencer = sequencer
        self.reconciler = reconciler
        self.dispatcher = dispatcher
        self.channels = channels

    # =========================================================================
    # READS
    # =========================================================================

    async def get_queue(self) -> QueueState:
        """Committed state; load() is atomic so no lock is taken."""
        return await asyncio.to_thread(self.store.load)

    # =========================================================================
    # SEQUENCER
    # =========================================================================

    async def check_reset(self) -> bool:
        return await asyncio.to_thread(self.sequencer.check_and_reset_for_new_day)

    async def issue_ticket(self) -> Ticket:
        return await asyncio.to_thread(self.sequencer.next_ticket)

    # =========================================================================
    # SYNC
    # =========================================================================

    def _sync_cycle(
        self,
        client_orders: list[ClientOrder],
        client_prefix: Any,
        client_number: Any,
    ) -> MergeResult:
        with self.store.lock():
            state = self.store.load()
            orders = self.reconciler.parse(client_orders, client_prefix, client_number)

            # The client's series belongs to today; yesterday's orders go to
            # the archive first and must not come back from the snapshot.
            current = state.model_copy(deep=True)
            self.sequencer.apply_reset(current)
            result = self.reconciler.merge(
                current, orders, client_prefix, client_number, known_ids=state.order_ids
            )
            if result.state != state:
                self.store.save(result.state)
        return result

    async def sync(
        self,
        client_orders: Iterable[ClientOrder],
        client_prefix: Any,
        client_number: Any,
    ) -> SyncResult:
        """
        Merge a client snapshot, then announce the orders it added.

        Raises:
            QueueValidationError: Snapshot rejected, nothing changed
            QueuePersistenceError: Merge could not be committed
        """
        result = await asyncio.to_thread(self._sync_cycle, list(client_orders), client_prefix, client_number)
        logger.info(
            f"Queue sync: {len(result.new_orders)} new orders, {result.order_count} held, "
            f"next ticket {result.state.current_prefix}{result.state.current_number}"
        )

        notifications = await asyncio.gather(
            *(self.notify(NotificationEvent.new_order(order)) for order in result.new_orders)
        )
        return SyncResult(
            order_count=result.order_count,
            new_orders=result.new_orders,
            timestamp=datetime.now().astimezone(),
            notifications=list(notifications),
        )

    # =========================================================================
    # ADD
    # =========================================================================

    def parse_order(self, order_data: Union[QueueOrder, dict[str, Any]]) -> QueueOrder:
        """
        Validate one submitted order.

        Raises:
            QueueValidationError: Malformed order
        """
        return self.reconciler.coerce_order(order_data, ("order",))

    def _add_cycle(self, order: QueueOrder) -> tuple[QueueOrder, bool]:
        with self.store.lock():
            state = self.store.load()
            was_reset = self.sequencer.apply_reset(state)

            existing = state.find_order(order.id)
            if existing is not None:
                if was_reset:
                    self.store.save(state)
                return existing.model_copy(deep=True), False

            if not order.ticket:
                order.ticket = self.sequencer.format(self.sequencer.assign(state))
            state.orders.append(order)
            self.store.save(state)
        return order.model_copy(deep=True), True

    async def add_order(
        self,
        order_data: Union[QueueOrder, dict[str, Any]],
        customer_phone: Optional[str] = None,
    ) -> AddOrderResult:
        """
        Append one order (ticketing it if needed), then notify.

        An id already in the queue is accepted without change or
        notification, so clients can retry safely.

        Raises:
            QueueValidationError: Malformed order, nothing changed
            QueuePersistenceError: Order could not be committed
        """
        if isinstance(order_data, dict) and not order_data.get("id"):
            order_data = {**order_data, "id": uuid.uuid4().hex}
        order = self.parse_order(order_data)

        committed, created = await asyncio.to_thread(self._add_cycle, order)
        if not created:
            logger.info(f"Order {committed.id} already queued as {committed.ticket}, skipping notifications")
            return AddOrderResult(order=committed, created=False)

        logger.info(f"Order {committed.id} queued with ticket {committed.ticket}")
        outcomes = await self.notify(NotificationEvent.new_order(committed, customer_phone))
        return AddOrderResult(order=committed, created=True, notifications=outcomes)

    # =========================================================================
    # STATUS
    # =========================================================================

    def _status_cycle(self, order_id: str, status: OrderStatus) -> tuple[QueueOrder, OrderStatus]:
        with self.store.lock():
            state = self.store.load()
            order = state.find_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            previous = order.status
            order.status = status
            self.store.save(state)
        return order.model_copy(deep=True), previous

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        customer_phone: Optional[str] = None,
    ) -> StatusUpdateResult:
        """
        Change an order's status, then tell the customer if a phone was given.

        Raises:
            OrderNotFoundError: Unknown order id, nothing changed
            QueuePersistenceError: Change could not be committed
        """
        order, previous = await asyncio.to_thread(self._status_cycle, order_id, status)
        logger.info(f"Order {order.id} ({order.ticket}) status {previous.value} -> {status.value}")

        outcomes = await self.notify(NotificationEvent.status_update(order, previous, customer_phone))
        return StatusUpdateResult(order=order, previous_status=previous, notifications=outcomes)

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    async def notify(self, event: NotificationEvent) -> Outcomes:
        """Dispatch one event; outcomes are logged and returned, never raised."""
        outcomes = await self.dispatcher.dispatch(event, self.channels.for_event(event))
        if outcomes:
            summary = {name: "ok" if o.success else "failed" for name, o in outcomes.items()}
            logger.info(f"Notifications for {event.kind.value} {event.order.id}: {summary}")
        return outcomes

    async def email_new_order(self, order: QueueOrder) -> Optional[ChannelOutcome]:
        """Send the new-order email alone, without queueing the order. None when email is not wired."""
        if self.channels.email is None:
            return None
        outcomes = await self.dispatcher.dispatch(NotificationEvent.new_order(order), [self.channels.email])
        outcome = outcomes[self.channels.email.name]
        logger.info(f"New-order email for {order.id}: {'ok' if outcome.success else 'failed'}")
        return outcome
