"""
Queue Reconciler

Additive merge of a point-of-sale client's order snapshot into the
server's queue state.

Rules:
    - Orders whose id the server does not know are appended in snapshot
      order, client fields preserved, createdAt coerced to a timestamp.
    - Server orders missing from the snapshot are kept.
    - The client's prefix/number replace the sequencer fields only after
      validation; a rejected merge leaves the server state untouched.
    - Re-merging the same snapshot appends nothing.

Author: Khalil Bannouri
Version: 3.0.0
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from ticket_queue.core.config import MissingCreatedAtPolicy
from ticket_queue.core.exceptions import QueueValidationError
from ticket_queue.models import QueueOrder, QueueState

logger = logging.getLogger(__name__)

ClientOrder = Union[QueueOrder, dict[str, Any]]


@dataclass
class MergeResult:
    """Outcome of one merge: the new state and what it appended."""
    state: QueueState
    new_orders: list[QueueOrder] = field(default_factory=list)

    @property
    def order_count(self) -> int:
        return len(self.state.orders)


def _loc(parts: Iterable[Any]) -> str:
    return ".".join(str(p) for p in parts)


class Reconciler:
    """Validates and merges client snapshots. Holds no queue state."""

    def __init__(
        self,
        missing_created_at: MissingCreatedAtPolicy = MissingCreatedAtPolicy.NOW,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.missing_created_at = missing_created_at
        self._clock = clock or (lambda: datetime.now().astimezone())

    def validate_sequence(self, client_prefix: Any, client_number: Any) -> list[dict[str, str]]:
        """Field errors for the client's sequencer fields (empty when valid)."""
        errors = []
        if not isinstance(client_prefix, str) or not client_prefix.strip():
            errors.append({"field": "currentPrefix", "message": "must be a non-empty string"})
        if isinstance(client_number, bool) or not isinstance(client_number, int):
            errors.append({"field": "currentNumber", "message": "must be an integer"})
        elif client_number < 0:
            errors.append({"field": "currentNumber", "message": "must be greater than or equal to 0"})
        return errors

    def coerce_order(self, raw: ClientOrder, location: tuple = ("order",)) -> QueueOrder:
        """
        Parse one snapshot entry and apply the createdAt policy.

        Raises:
            QueueValidationError: If the entry is malformed
        """
        try:
            order = raw.model_copy(deep=True) if isinstance(raw, QueueOrder) else QueueOrder.model_validate(raw)
        except ValidationError as e:
            raise QueueValidationError([
                {"field": _loc((*location, *err["loc"])), "message": err["msg"]}
                for err in e.errors()
            ])

        if order.created_at is None:
            if self.missing_created_at == MissingCreatedAtPolicy.REJECT:
                raise QueueValidationError([
                    {"field": _loc((*location, "createdAt")), "message": "field required"}
                ])
            logger.warning(f"Order {order.id} has no createdAt, stamping ingestion time")
            order.created_at = self._clock()

        return order

    def parse(
        self,
        client_orders: Iterable[ClientOrder],
        client_prefix: Any,
        client_number: Any,
    ) -> list[QueueOrder]:
        """
        Validate a whole snapshot without touching any state.

        Raises:
            QueueValidationError: If the sequencer fields or any order is invalid
        """
        errors = self.validate_sequence(client_prefix, client_number)
        if errors:
            raise QueueValidationError(errors)
        return [self.coerce_order(raw, ("orders", index)) for index, raw in enumerate(client_orders)]

    def merge(
        self,
        server_state: QueueState,
        client_orders: Iterable[ClientOrder],
        client_prefix: Any,
        client_number: Any,
        known_ids: Iterable[str] = (),
    ) -> MergeResult:
        """
        Merge a client snapshot into a copy of server_state.

        Ids in `known_ids` are treated as already held, e.g. orders the
        daily reset just archived.

        Raises:
            QueueValidationError: If the sequencer fields or any order is invalid
        """
        orders = self.parse(client_orders, client_prefix, client_number)

        known_ids = server_state.order_ids | set(known_ids)
        new_orders: list[QueueOrder] = []
        for order in orders:
            if order.id in known_ids:
                continue
            known_ids.add(order.id)
            new_orders.append(order)

        merged = server_state.model_copy(deep=True)
        merged.orders.extend(new_orders)
        merged.current_prefix = client_prefix.strip()
        merged.current_number = client_number

        if new_orders:
            logger.info(
                f"Merged {len(new_orders)} new orders "
                f"({[o.id for o in new_orders]}), queue now holds {len(merged.orders)}"
            )
        return MergeResult(state=merged, new_orders=new_orders)
