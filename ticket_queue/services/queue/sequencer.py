"""
Ticket Sequencer

Owns the (prefix, next number) pair of the queue and the daily reset.

The business day is the calendar date in the establishment's timezone.
The first reset check of a new day starts a new series: the number goes
back to 1 and the prefix rotates so tickets of different days never
collide. A process that was down across several midnights resets once,
to today; missed days are not replayed.

Orders of the outgoing day move to the order archive inside the same
locked cycle. Without an archive they stay in the live queue.

Author: Khalil Bannouri
Version: 3.0.0
"""

import logging
import string
from datetime import date, datetime
from typing import Callable, NamedTuple, Optional
from zoneinfo import ZoneInfo

from ticket_queue.core.config import TicketPrefixMode
from ticket_queue.core.exceptions import QueuePersistenceError
from ticket_queue.models import QueueState
from ticket_queue.services.queue.archive import OrderArchive
from ticket_queue.services.queue.store import QueueStore

logger = logging.getLogger(__name__)

LETTERS = string.ascii_uppercase


class Ticket(NamedTuple):
    """One assigned ticket."""
    prefix: str
    number: int

    def label(self, width: int = 3) -> str:
        """Human-facing form, e.g. A007."""
        return f"{self.prefix}{self.number:0{width}d}"


def business_clock(
    timezone: ZoneInfo,
    clock: Optional[Callable[[], datetime]] = None,
) -> Callable[[], datetime]:
    """Aware "now" in the establishment's timezone. Naive clock values are taken as local."""
    source = clock or (lambda: datetime.now(timezone))

    def now() -> datetime:
        current = source()
        if current.tzinfo is None:
            return current.replace(tzinfo=timezone)
        return current.astimezone(timezone)

    return now


def _advance_letter(prefix: str, default: str) -> str:
    if len(prefix) == 1 and prefix.upper() in LETTERS:
        return LETTERS[(LETTERS.index(prefix.upper()) + 1) % len(LETTERS)]
    return default


class TicketSequencer:
    """
    Daily ticket series over a QueueStore.

    The public methods run a full locked read-modify-write cycle. The
    apply_reset()/assign() helpers mutate a state the caller already
    holds under QueueStore.lock(), so larger operations (add an order,
    ticket it, commit) stay one cycle.
    """

    def __init__(
        self,
        store: QueueStore,
        timezone: ZoneInfo,
        prefix_mode: TicketPrefixMode = TicketPrefixMode.LETTER,
        default_prefix: str = "A",
        number_width: int = 3,
        archive: Optional[OrderArchive] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.timezone = timezone
        self.prefix_mode = prefix_mode
        self.default_prefix = default_prefix
        self.number_width = number_width
        self.archive = archive
        self.now = business_clock(timezone, clock)

    def today(self) -> date:
        return self.now().date()

    def rotate_prefix(self, current: str, today: date) -> str:
        """Prefix for the series starting today; always differs from current."""
        if self.prefix_mode == TicketPrefixMode.DATE:
            derived = LETTERS[today.toordinal() % len(LETTERS)]
            if derived == current:
                derived = _advance_letter(derived, self.default_prefix)
            return derived

        rotated = _advance_letter(current, self.default_prefix)
        if rotated == current:
            rotated = _advance_letter(self.default_prefix, "A")
        return rotated

    def format(self, ticket: Ticket) -> str:
        return ticket.label(self.number_width)

    # =========================================================================
    # IN-CYCLE HELPERS (caller holds the store lock)
    # =========================================================================

    def apply_reset(self, state: QueueState) -> bool:
        """
        Start today's series on `state` if its last reset was another day.

        Raises:
            QueuePersistenceError: If the outgoing orders could not be archived
        """
        today = self.today()
        if state.last_reset_date == today:
            return False

        outgoing_day = state.last_reset_date
        if self.archive is not None and state.orders:
            result = self.archive.archive_orders(state.orders, outgoing_day)
            if not result["success"]:
                raise QueuePersistenceError(
                    f"Daily reset aborted, archive failed: {result['message']}"
                )
            state.orders = []

        old_prefix = state.current_prefix
        state.current_prefix = self.rotate_prefix(old_prefix, today)
        state.current_number = 1
        state.last_reset_date = today

        logger.info(
            f"Queue reset for {today} (previous day {outgoing_day}): "
            f"prefix {old_prefix} -> {state.current_prefix}"
        )
        return True

    def assign(self, state: QueueState) -> Ticket:
        """Take the next number of the current series."""
        number = max(state.current_number, 1)
        state.current_number = number + 1
        return Ticket(state.current_prefix, number)

    # =========================================================================
    # PUBLIC CONTRACT
    # =========================================================================

    def check_and_reset_for_new_day(self) -> bool:
        """Reset the series if the business day changed. Returns True on reset."""
        with self.store.lock():
            state = self.store.load()
            was_reset = self.apply_reset(state)
            if was_reset:
                self.store.save(state)
            return was_reset

    def next_ticket(self) -> Ticket:
        """Reset check plus one assignment, committed as one cycle."""
        with self.store.lock():
            state = self.store.load()
            self.apply_reset(state)
            ticket = self.assign(state)
            self.store.save(state)

        logger.debug(f"Ticket issued: {self.format(ticket)}")
        return ticket
