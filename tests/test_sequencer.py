import asyncio
import string
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone

import pytest

from ticket_queue.core.config import TicketPrefixMode
from ticket_queue.core.exceptions import QueuePersistenceError
from ticket_queue.models import QueueOrder
from ticket_queue.services.queue import OrderArchive, Ticket, TicketSequencer
from ticket_queue.services.queue.store import QueueStore, fresh_state_factory

from tests.conftest import PARIS


def test_tickets_are_sequential_and_padded(queue_service):
    sequencer = queue_service.sequencer

    tickets = [sequencer.next_ticket() for _ in range(3)]

    assert tickets == [Ticket("A", 1), Ticket("A", 2), Ticket("A", 3)]
    assert sequencer.format(tickets[-1]) == "A003"
    assert queue_service.store.load().current_number == 4


def test_reset_is_idempotent_within_a_day(queue_service):
    sequencer = queue_service.sequencer
    sequencer.next_ticket()

    assert sequencer.check_and_reset_for_new_day() is False
    assert sequencer.check_and_reset_for_new_day() is False
    assert queue_service.store.load().current_number == 2


def test_first_check_of_a_new_day_resets_once(queue_service, clock):
    sequencer = queue_service.sequencer
    sequencer.next_ticket()
    sequencer.next_ticket()

    clock.advance(days=1)

    assert sequencer.check_and_reset_for_new_day() is True
    assert sequencer.check_and_reset_for_new_day() is False
    state = queue_service.store.load()
    assert state.current_prefix == "B"
    assert state.current_number == 1
    assert state.last_reset_date == date(2024, 3, 11)


def test_several_missed_days_reset_once_to_today(queue_service, clock):
    sequencer = queue_service.sequencer
    clock.advance(days=4)

    assert sequencer.check_and_reset_for_new_day() is True
    assert sequencer.check_and_reset_for_new_day() is False
    state = queue_service.store.load()
    assert state.current_prefix == "B"
    assert state.last_reset_date == date(2024, 3, 14)


def test_next_ticket_across_midnight_starts_new_series(queue_service, clock):
    sequencer = queue_service.sequencer
    assert sequencer.format(sequencer.next_ticket()) == "A001"

    clock.advance(days=1)

    assert sequencer.format(sequencer.next_ticket()) == "B001"
    assert sequencer.format(sequencer.next_ticket()) == "B002"


def test_business_day_follows_the_establishment_timezone(queue_service, clock):
    # 23:30 UTC on the 10th is already 00:30 on the 11th in Paris
    clock.current = datetime(2024, 3, 10, 23, 30, tzinfo=timezone.utc)

    assert queue_service.sequencer.check_and_reset_for_new_day() is True
    assert queue_service.store.load().last_reset_date == date(2024, 3, 11)


def test_letter_prefix_wraps_after_z(queue_service, clock):
    store = queue_service.store
    state = store.load()
    state.current_prefix = "Z"
    store.save(state)

    clock.advance(days=1)
    queue_service.sequencer.check_and_reset_for_new_day()

    assert store.load().current_prefix == "A"


def test_date_prefix_mode_derives_letter_from_the_day(tmp_path, clock):
    store = QueueStore(tmp_path / "queue.json", fresh_state_factory("A", lambda: clock().date()))
    sequencer = TicketSequencer(store, timezone=PARIS, prefix_mode=TicketPrefixMode.DATE, clock=clock)

    clock.advance(days=1)
    sequencer.check_and_reset_for_new_day()

    today = date(2024, 3, 11)
    expected = string.ascii_uppercase[today.toordinal() % 26]
    state = store.load()
    if expected == "A":
        expected = "B"
    assert state.current_prefix == expected
    assert state.current_prefix != "A"


def test_concurrent_threads_never_share_a_number(queue_service):
    sequencer = queue_service.sequencer

    with ThreadPoolExecutor(max_workers=8) as pool:
        tickets = list(pool.map(lambda _: sequencer.next_ticket(), range(80)))

    numbers = sorted(t.number for t in tickets)
    assert numbers == list(range(1, 81))
    assert queue_service.store.load().current_number == 81


def test_concurrent_coroutines_never_share_a_number(queue_service):
    async def issue_many():
        return await asyncio.gather(*(queue_service.issue_ticket() for _ in range(30)))

    tickets = asyncio.run(issue_many())

    assert sorted(t.number for t in tickets) == list(range(1, 31))


def test_reset_moves_previous_day_orders_to_archive(queue_service, clock, settings):
    store = queue_service.store
    state = store.load()
    state.orders += [
        QueueOrder(id="o1", ticket="A001", items=[{"name": "Fries", "quantity": 1}], total=3.5),
        QueueOrder(id="o2", ticket="A002"),
    ]
    store.save(state)

    clock.advance(days=1)
    assert queue_service.sequencer.check_and_reset_for_new_day() is True

    assert store.load().orders == []
    rows = OrderArchive(settings.archive_path).get_archived_orders(date(2024, 3, 10))
    assert [(r["order_id"], r["ticket"]) for r in rows] == [("o1", "A001"), ("o2", "A002")]


class BrokenArchive:
    def archive_orders(self, orders, business_date):
        return {"success": False, "message": "workbook locked", "archived": 0, "archived_at": None}


def test_failed_archive_aborts_the_reset(tmp_path, clock):
    store = QueueStore(tmp_path / "queue.json", fresh_state_factory("A", lambda: clock().date()))
    sequencer = TicketSequencer(store, timezone=PARIS, archive=BrokenArchive(), clock=clock)
    state = store.load()
    state.orders.append(QueueOrder(id="o1", ticket="A001"))
    state.current_number = 2
    store.save(state)

    clock.advance(days=1)
    with pytest.raises(QueuePersistenceError):
        sequencer.check_and_reset_for_new_day()

    unchanged = store.load()
    assert [o.id for o in unchanged.orders] == ["o1"]
    assert unchanged.current_prefix == "A"
    assert unchanged.last_reset_date == date(2024, 3, 10)


def test_without_archive_orders_survive_the_reset(tmp_path, clock):
    store = QueueStore(tmp_path / "queue.json", fresh_state_factory("A", lambda: clock().date()))
    sequencer = TicketSequencer(store, timezone=PARIS, clock=clock)
    state = store.load()
    state.orders.append(QueueOrder(id="o1", ticket="A001"))
    store.save(state)

    clock.advance(days=1)
    sequencer.check_and_reset_for_new_day()

    assert [o.id for o in store.load().orders] == ["o1"]
