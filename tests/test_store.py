from datetime import date

import pytest
from filelock import FileLock

from ticket_queue.core.exceptions import QueuePersistenceError
from ticket_queue.models import OrderStatus, QueueOrder, QueueState
from ticket_queue.services.queue.store import QueueStore, fresh_state_factory

TODAY = date(2024, 3, 10)


@pytest.fixture
def store(tmp_path):
    return QueueStore(
        tmp_path / "queue.json",
        state_factory=fresh_state_factory("A", lambda: TODAY),
        lock_timeout=0.2,
    )


def test_missing_document_gives_fresh_queue(store):
    state = store.load()

    assert state.orders == []
    assert state.current_prefix == "A"
    assert state.current_number == 1
    assert state.last_reset_date == TODAY
    assert store.is_readable()


def test_saved_document_is_camel_case_and_keeps_client_fields(store):
    state = store.load()
    state.orders.append(QueueOrder(id="o1", ticket="A001", customerName="Ana", note="no onions"))
    state.current_number = 2
    store.save(state)

    raw = store.path.read_text(encoding="utf-8")
    assert '"currentPrefix"' in raw
    assert '"lastResetDate"' in raw

    reloaded = store.load()
    assert reloaded.orders[0].customer_name == "Ana"
    assert reloaded.orders[0].status == OrderStatus.RECEIVED
    assert reloaded.orders[0].to_wire()["note"] == "no onions"
    assert reloaded.current_number == 2


def test_corrupt_document_self_heals_to_fresh_queue(store):
    store.path.write_text("{not json", encoding="utf-8")

    assert not store.is_readable()
    state = store.load()
    assert state == QueueState.fresh("A", TODAY)


def test_interrupted_write_leaves_last_committed_state(store, monkeypatch):
    committed = store.load()
    committed.orders.append(QueueOrder(id="o1", ticket="A001"))
    committed.current_number = 2
    store.save(committed)

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("ticket_queue.storage.os.replace", broken_replace)

    changed = committed.model_copy(deep=True)
    changed.orders.append(QueueOrder(id="o2", ticket="A002"))
    changed.current_number = 3
    with pytest.raises(QueuePersistenceError):
        store.save(changed)

    monkeypatch.undo()
    reloaded = store.load()
    assert [o.id for o in reloaded.orders] == ["o1"]
    assert reloaded.current_number == 2
    assert list(store.path.parent.glob(".queue.json.*")) == []


def test_lock_timeout_raises_persistence_error(store):
    holder = FileLock(str(store.path.with_name("queue.json.lock")))
    holder.acquire()
    try:
        with pytest.raises(QueuePersistenceError):
            with store.lock():
                pass
    finally:
        holder.release()
