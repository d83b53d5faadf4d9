import pytest

from ticket_queue import tasks
from ticket_queue.celery_worker import celery_app


@pytest.fixture
def wired(monkeypatch, queue_service):
    monkeypatch.setattr(tasks, "get_queue_service", lambda: queue_service)
    return queue_service


def test_daily_reset_is_scheduled_after_midnight():
    entry = celery_app.conf.beat_schedule["daily-queue-reset"]

    assert entry["task"] == "ticket_queue.tasks.check_queue_reset"
    assert entry["schedule"].hour == {0}
    assert entry["schedule"].minute == {1}


def test_reset_task_is_a_no_op_on_the_same_day(wired):
    result = tasks.check_queue_reset()

    assert result["reset"] is False
    assert result["current_prefix"] == "A"
    assert result["last_reset_date"] == "2024-03-10"


def test_reset_task_opens_the_new_day(wired, clock):
    wired.sequencer.next_ticket()
    clock.advance(days=1)

    result = tasks.check_queue_reset()

    assert result["reset"] is True
    assert result["current_prefix"] == "B"
    assert result["current_number"] == 1
    assert tasks.check_queue_reset()["reset"] is False
