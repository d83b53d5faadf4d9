from datetime import date, datetime, timezone

from ticket_queue.models import OrderStatus, QueueOrder
from ticket_queue.services.queue import OrderArchive


def test_empty_day_writes_nothing(tmp_path):
    archive = OrderArchive(tmp_path / "archive.xlsx")

    result = archive.archive_orders([], date(2024, 3, 10))

    assert result["success"] is True
    assert result["message"] == "Nothing to archive"
    assert not archive.path.exists()


def test_days_accumulate_and_can_be_read_back_per_day(tmp_path):
    archive = OrderArchive(tmp_path / "archive.xlsx")
    created = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)

    archive.archive_orders(
        [QueueOrder(id="o1", ticket="A001", status=OrderStatus.COMPLETED, created_at=created, total=7.5)],
        date(2024, 3, 10),
    )
    result = archive.archive_orders([QueueOrder(id="o2", ticket="B001")], date(2024, 3, 11))

    assert result["success"] is True
    assert result["archived"] == 1
    assert len(archive.get_archived_orders()) == 2

    first_day = archive.get_archived_orders(date(2024, 3, 10))
    assert len(first_day) == 1
    row = first_day[0]
    assert row["order_id"] == "o1"
    assert row["status"] == "completed"
    assert row["total"] == 7.5
    assert row["customer_name"] is None
    assert archive.get_archived_orders(date(2024, 3, 12)) == []
