import asyncio

import pytest

from ticket_queue.models import OrderStatus, QueueOrder
from ticket_queue.services.notifications import MockNotificationService, NotificationDispatcher
from ticket_queue.services.notifications.base import NotificationEvent, NotificationResult
from ticket_queue.services.notifications.channels import (
    AdminWhatsAppChannel,
    CustomerWhatsAppChannel,
    EmailChannel,
)

from tests.conftest import RecordingChannel

ORDER = QueueOrder(id="o1", ticket="A001", items=[{"name": "Burger", "quantity": 2, "price": 9.5}], total=19.0)


def dispatch(dispatcher, event, channels):
    return asyncio.run(dispatcher.dispatch(event, channels))


def test_one_failing_channel_does_not_affect_the_others():
    email = RecordingChannel("email", succeed=False)
    admin = RecordingChannel("whatsapp_admin")

    outcomes = dispatch(NotificationDispatcher(), NotificationEvent.new_order(ORDER), [email, admin])

    assert outcomes["email"].success is False
    assert outcomes["email"].error == "email down"
    assert outcomes["whatsapp_admin"].success is True
    assert len(admin.events) == 1


def test_raising_channel_becomes_a_failed_outcome():
    broken = RecordingChannel("email", exc=RuntimeError("smtp exploded"))
    admin = RecordingChannel("whatsapp_admin")

    outcomes = dispatch(NotificationDispatcher(), NotificationEvent.new_order(ORDER), [broken, admin])

    assert outcomes["email"].success is False
    assert "RuntimeError" in outcomes["email"].error
    assert outcomes["whatsapp_admin"].success is True


def test_slow_channel_times_out_alone():
    slow = RecordingChannel("email", delay=1.0)
    fast = RecordingChannel("whatsapp_admin")

    outcomes = dispatch(NotificationDispatcher(timeout=0.05), NotificationEvent.new_order(ORDER), [slow, fast])

    assert outcomes["email"].success is False
    assert "timed out" in outcomes["email"].error
    assert outcomes["whatsapp_admin"].success is True


def test_no_channels_yields_empty_outcomes():
    assert dispatch(NotificationDispatcher(), NotificationEvent.new_order(ORDER), []) == {}


@pytest.mark.parametrize(
    "event, expected",
    [
        (NotificationEvent.new_order(ORDER), ["email", "whatsapp_admin"]),
        (NotificationEvent.new_order(ORDER, "+15551234567"), ["email", "whatsapp_admin", "whatsapp_customer"]),
        (NotificationEvent.status_update(ORDER, OrderStatus.RECEIVED), []),
        (NotificationEvent.status_update(ORDER, OrderStatus.RECEIVED, "+15551234567"), ["whatsapp_customer"]),
    ],
)
def test_channel_selection_per_event(channels, event, expected):
    assert [channel.name for channel in channels.for_event(event)] == expected


class FlakyTransport(MockNotificationService):
    """Fails the first `failures` sends, then succeeds."""

    def __init__(self, failures: int):
        super().__init__(failure_rate=0.0, max_latency=0.0)
        self.failures = failures
        self.calls = 0

    async def send_email(self, to_email, subject, body_html, body_text=None):
        self.calls += 1
        if self.calls <= self.failures:
            return NotificationResult(success=False, error_message="503", provider="mock")
        return await super().send_email(to_email, subject, body_html, body_text)


def test_email_channel_retries_until_success(recipient_store):
    transport = FlakyTransport(failures=1)
    channel = EmailChannel(transport, recipient_store, "Corner Snack Bar", max_attempts=2)

    result = asyncio.run(channel.send(NotificationEvent.new_order(ORDER)))

    assert result.success is True
    assert transport.calls == 2
    assert transport.sent[0]["to"] == "kitchen@snack.test"
    assert "A001" in transport.sent[0]["subject"]


def test_email_channel_gives_up_after_max_attempts(recipient_store):
    transport = FlakyTransport(failures=5)
    channel = EmailChannel(transport, recipient_store, "Corner Snack Bar", max_attempts=2)

    result = asyncio.run(channel.send(NotificationEvent.new_order(ORDER)))

    assert result.success is False
    assert transport.calls == 2


def test_email_channel_without_recipients_fails(tmp_path):
    from ticket_queue.services.notifications import RecipientStore

    channel = EmailChannel(MockNotificationService(0.0, max_latency=0.0), RecipientStore(tmp_path / "r.json"), "X")

    result = asyncio.run(channel.send(NotificationEvent.new_order(ORDER)))

    assert result.success is False
    assert "No establishment email" in result.error_message


def test_whatsapp_channels_address_admins_and_customer(recipient_store):
    transport = MockNotificationService(failure_rate=0.0, max_latency=0.0)
    admin = AdminWhatsAppChannel(transport, recipient_store)
    customer = CustomerWhatsAppChannel(transport, "Corner Snack Bar")
    event = NotificationEvent.new_order(ORDER, "+15551234567")

    asyncio.run(admin.send(event))
    asyncio.run(customer.send(event))

    assert [m["to"] for m in transport.sent] == ["+15550001111", "+15551234567"]
    assert "A001" in transport.sent[1]["body"]


class DroppingTransport(MockNotificationService):
    """Raises on the first WhatsApp send, then delivers."""

    def __init__(self):
        super().__init__(failure_rate=0.0, max_latency=0.0)
        self.attempted: list[str] = []

    async def send_whatsapp(self, to_phone, message):
        self.attempted.append(to_phone)
        if len(self.attempted) == 1:
            raise ConnectionError("connection reset by peer")
        return await super().send_whatsapp(to_phone, message)


def test_raising_transport_is_retried_and_other_recipients_still_served(recipient_store):
    recipient_store.add_whatsapp_admin("+15552223333", "Chef")
    transport = DroppingTransport()
    channel = AdminWhatsAppChannel(transport, recipient_store, max_attempts=2)

    result = asyncio.run(channel.send(NotificationEvent.new_order(ORDER)))

    assert result.success is True
    assert transport.attempted == ["+15550001111", "+15550001111", "+15552223333"]
    assert [m["to"] for m in transport.sent] == ["+15550001111", "+15552223333"]


def test_raising_transport_without_retry_fails_only_that_recipient(recipient_store):
    recipient_store.add_whatsapp_admin("+15552223333", "Chef")
    transport = DroppingTransport()
    channel = AdminWhatsAppChannel(transport, recipient_store, max_attempts=1)

    result = asyncio.run(channel.send(NotificationEvent.new_order(ORDER)))

    assert result.success is False
    assert "ConnectionError" in result.error_message
    assert [m["to"] for m in transport.sent] == ["+15552223333"]


def test_recipient_lookups_run_in_a_worker_thread(recipient_store, monkeypatch):
    offloaded = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(getattr(func, "__name__", repr(func)))
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
    transport = MockNotificationService(failure_rate=0.0, max_latency=0.0)
    event = NotificationEvent.new_order(ORDER)

    asyncio.run(EmailChannel(transport, recipient_store, "Corner Snack Bar").send(event))
    asyncio.run(AdminWhatsAppChannel(transport, recipient_store).send(event))

    assert offloaded == ["get_emails", "get_whatsapp_admins"]
