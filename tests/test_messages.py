import pytest

from ticket_queue.models import OrderStatus, QueueOrder
from ticket_queue.services.notifications.messages import (
    customer_confirmation_message,
    customer_status_message,
    inbound_whatsapp_messages,
    new_order_email,
    normalize_phone,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+33 6 12 34 56 78", "+33612345678"),
        ("(555) 123-4567", "+15551234567"),
        ("0033612345678", "+33612345678"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw, "1") == expected


def test_new_order_email_lists_items_and_ticket():
    order = QueueOrder(id="o1", ticket="A007", items=[{"name": "Wrap", "quantity": 2, "price": 8.75}, "Extra sauce"], total=17.5)

    subject, html, text = new_order_email(order, "Corner Snack Bar")

    assert subject == "New order A007 - Corner Snack Bar"
    assert "2x Wrap ($8.75)" in text
    assert "Extra sauce" in text
    assert "$17.50" in html


def test_customer_messages_carry_ticket_and_status():
    order = QueueOrder(id="o1", ticket="A007", customer_name="Ana", status=OrderStatus.OUT_FOR_DELIVERY)

    assert "Your ticket: A007" in customer_confirmation_message(order, "Corner Snack Bar")
    assert customer_status_message(order, "Corner Snack Bar") == (
        "Corner Snack Bar: your order A007 is now out for delivery."
    )


def test_new_order_email_escapes_client_text_in_html():
    order = QueueOrder(
        id="o1",
        ticket="A007",
        customer_name="<b>Ana</b>",
        items=[{"name": "Fries & <script>alert(1)</script>", "quantity": 1}],
    )

    _, html, text = new_order_email(order, "Corner Snack Bar")

    assert "<script>" not in html
    assert "&lt;b&gt;Ana&lt;/b&gt;" in html
    assert "Fries &amp; &lt;script&gt;" in html
    assert "Fries & <script>alert(1)</script>" in text


@pytest.mark.parametrize("payload", [None, [], {}, {"entry": [{"changes": [{"value": {"statuses": []}}]}]}])
def test_inbound_whatsapp_without_messages(payload):
    assert inbound_whatsapp_messages(payload) == []


def test_inbound_whatsapp_messages_are_flattened():
    payload = {"entry": [{"changes": [{"value": {"messages": [
        {"from": "15551234567", "type": "text", "text": {"body": "hi"}},
        {"from": "15557654321", "type": "image"},
    ]}}]}]}

    assert inbound_whatsapp_messages(payload) == [
        {"from": "15551234567", "type": "text", "text": "hi"},
        {"from": "15557654321", "type": "image", "text": ""},
    ]
