"""
Notification Message Templates

Text and HTML bodies for the order events sent by the channel adapters.
"""

import html
import re
from typing import Any

from ticket_queue.models import OrderStatus, QueueOrder

STATUS_LABELS = {
    OrderStatus.RECEIVED: "received",
    OrderStatus.CONFIRMED: "confirmed",
    OrderStatus.PREPARING: "being prepared",
    OrderStatus.OUT_FOR_DELIVERY: "out for delivery",
    OrderStatus.COMPLETED: "ready / completed",
    OrderStatus.CANCELED: "canceled",
}


def normalize_phone(phone: str, default_country_code: str = "1") -> str:
    """E.164 form: keep digits, add the default country code when missing."""
    digits = re.sub(r"\D", "", phone)
    if phone.strip().startswith("+"):
        return f"+{digits}"
    if digits.startswith("00"):
        return f"+{digits[2:]}"
    if not digits.startswith(default_country_code) or len(digits) <= 10:
        digits = f"{default_country_code}{digits}"
    return f"+{digits}"


def _item_line(item: Any) -> str:
    if isinstance(item, dict):
        name = item.get("name") or item.get("title") or "Item"
        quantity = item.get("quantity", 1)
        price = item.get("price")
        if isinstance(price, (int, float)):
            return f"{quantity}x {name} (${price:.2f})"
        return f"{quantity}x {name}"
    return str(item)


def item_lines(order: QueueOrder) -> list[str]:
    return [_item_line(item) for item in order.items]


def _total(order: QueueOrder) -> str:
    return f"${order.total:.2f}" if order.total is not None else "-"


def _ticket(order: QueueOrder) -> str:
    return order.ticket or order.id


def new_order_email(order: QueueOrder, restaurant_name: str) -> tuple[str, str, str]:
    """Subject, HTML and plain text of the establishment's new-order email."""
    lines = item_lines(order)
    created = order.created_at.strftime("%Y-%m-%d %H:%M") if order.created_at else "-"
    subject = f"New order {_ticket(order)} - {restaurant_name}"

    text = "\n".join([
        f"New order {_ticket(order)} received at {created}",
        f"Customer: {order.customer_name or '-'} ({order.customer_phone or '-'})",
        "",
        *lines,
        "",
        f"Total: {_total(order)}",
    ])

    rows = "".join(f"<li>{html.escape(line)}</li>" for line in lines)
    ticket = html.escape(_ticket(order))
    customer = html.escape(order.customer_name or "-")
    phone = html.escape(order.customer_phone or "-")
    body_html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h1 style="color: #ff4757;">New order {ticket}</h1>
        <p>Received at {created}</p>
        <p>Customer: <strong>{customer}</strong> ({phone})</p>
        <ul>{rows}</ul>
        <div style="background: #f8f9fa; padding: 15px; border-radius: 8px; margin: 20px 0;">
            <p>Total: <strong>{_total(order)}</strong></p>
        </div>
    </div>
    """
    return subject, body_html, text


def admin_new_order_message(order: QueueOrder) -> str:
    lines = "\n".join(f"- {line}" for line in item_lines(order))
    return (
        f"New order {_ticket(order)}\n"
        f"Customer: {order.customer_name or '-'}\n"
        f"{lines}\n"
        f"Total: {_total(order)}"
    )


def customer_confirmation_message(order: QueueOrder, restaurant_name: str) -> str:
    greeting = f"Hi {order.customer_name}!" if order.customer_name else "Hi!"
    return (
        f"{greeting} Your order has been received.\n"
        f"Your ticket: {_ticket(order)}\n"
        f"Total: {_total(order)}\n"
        f"Thank you for ordering from {restaurant_name}!"
    )


def customer_status_message(order: QueueOrder, restaurant_name: str) -> str:
    label = STATUS_LABELS.get(order.status, order.status.value)
    return f"{restaurant_name}: your order {_ticket(order)} is now {label}."


def inbound_whatsapp_messages(payload: Any) -> list[dict[str, str]]:
    """
    Sender and text of each message in a WhatsApp webhook payload.

    Reads the `entry[].changes[].value.messages[]` layout of the WhatsApp
    Business webhook; anything else yields no messages.
    """
    if not isinstance(payload, dict):
        return []

    found = []
    for entry in payload.get("entry") or []:
        for change in (entry or {}).get("changes") or []:
            value = (change or {}).get("value") or {}
            for message in value.get("messages") or []:
                text = (message.get("text") or {}).get("body", "")
                found.append({
                    "from": str(message.get("from", "")),
                    "type": str(message.get("type", "")),
                    "text": str(text),
                })
    return found
