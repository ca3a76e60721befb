# Overview: Human-readable order summaries and WhatsApp deep links.

"""
Outbound messaging.

Checkout never sends anything itself: it returns a wa.me deep link whose text
is the order summary, and the buyer's device opens it. Building the link must
never fail an order, so helpers here return None instead of raising when a
recipient number is missing.
"""

from __future__ import annotations

import re
from urllib.parse import quote

from flask import current_app

from ..models import Order
from ..models.orders import ORDER_TYPE_GROUP_BUY, ORDER_TYPE_SUB_GROUP, ORDER_TYPE_INDIVIDUAL, UNIT_BOX


WHATSAPP_BASE_URL = "https://wa.me"

CLOSING_LINE = "Please confirm my order and provide payment details. Thank you!"


def format_peso(cents: int) -> str:
    return f"₱{cents / 100:,.2f}"


def normalize_contact_number(value: str | None) -> str | None:
    """Digits only, as wa.me expects (no '+', spaces or dashes)."""
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    return digits or None


def whatsapp_link(number: str | None, message: str) -> str | None:
    digits = normalize_contact_number(number)
    if not digits:
        return None
    return f"{WHATSAPP_BASE_URL}/{digits}?text={quote(message, safe='')}"


def _item_lines(order: Order) -> list[str]:
    lines = []
    for item in order.items:
        name = item.product.name if item.product else f"Product {item.product_id}"
        unit = "box(es)" if item.unit == UNIT_BOX else "vial(s)"
        lines.append(
            f"• {name}: {item.quantity} {unit} × {format_peso(item.unit_price_cents)}"
            f" = {format_peso(item.line_total_cents)}"
        )
    return lines


def build_order_summary(order: Order) -> str:
    """Message text the buyer sends to the admin or host after checkout."""
    batch = order.batch
    if order.order_type == ORDER_TYPE_SUB_GROUP and batch is not None:
        region_name = batch.region.name if batch.region else ""
        header = [
            f"Hi! I'd like to place an order for the sub-group batch \"{batch.name}\" in {region_name}.",
            "",
            f"Order Code: {order.order_code}",
            f"Sub-Group: {region_name}",
        ]
    elif order.order_type == ORDER_TYPE_GROUP_BUY and batch is not None:
        header = [
            f"Hi! I'd like to place an order for the group buy batch \"{batch.name}\".",
            "",
            f"Order Code: {order.order_code}",
        ]
    else:
        header = [
            "Hi! I'd like to place an individual order.",
            "",
            f"Order Code: {order.order_code}",
        ]

    body = header + [
        f"Customer: {order.customer_name}",
        f"WhatsApp: {order.contact_handle}",
    ]
    if order.customer_email:
        body.append(f"Email: {order.customer_email}")

    if order.order_type == ORDER_TYPE_INDIVIDUAL:
        address = ", ".join(
            part for part in (
                order.shipping_address,
                order.shipping_city,
                " ".join(p for p in (order.shipping_province, order.shipping_zip_code) if p),
            ) if part
        )
        body.append(f"Address: {address}")

    body += ["", "Order Details:"] + _item_lines(order) + [""]

    if order.shipping_cents:
        body.append(f"Subtotal: {format_peso(order.subtotal_cents)}")
        body.append(f"Shipping: {format_peso(order.shipping_cents)}")
    body += [f"Total Amount: {format_peso(order.total_cents)}", "", CLOSING_LINE]
    return "\n".join(body)


def build_status_inquiry(order: Order) -> str:
    """Follow-up text used from the order tracking page."""
    batch = order.batch
    if order.order_type == ORDER_TYPE_GROUP_BUY and batch is not None:
        return (
            f"Hi! I'm checking on order {order.order_code} for batch \"{batch.name}\". "
            "Could you provide an update on the status?"
        )
    if order.order_type == ORDER_TYPE_SUB_GROUP and batch is not None and batch.region is not None:
        return (
            f"Hi! I'm checking on order {order.order_code} for sub-group \"{batch.region.name}\" "
            f"in {batch.region.city}. Could you provide an update on the status?"
        )
    return (
        f"Hi! I'm checking on order {order.order_code} for individual purchase. "
        "Could you provide an update on the status?"
    )


def recipient_for_order(order: Order) -> str | None:
    """Region contact for sub-group orders, the admin number otherwise."""
    admin_number = current_app.config.get("ADMIN_CONTACT_NUMBER")
    if order.order_type == ORDER_TYPE_SUB_GROUP:
        region = order.batch.region if order.batch else None
        if region is not None and normalize_contact_number(region.contact_handle):
            return region.contact_handle
        current_app.logger.warning(
            "Region contact missing for order %s; using admin number", order.order_code
        )
    return admin_number


def handoff_for_order(order: Order) -> dict:
    """Summary text plus deep link (whatsapp_url is None if no number is configured)."""
    message = build_order_summary(order)
    number = recipient_for_order(order)
    return {
        "contact_number": normalize_contact_number(number),
        "message": message,
        "whatsapp_url": whatsapp_link(number, message),
    }


def inquiry_for_order(order: Order) -> dict:
    message = build_status_inquiry(order)
    number = recipient_for_order(order)
    return {
        "contact_number": normalize_contact_number(number),
        "message": message,
        "whatsapp_url": whatsapp_link(number, message),
    }
