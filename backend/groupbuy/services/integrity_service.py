# Overview: Audit of the batch capacity and order total invariants.

"""
Read-only invariant audit.

Checks:
- membership_bounds: 0 <= current_vials <= target_vials
- membership_reservations: current_vials equals the vials held by
  non-cancelled order items on that membership
- order_totals: total = subtotal + shipping and subtotal = sum(line totals)
- line_totals: line_total = quantity * unit price
- batch_scope: batch orders reference a batch and only its memberships;
  individual orders reference no membership

Used by `flask integrity check` and GET /api/admin/integrity.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import BatchProduct, Order, OrderItem
from ..models.orders import ORDER_TYPE_INDIVIDUAL, ORDER_CANCELLED


def _membership_violations() -> tuple[list[dict], int]:
    held_rows = (
        db.session.query(OrderItem.batch_product_id, func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.batch_product_id.isnot(None), Order.status != ORDER_CANCELLED)
        .group_by(OrderItem.batch_product_id)
        .all()
    )
    held = {bp_id: int(qty) for bp_id, qty in held_rows}

    violations = []
    memberships = db.session.query(BatchProduct).order_by(BatchProduct.id.asc()).all()
    for m in memberships:
        if m.current_vials < 0 or m.current_vials > m.target_vials:
            violations.append({
                "check": "membership_bounds",
                "batch_id": m.batch_id,
                "batch_product_id": m.id,
                "current_vials": m.current_vials,
                "target_vials": m.target_vials,
            })
        expected = held.get(m.id, 0)
        if m.current_vials != expected:
            violations.append({
                "check": "membership_reservations",
                "batch_id": m.batch_id,
                "batch_product_id": m.id,
                "current_vials": m.current_vials,
                "held_by_orders": expected,
            })
    return violations, len(memberships)


def _order_violations() -> tuple[list[dict], int]:
    violations = []
    orders = db.session.query(Order).order_by(Order.id.asc()).all()
    for order in orders:
        items = order.items
        for item in items:
            if item.line_total_cents != item.quantity * item.unit_price_cents:
                violations.append({
                    "check": "line_totals",
                    "order_code": order.order_code,
                    "order_item_id": item.id,
                })

        subtotal = sum(item.line_total_cents for item in items)
        if order.subtotal_cents != subtotal or order.total_cents != order.subtotal_cents + order.shipping_cents:
            violations.append({
                "check": "order_totals",
                "order_code": order.order_code,
                "subtotal_cents": order.subtotal_cents,
                "items_cents": subtotal,
                "shipping_cents": order.shipping_cents,
                "total_cents": order.total_cents,
            })

        if order.order_type == ORDER_TYPE_INDIVIDUAL:
            stray = [item.id for item in items if item.batch_product_id is not None]
            if stray:
                violations.append({
                    "check": "batch_scope",
                    "order_code": order.order_code,
                    "reason": "individual order references batch products",
                    "order_item_ids": stray,
                })
            continue

        if order.batch_id is None:
            violations.append({
                "check": "batch_scope",
                "order_code": order.order_code,
                "reason": "batch order has no batch",
            })
            continue

        foreign = [
            item.id for item in items
            if item.batch_product is None or item.batch_product.batch_id != order.batch_id
        ]
        if foreign:
            violations.append({
                "check": "batch_scope",
                "order_code": order.order_code,
                "reason": "items reference memberships of another batch",
                "order_item_ids": foreign,
            })
    return violations, len(orders)


def run_integrity_checks() -> dict:
    membership_violations, membership_count = _membership_violations()
    order_violations, order_count = _order_violations()
    violations = membership_violations + order_violations
    return {
        "ok": not violations,
        "checked": {"memberships": membership_count, "orders": order_count},
        "violations": violations,
    }
