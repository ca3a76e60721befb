# Overview: Service-layer operations for placed orders: listing, tracking and status changes.

"""
Order management after checkout.

STATUS: orders only move forward along ORDER_FLOW; cancelled is reachable
from any non-terminal status. Cancelling a batch order gives its vials back
to the batch memberships in the same transaction.

PAYMENT: pending -> paid -> refunded. Refunding an unpaid order is rejected.

VISIBILITY: admins see every order, hosts see orders on sub-group batches of
the regions they currently host, customers see their own orders. The same
rule gates status and payment changes, matching batch management.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Order, Batch, Region, User
from ..models.auth import ROLE_ADMIN
from ..models.batches import BATCH_TYPE_SUB_GROUP
from ..models.orders import (
    ORDER_TYPES,
    ORDER_STATUSES,
    ORDER_PENDING,
    ORDER_CONFIRMED,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
    PAYMENT_STATUSES,
    PAYMENT_PENDING,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
)
from .checkout_service import CheckoutError, release_vials
from .concurrency import lock_for_update, run_with_retry
from .permission_service import PermissionDeniedError, deny_ownership
from . import messaging_service


ORDER_FLOW = [ORDER_PENDING, ORDER_CONFIRMED, ORDER_PROCESSING, ORDER_SHIPPED, ORDER_DELIVERED]
TERMINAL_ORDER_STATUSES = {ORDER_DELIVERED, ORDER_CANCELLED}

PAYMENT_TRANSITIONS = {
    PAYMENT_PENDING: {PAYMENT_PAID},
    PAYMENT_PAID: {PAYMENT_REFUNDED},
    PAYMENT_REFUNDED: set(),
}

SORT_COLUMNS = {
    "created_at": Order.created_at,
    "total": Order.total_cents,
    "status": Order.status,
    "customer": Order.customer_name,
    "order_code": Order.order_code,
}

MAX_BULK_ORDERS = 200


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def can_transition_order(current: str, new: str) -> bool:
    if current in TERMINAL_ORDER_STATUSES:
        return False
    if new == ORDER_CANCELLED:
        return True
    if current not in ORDER_FLOW or new not in ORDER_FLOW:
        return False
    return ORDER_FLOW.index(new) > ORDER_FLOW.index(current)


def can_transition_payment(current: str, new: str) -> bool:
    return new in PAYMENT_TRANSITIONS.get(current, set())


# -- visibility --

def _hosted_filter(query, actor: User):
    """Orders on sub-group batches of regions the actor currently hosts."""
    return (
        query.join(Batch, Order.batch_id == Batch.id)
        .join(Region, Batch.region_id == Region.id)
        .filter(Batch.batch_type == BATCH_TYPE_SUB_GROUP, Region.host_user_id == actor.id)
    )


def _scoped_query(actor: User, scope: str):
    query = db.session.query(Order)
    if scope == "all":
        if actor.role != ROLE_ADMIN:
            raise deny_ownership(actor.id, "orders:all", "Only admins can list every order")
        return query
    if scope == "hosted":
        if actor.role == ROLE_ADMIN:
            return query.filter(Order.batch_id.isnot(None))
        return _hosted_filter(query, actor)
    if scope == "mine":
        return query.filter(Order.user_id == actor.id)
    raise OrderError(f"Unknown scope: {scope}")


def can_manage_order(order: Order, actor: User) -> bool:
    """Same rule as batch management: admins, or the current host of the order's region."""
    if actor.role == ROLE_ADMIN:
        return True
    batch = order.batch
    if batch is None or batch.batch_type != BATCH_TYPE_SUB_GROUP:
        return False
    return batch.region is not None and batch.region.host_user_id == actor.id


def require_order_access(order: Order, actor: User) -> None:
    if not can_manage_order(order, actor):
        raise deny_ownership(actor.id, f"order:{order.id}", "You do not manage this order")


# -- reads --

def list_orders(
    actor: User,
    *,
    scope: str = "all",
    status: str | None = None,
    payment_status: str | None = None,
    order_type: str | None = None,
    batch_id: int | None = None,
    search: str | None = None,
    sort: str = "created_at",
    direction: str = "desc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Filtered, sorted order listing for dashboards.

    Returns {"items", "count"} and, when page is given, a "pagination" block.
    """
    query = _scoped_query(actor, scope)

    if status:
        if status not in ORDER_STATUSES:
            raise OrderError(f"Unknown order status: {status}")
        query = query.filter(Order.status == status)
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise OrderError(f"Unknown payment status: {payment_status}")
        query = query.filter(Order.payment_status == payment_status)
    if order_type:
        if order_type not in ORDER_TYPES:
            raise OrderError(f"Unknown order type: {order_type}")
        query = query.filter(Order.order_type == order_type)
    if batch_id is not None:
        query = query.filter(Order.batch_id == batch_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Order.order_code.ilike(like),
            Order.customer_name.ilike(like),
            Order.contact_handle.ilike(like),
            Order.customer_email.ilike(like),
        ))

    column = SORT_COLUMNS.get(sort)
    if column is None:
        raise OrderError(f"Unknown sort field: {sort}")
    ordering = column.asc() if direction == "asc" else column.desc()
    query = query.options(selectinload(Order.items)).order_by(ordering, Order.id.desc())

    if page is None:
        orders = query.all()
        return {"items": [o.to_dict() for o in orders], "count": len(orders)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_order_for_actor(order_id: int, actor: User) -> Order | None:
    order = db.session.get(Order, order_id)
    if order is None:
        return None
    if order.user_id == actor.id:
        return order
    require_order_access(order, actor)
    return order


def track_order(order_code: str) -> dict | None:
    """
    Public lookup by order code. Email and street address are left out since
    anyone holding the code can call this.
    """
    code = (order_code or "").strip().upper()
    if not code:
        return None
    order = db.session.query(Order).filter(Order.order_code == code).first()
    if order is None:
        return None

    data = order.to_dict()
    for private in ("customer_email", "shipping_address", "shipping_zip_code", "user_id"):
        data.pop(private, None)
    data["batch_status"] = order.batch.status if order.batch else None
    data["inquiry"] = messaging_service.inquiry_for_order(order)
    return data


# -- writes --

def _release_order(order: Order) -> int:
    released = 0
    for item in order.items:
        if item.batch_product_id is not None:
            release_vials(item.batch_product_id, item.quantity)
            released += item.quantity
    return released


def update_order_status(*, order_id: int, new_status: str, actor: User) -> Order | None:
    if new_status not in ORDER_STATUSES:
        raise OrderError(f"Unknown order status: {new_status}")

    order = db.session.get(Order, order_id)
    if order is None:
        return None
    require_order_access(order, actor)

    def _op() -> Order:
        locked = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        current = locked.status
        if current == new_status:
            return locked
        if not can_transition_order(current, new_status):
            raise OrderError(
                f"Cannot move order from {current} to {new_status}",
                {"from": current, "to": new_status},
            )

        released = 0
        if new_status == ORDER_CANCELLED:
            released = _release_order(locked)

        locked.status = new_status
        db.session.commit()

        if new_status == ORDER_CANCELLED:
            current_app.logger.info(
                "Order %s cancelled by user %s; released %s vial(s)",
                locked.order_code, actor.id, released,
            )
        return locked

    return run_with_retry(_op)


def update_payment_status(*, order_id: int, new_status: str, actor: User) -> Order | None:
    if new_status not in PAYMENT_STATUSES:
        raise OrderError(f"Unknown payment status: {new_status}")

    order = db.session.get(Order, order_id)
    if order is None:
        return None
    require_order_access(order, actor)

    def _op() -> Order:
        locked = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        current = locked.payment_status
        if current == new_status:
            return locked
        if not can_transition_payment(current, new_status):
            raise OrderError(
                f"Cannot move payment from {current} to {new_status}",
                {"from": current, "to": new_status},
            )
        locked.payment_status = new_status
        db.session.commit()
        return locked

    return run_with_retry(_op)


def bulk_update(
    *,
    order_ids: list,
    actor: User,
    status: str | None = None,
    payment_status: str | None = None,
) -> dict:
    """
    Apply the same status and/or payment change to many orders.

    Each order is its own transaction; failures are reported per order and
    do not stop the rest.
    """
    if not status and not payment_status:
        raise OrderError("Provide status or payment_status")
    if not isinstance(order_ids, list) or not order_ids:
        raise OrderError("order_ids must be a non-empty list")
    if len(order_ids) > MAX_BULK_ORDERS:
        raise OrderError(f"At most {MAX_BULK_ORDERS} orders per bulk update")

    updated: list[int] = []
    errors: list[dict] = []
    for raw_id in order_ids:
        if isinstance(raw_id, bool) or not isinstance(raw_id, int):
            errors.append({"order_id": raw_id, "error": "order id must be an integer"})
            continue
        try:
            result = None
            if status:
                result = update_order_status(order_id=raw_id, new_status=status, actor=actor)
            if payment_status and (result is not None or not status):
                result = update_payment_status(order_id=raw_id, new_status=payment_status, actor=actor)
        except (OrderError, CheckoutError, PermissionDeniedError) as e:
            errors.append({"order_id": raw_id, "error": str(e)})
            continue
        if result is None:
            errors.append({"order_id": raw_id, "error": "Order not found"})
            continue
        updated.append(raw_id)

    return {"updated": updated, "errors": errors}
