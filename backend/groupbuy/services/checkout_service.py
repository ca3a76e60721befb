# Overview: Checkout: capacity reservation and order creation for every buying mode.

"""
Checkout service.

All three buying modes end here. Group-buy and sub-group orders share
place_batch_order; individual purchases use place_individual_order.

ATOMICITY: one checkout is one database transaction. Each batch line
reserves capacity with a single conditional UPDATE

    UPDATE batch_products
       SET current_vials = current_vials + :qty
     WHERE id = :id AND current_vials + :qty <= target_vials

and a zero row count means the product is full. Any failure (capacity,
validation, database) rolls back every reservation and the order rows
together, so there are no partial orders and no leaked vials.

IDEMPOTENCY: a client-supplied idempotency_key makes a resubmitted checkout
return the original order instead of reserving twice. Keys live in
order_checkout_keys; an order extended by consolidation keeps the keys of
every checkout it absorbed.

CONSOLIDATION: a signed-in buyer's checkout extends their newest order on
the batch that is still pending and unpaid.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Batch, BatchProduct, Order, OrderCheckoutKey, OrderItem, Product, User
from ..models.batches import BATCH_TYPE_GROUP_BUY, BATCH_TYPE_SUB_GROUP
from ..models.orders import (
    ORDER_TYPE_INDIVIDUAL,
    ORDER_TYPE_GROUP_BUY,
    ORDER_TYPE_SUB_GROUP,
    ORDER_PENDING,
    PAYMENT_PENDING,
    UNIT_VIAL,
    UNIT_BOX,
)
from ..cart import Cart, CartError, MAX_INDIVIDUAL_QUANTITY
from .concurrency import lock_for_update, run_with_retry
from .order_code_service import next_order_code
from .progress_service import clamp_quantity, remaining_capacity
from . import messaging_service, settings_service


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

BATCH_ORDER_TYPES = {
    ORDER_TYPE_GROUP_BUY: BATCH_TYPE_GROUP_BUY,
    ORDER_TYPE_SUB_GROUP: BATCH_TYPE_SUB_GROUP,
}

FLAG_FOR_ORDER_TYPE = {
    ORDER_TYPE_GROUP_BUY: settings_service.GROUP_BUY_ENABLED,
    ORDER_TYPE_SUB_GROUP: settings_service.REGIONS_ENABLED,
    ORDER_TYPE_INDIVIDUAL: settings_service.INDIVIDUAL_PURCHASE_ENABLED,
}


class CheckoutError(Exception):
    """Raised for checkout errors (bad cart, batch closed, missing details)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CapacityError(CheckoutError):
    """One or more products cannot take the requested vials. Nothing was reserved."""
    pass


@dataclass
class CustomerDetails:
    name: str
    contact_handle: str
    email: str | None = None
    address: str | None = None
    city: str | None = None
    province: str | None = None
    zip_code: str | None = None


@dataclass
class CheckoutResult:
    order: Order
    replayed: bool = False
    merged: bool = False
    handoff: dict | None = None

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "replayed": self.replayed,
            "merged": self.merged,
            "handoff": self.handoff,
        }


def _clean(value, limit: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > limit:
        raise CheckoutError(f"Value exceeds max length {limit}")
    return text or None


def parse_customer(payload: dict, *, require_address: bool = False) -> CustomerDetails:
    """Customer block of a checkout request. Name and contact handle are always required."""
    if not isinstance(payload, dict):
        raise CheckoutError("customer must be an object")

    name = _clean(payload.get("customer_name") or payload.get("name"), 255)
    contact = _clean(payload.get("contact_handle") or payload.get("phone"), 50)
    email = _clean(payload.get("customer_email") or payload.get("email"), 255)

    missing = []
    if not name:
        missing.append("customer_name")
    if not contact:
        missing.append("contact_handle")

    details = CustomerDetails(
        name=name or "",
        contact_handle=contact or "",
        email=email.lower() if email else None,
        address=_clean(payload.get("shipping_address"), 500),
        city=_clean(payload.get("shipping_city"), 100),
        province=_clean(payload.get("shipping_province"), 100),
        zip_code=_clean(payload.get("shipping_zip_code"), 20),
    )

    if require_address:
        for key, value in (
            ("shipping_address", details.address),
            ("shipping_city", details.city),
            ("shipping_province", details.province),
        ):
            if not value:
                missing.append(key)

    if missing:
        raise CheckoutError("Missing customer details", {"missing": missing})

    if details.email and not EMAIL_PATTERN.match(details.email):
        raise CheckoutError("customer_email is not a valid email address")

    return details


def parse_idempotency_key(value) -> str | None:
    if value is None:
        return None
    key = str(value).strip()
    if not key:
        return None
    if len(key) > 128:
        raise CheckoutError("idempotency_key exceeds max length 128")
    return key


def shipping_for_boxes(total_boxes: int) -> int:
    """Individual shipping: one fee per started group of BOXES_PER_SHIPPING_UNIT boxes."""
    if total_boxes <= 0:
        return 0
    per_unit = current_app.config.get("BOXES_PER_SHIPPING_UNIT", 4)
    fee = current_app.config.get("INDIVIDUAL_SHIPPING_FEE_CENTS", 260_000)
    return math.ceil(total_boxes / per_unit) * fee


# -- capacity --

def reserve_vials(batch_product_id: int, quantity: int) -> bool:
    """
    Atomically add quantity to a membership if it fits under target_vials.
    Returns False (and changes nothing) when it does not fit.
    """
    if quantity <= 0:
        return False
    stmt = (
        update(BatchProduct)
        .where(
            BatchProduct.id == batch_product_id,
            BatchProduct.current_vials + quantity <= BatchProduct.target_vials,
        )
        .values(current_vials=BatchProduct.current_vials + quantity)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def release_vials(batch_product_id: int, quantity: int) -> None:
    """Give reserved vials back (order cancellation). Never drives a counter below zero."""
    if quantity <= 0:
        return
    stmt = (
        update(BatchProduct)
        .where(
            BatchProduct.id == batch_product_id,
            BatchProduct.current_vials >= quantity,
        )
        .values(current_vials=BatchProduct.current_vials - quantity)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise CheckoutError(
            "Reserved vials out of sync for batch product",
            {"batch_product_id": batch_product_id, "quantity": quantity},
        )


def _find_by_idempotency_key(key: str | None) -> Order | None:
    if not key:
        return None
    return (
        db.session.query(Order)
        .join(OrderCheckoutKey, OrderCheckoutKey.order_id == Order.id)
        .filter(OrderCheckoutKey.idempotency_key == key)
        .first()
    )


def _recompute_totals(order: Order) -> None:
    order.subtotal_cents = sum(item.line_total_cents for item in order.items)
    order.total_cents = order.subtotal_cents + (order.shipping_cents or 0)


def _safe_handoff(order: Order) -> dict | None:
    try:
        return messaging_service.handoff_for_order(order)
    except Exception:
        current_app.logger.exception("Failed to build WhatsApp hand-off for order %s", order.order_code)
        return None


def _replay(order: Order) -> CheckoutResult:
    current_app.logger.info("Checkout replayed for order %s", order.order_code)
    return CheckoutResult(order=order, replayed=True, handoff=_safe_handoff(order))


def _commit_or_replay(op, idempotency_key: str | None):
    """
    Run the checkout unit. A unique-key collision on idempotency_key means a
    concurrent duplicate submission won; return its order instead.
    """
    try:
        return run_with_retry(op)
    except IntegrityError:
        existing = _find_by_idempotency_key(idempotency_key)
        if existing is not None:
            return _replay(existing)
        raise


# -- batch checkout --

def _batch_lines(cart: Cart, order_type: str, batch: Batch) -> dict[int, int]:
    """Map batch_product_id -> requested vials for this batch, validating references."""
    memberships = {m.id: m for m in batch.memberships}
    requested: dict[int, int] = {}
    for line in cart.lines_for_batch(order_type, batch.id):
        m = memberships.get(line.batch_product_id)
        if m is None or m.product_id != line.product_id:
            raise CheckoutError(
                "Cart line does not belong to this batch",
                {"product_id": line.product_id, "batch_product_id": line.batch_product_id},
            )
        if line.quantity <= 0:
            continue
        requested[m.id] = requested.get(m.id, 0) + line.quantity
    if not requested:
        raise CheckoutError("Cart has no items for this batch")
    return requested


def _consolidation_target(user: User | None, order_type: str, batch_id: int) -> Order | None:
    """Newest pending, unpaid order of the buyer on this batch."""
    if user is None:
        return None
    return lock_for_update(
        db.session.query(Order).filter(
            Order.user_id == user.id,
            Order.batch_id == batch_id,
            Order.order_type == order_type,
            Order.status == ORDER_PENDING,
            Order.payment_status == PAYMENT_PENDING,
        ).order_by(Order.created_at.desc(), Order.id.desc())
    ).first()


def place_batch_order(
    *,
    order_type: str,
    batch_id: int,
    cart: Cart,
    customer: CustomerDetails,
    user: User | None = None,
    idempotency_key: str | None = None,
) -> CheckoutResult:
    """
    Reserve capacity and create (or extend) a batch order.

    Raises:
        FeatureDisabledError: mode switched off in site settings
        CheckoutError: batch missing/closed/wrong type, bad cart lines
        CapacityError: some product cannot take the requested vials
    """
    if order_type not in BATCH_ORDER_TYPES:
        raise CheckoutError(f"Unknown batch order type: {order_type}")

    settings_service.require_enabled(FLAG_FOR_ORDER_TYPE[order_type])

    replay = _find_by_idempotency_key(idempotency_key)
    if replay is not None:
        if replay.batch_id != batch_id:
            raise CheckoutError("idempotency_key was already used for a different order")
        return _replay(replay)

    def _op() -> CheckoutResult:
        batch = db.session.get(Batch, batch_id)
        if batch is None:
            raise CheckoutError("Batch not found", {"batch_id": batch_id})
        if batch.batch_type != BATCH_ORDER_TYPES[order_type]:
            raise CheckoutError("Batch type does not match checkout mode", {"batch_type": batch.batch_type})
        if not batch.is_orderable:
            raise CheckoutError("Batch is not accepting orders", {"status": batch.status})
        if batch.batch_type == BATCH_TYPE_SUB_GROUP and (batch.region is None or not batch.region.is_active):
            raise CheckoutError("Region is not accepting orders")

        requested = _batch_lines(cart, order_type, batch)
        memberships = {m.id: m for m in batch.memberships}

        shortfalls = []
        for bp_id, qty in requested.items():
            if not reserve_vials(bp_id, qty):
                m = memberships[bp_id]
                db.session.refresh(m)
                shortfalls.append({
                    "batch_product_id": bp_id,
                    "product_id": m.product_id,
                    "product_name": m.product.name if m.product else None,
                    "requested": qty,
                    "remaining": remaining_capacity(m.target_vials, m.current_vials),
                })
        if shortfalls:
            current_app.logger.warning(
                "Checkout rejected on batch %s: insufficient capacity for %s product(s)",
                batch.id, len(shortfalls),
            )
            raise CapacityError("Not enough vials left in this batch", {"products": shortfalls})

        order = _consolidation_target(user, order_type, batch.id)
        merged = order is not None
        if order is None:
            order = Order(
                order_code=next_order_code(order_type),
                order_type=order_type,
                batch=batch,
                user_id=user.id if user else None,
                customer_name=customer.name,
                contact_handle=customer.contact_handle,
                customer_email=customer.email,
                status=ORDER_PENDING,
                payment_status=PAYMENT_PENDING,
                subtotal_cents=0,
                shipping_cents=batch.shipping_fee_cents or 0,
                total_cents=batch.shipping_fee_cents or 0,
            )
            db.session.add(order)

        for bp_id, qty in requested.items():
            m = memberships[bp_id]
            existing = next(
                (
                    item for item in order.items
                    if item.batch_product_id == bp_id and item.unit_price_cents == m.price_per_vial_cents
                ),
                None,
            )
            if existing is not None:
                existing.quantity += qty
                existing.line_total_cents = existing.quantity * existing.unit_price_cents
                continue
            order.items.append(OrderItem(
                product_id=m.product_id,
                batch_product_id=bp_id,
                quantity=qty,
                unit=UNIT_VIAL,
                unit_price_cents=m.price_per_vial_cents,
                line_total_cents=qty * m.price_per_vial_cents,
            ))

        _recompute_totals(order)
        if idempotency_key:
            order.checkout_keys.append(OrderCheckoutKey(idempotency_key=idempotency_key))

        db.session.commit()
        current_app.logger.info(
            "Order %s %s on batch %s (%s vials)",
            order.order_code, "extended" if merged else "placed", batch.id, sum(requested.values()),
        )
        return CheckoutResult(order=order, merged=merged)

    result = _commit_or_replay(_op, idempotency_key)
    if not result.replayed:
        result.handoff = _safe_handoff(result.order)
    return result


# -- individual checkout --

def place_individual_order(
    *,
    cart: Cart,
    customer: CustomerDetails,
    user: User | None = None,
    idempotency_key: str | None = None,
) -> CheckoutResult:
    """Box-priced catalog purchase with shipping; no pooled capacity involved."""
    settings_service.require_enabled(settings_service.INDIVIDUAL_PURCHASE_ENABLED)

    if not (customer.address and customer.city and customer.province):
        raise CheckoutError("Shipping address, city and province are required")

    replay = _find_by_idempotency_key(idempotency_key)
    if replay is not None:
        if replay.order_type != ORDER_TYPE_INDIVIDUAL:
            raise CheckoutError("idempotency_key was already used for a different order")
        return _replay(replay)

    lines = [line for line in cart.lines_for_mode(ORDER_TYPE_INDIVIDUAL) if line.quantity > 0]
    if not lines:
        raise CheckoutError("Cart has no individual items")

    def _op() -> CheckoutResult:
        order = Order(
            order_code=next_order_code(ORDER_TYPE_INDIVIDUAL),
            order_type=ORDER_TYPE_INDIVIDUAL,
            user_id=user.id if user else None,
            customer_name=customer.name,
            contact_handle=customer.contact_handle,
            customer_email=customer.email,
            shipping_address=customer.address,
            shipping_city=customer.city,
            shipping_province=customer.province,
            shipping_zip_code=customer.zip_code,
            status=ORDER_PENDING,
            payment_status=PAYMENT_PENDING,
        )
        if idempotency_key:
            order.checkout_keys.append(OrderCheckoutKey(idempotency_key=idempotency_key))

        total_boxes = 0
        for line in lines:
            product = db.session.get(Product, line.product_id)
            if product is None or not product.is_active:
                raise CheckoutError("Product is not available", {"product_id": line.product_id})
            quantity = clamp_quantity(line.quantity, MAX_INDIVIDUAL_QUANTITY)
            total_boxes += quantity
            order.items.append(OrderItem(
                product_id=product.id,
                quantity=quantity,
                unit=UNIT_BOX,
                unit_price_cents=product.price_per_box_cents,
                line_total_cents=quantity * product.price_per_box_cents,
            ))

        order.shipping_cents = shipping_for_boxes(total_boxes)
        _recompute_totals(order)

        db.session.add(order)
        db.session.commit()
        current_app.logger.info("Individual order %s placed (%s boxes)", order.order_code, total_boxes)
        return CheckoutResult(order=order)

    result = _commit_or_replay(_op, idempotency_key)
    if not result.replayed:
        result.handoff = _safe_handoff(result.order)
    return result


# -- quotes --

def quote_cart(cart: Cart) -> dict:
    """
    Run a posted cart through the clamp policy against live capacity and prices.

    Lines referencing missing products or memberships come back with
    quantity 0 and available=False. Nothing is reserved.
    """
    out_lines = []
    individual_boxes = 0
    subtotal = 0

    for line in cart.lines:
        entry = {
            "mode": line.mode,
            "product_id": line.product_id,
            "batch_id": line.batch_id,
            "requested": line.quantity,
        }
        if line.mode == ORDER_TYPE_INDIVIDUAL:
            product = db.session.get(Product, line.product_id)
            available = product is not None and product.is_active
            max_quantity = MAX_INDIVIDUAL_QUANTITY if available else 0
            unit_price = product.price_per_box_cents if available else 0
            name = product.name if product else line.name
        else:
            m = db.session.get(BatchProduct, line.batch_product_id)
            available = (
                m is not None
                and m.batch_id == line.batch_id
                and m.product_id == line.product_id
                and m.batch.is_orderable
            )
            max_quantity = remaining_capacity(m.target_vials, m.current_vials) if available else 0
            unit_price = m.price_per_vial_cents if available else 0
            name = m.product.name if available and m.product else line.name

        quantity = clamp_quantity(line.quantity, max_quantity)
        entry.update({
            "name": name,
            "available": available,
            "max_quantity": max_quantity,
            "quantity": quantity,
            "clamped": quantity != line.quantity,
            "unit_price_cents": unit_price,
            "line_total_cents": quantity * unit_price,
        })
        if line.mode == ORDER_TYPE_INDIVIDUAL:
            individual_boxes += quantity
        subtotal += entry["line_total_cents"]
        out_lines.append(entry)

    shipping = shipping_for_boxes(individual_boxes)
    return {
        "lines": out_lines,
        "item_count": sum(e["quantity"] for e in out_lines),
        "subtotal_cents": subtotal,
        "individual_shipping_cents": shipping,
        "total_cents": subtotal + shipping,
    }


def parse_cart(payload) -> Cart:
    try:
        return Cart.from_payload(payload)
    except CartError as e:
        raise CheckoutError(str(e))
