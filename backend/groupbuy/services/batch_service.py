# Overview: Service-layer operations for batches and their product memberships.

"""
Batch lifecycle and membership management.

- Admins run group-buy batches; hosts run sub-group batches for the regions
  they host (admins may act on any batch).
- Status moves only along ALLOWED_TRANSITIONS.
- Activating a group-buy batch moves every other active group-buy batch back
  to draft; activating a sub-group batch does the same within its region.
- Membership edits never drop a product that already holds reservations and
  never lower a target below the vials already reserved.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Batch, BatchProduct, Product, Region, Order, OrderItem, User
from ..models.auth import ROLE_ADMIN
from ..models.batches import (
    BATCH_TYPES,
    BATCH_TYPE_GROUP_BUY,
    BATCH_TYPE_SUB_GROUP,
    BATCH_STATUSES,
    BATCH_DRAFT,
    BATCH_ACTIVE,
    BATCH_PAYMENT_COLLECTION,
    BATCH_ORDERING,
    BATCH_PROCESSING,
    BATCH_SHIPPED,
    BATCH_DELIVERED,
    BATCH_COMPLETED,
    BATCH_CANCELLED,
    ORDERABLE_BATCH_STATUSES,
)
from ..validation import ConflictError, MAX_TARGET_VIALS, parse_positive_int
from .concurrency import lock_for_update, run_with_retry
from .permission_service import deny_ownership, get_user_permissions
from . import progress_service


BATCH_MUTABLE_FIELDS = {
    "name",
    "description",
    "discount_bps",
    "shipping_fee_cents",
    "start_date",
    "end_date",
}

ALLOWED_TRANSITIONS = {
    BATCH_DRAFT: {BATCH_ACTIVE, BATCH_CANCELLED},
    BATCH_ACTIVE: {BATCH_DRAFT, BATCH_PAYMENT_COLLECTION, BATCH_ORDERING, BATCH_COMPLETED, BATCH_CANCELLED},
    BATCH_PAYMENT_COLLECTION: {BATCH_ACTIVE, BATCH_ORDERING, BATCH_CANCELLED},
    BATCH_ORDERING: {BATCH_PROCESSING, BATCH_CANCELLED},
    BATCH_PROCESSING: {BATCH_SHIPPED, BATCH_CANCELLED},
    BATCH_SHIPPED: {BATCH_DELIVERED, BATCH_CANCELLED},
    BATCH_DELIVERED: {BATCH_COMPLETED, BATCH_CANCELLED},
    BATCH_COMPLETED: set(),
    BATCH_CANCELLED: set(),
}

# Permission needed to manage each batch type
BATCH_TYPE_PERMISSIONS = {
    BATCH_TYPE_GROUP_BUY: "MANAGE_GROUP_BUY_BATCHES",
    BATCH_TYPE_SUB_GROUP: "MANAGE_SUB_GROUP_BATCHES",
}


class BatchError(Exception):
    """Raised for batch operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def default_vial_price(catalog_price_cents: int, discount_bps: int) -> int:
    """Catalog vial price minus the batch discount, rounded to the centavo."""
    return round(catalog_price_cents * (10_000 - discount_bps) / 10_000)


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


# -- access --

def require_batch_type_permission(batch_type: str, actor: User) -> None:
    code = BATCH_TYPE_PERMISSIONS.get(batch_type)
    if code is None:
        raise BatchError(f"Unknown batch type: {batch_type}")
    if code not in get_user_permissions(actor.id):
        raise deny_ownership(actor.id, f"batch_type:{batch_type}", f"Missing permission: {code}")


def require_batch_access(batch: Batch, actor: User) -> None:
    """
    Admins may manage any batch. Hosts may manage sub-group batches of the
    regions they host.
    """
    require_batch_type_permission(batch.batch_type, actor)
    if actor.role == ROLE_ADMIN:
        return
    region = batch.region
    if batch.batch_type != BATCH_TYPE_SUB_GROUP or region is None or region.host_user_id != actor.id:
        raise deny_ownership(actor.id, f"batch:{batch.id}", "You do not manage this batch")


# -- reads --

def batch_detail(batch: Batch) -> dict:
    data = batch.to_dict()
    data["region"] = batch.region.to_dict() if batch.region else None
    data["progress"] = progress_service.batch_progress(batch)
    return data


def list_public_batches(batch_type: str | None = None) -> list[Batch]:
    """Batches that currently accept orders, newest first."""
    query = db.session.query(Batch).filter(Batch.status.in_(ORDERABLE_BATCH_STATUSES))
    if batch_type:
        query = query.filter(Batch.batch_type == batch_type)
    return query.order_by(Batch.created_at.desc(), Batch.id.desc()).all()


def get_public_batch(batch_id: int) -> Batch | None:
    """Drafts are private to their owners; everything else is publicly readable."""
    batch = db.session.get(Batch, batch_id)
    if batch is None or batch.status == BATCH_DRAFT:
        return None
    return batch


def list_managed_batches(actor: User, *, batch_type: str | None = None, status: str | None = None) -> list[Batch]:
    query = db.session.query(Batch)
    if actor.role != ROLE_ADMIN:
        query = query.join(Region, Batch.region_id == Region.id).filter(
            Batch.batch_type == BATCH_TYPE_SUB_GROUP,
            Region.host_user_id == actor.id,
        )
    if batch_type:
        query = query.filter(Batch.batch_type == batch_type)
    if status:
        query = query.filter(Batch.status == status)
    return query.order_by(Batch.created_at.desc(), Batch.id.desc()).all()


def get_managed_batch(batch_id: int, actor: User) -> Batch | None:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        return None
    require_batch_access(batch, actor)
    return batch


# -- memberships --

def _parse_product_entries(entries) -> list[dict]:
    if not isinstance(entries, list):
        raise BatchError("products must be a list")

    parsed: list[dict] = []
    seen: set[int] = set()
    for i, raw in enumerate(entries):
        if not isinstance(raw, dict):
            raise BatchError(f"products[{i}] must be an object")
        product_id = parse_positive_int(raw.get("product_id"), f"products[{i}].product_id")
        if product_id in seen:
            raise BatchError("Duplicate product in batch", {"product_id": product_id})
        seen.add(product_id)

        target = raw.get("target_vials")
        if isinstance(target, bool) or not isinstance(target, int) or target < 0:
            raise BatchError(f"products[{i}].target_vials must be a non-negative integer")
        if target > MAX_TARGET_VIALS:
            raise BatchError(f"products[{i}].target_vials cannot exceed {MAX_TARGET_VIALS}")

        price = raw.get("price_per_vial_cents")
        if price is not None and (isinstance(price, bool) or not isinstance(price, int) or price < 0):
            raise BatchError(f"products[{i}].price_per_vial_cents must be a non-negative integer")

        parsed.append({"product_id": product_id, "target_vials": target, "price_per_vial_cents": price})
    return parsed


def _apply_memberships(batch: Batch, entries: list[dict]) -> None:
    """Replace the batch's product set with entries (already parsed)."""
    by_product = {m.product_id: m for m in batch.memberships}
    wanted = {e["product_id"] for e in entries}

    for product_id, m in list(by_product.items()):
        if product_id in wanted:
            continue
        referenced = (
            db.session.query(OrderItem.id).filter(OrderItem.batch_product_id == m.id).first()
            if m.id is not None else None
        )
        if m.current_vials > 0 or referenced:
            raise BatchError(
                "Cannot remove a product that already has orders",
                {"product_id": product_id, "current_vials": m.current_vials},
            )
        batch.memberships.remove(m)

    for entry in entries:
        m = by_product.get(entry["product_id"])
        if m is None:
            product = db.session.get(Product, entry["product_id"])
            if product is None:
                raise BatchError("Product not found", {"product_id": entry["product_id"]})
            if not product.is_active:
                raise BatchError("Product is inactive", {"product_id": product.id})
            price = entry["price_per_vial_cents"]
            if price is None:
                price = default_vial_price(product.price_per_vial_cents, batch.discount_bps or 0)
            batch.memberships.append(BatchProduct(
                product=product,
                target_vials=entry["target_vials"],
                current_vials=0,
                price_per_vial_cents=price,
            ))
            continue

        if entry["target_vials"] < m.current_vials:
            raise BatchError(
                "target_vials cannot be below vials already reserved",
                {"product_id": m.product_id, "current_vials": m.current_vials},
            )
        m.target_vials = entry["target_vials"]
        if entry["price_per_vial_cents"] is not None:
            m.price_per_vial_cents = entry["price_per_vial_cents"]


# -- activation --

def _demote_competing_batches(batch: Batch) -> list[int]:
    """Move other active batches of the same scope back to draft."""
    query = db.session.query(Batch).filter(
        Batch.id != batch.id,
        Batch.batch_type == batch.batch_type,
        Batch.status == BATCH_ACTIVE,
    )
    if batch.batch_type == BATCH_TYPE_SUB_GROUP:
        query = query.filter(Batch.region_id == batch.region_id)

    demoted = []
    for other in lock_for_update(query).all():
        other.status = BATCH_DRAFT
        demoted.append(other.id)

    if demoted:
        current_app.logger.info(
            "Activating batch %s demoted %s batch(es) to draft: %s",
            batch.id, batch.batch_type, demoted,
        )
    return demoted


# -- writes --

def create_batch(
    *,
    actor: User,
    batch_type: str,
    patch: dict,
    products: list | None = None,
    region_id: int | None = None,
    status: str = BATCH_DRAFT,
) -> Batch:
    if batch_type not in BATCH_TYPES:
        raise BatchError(f"Unknown batch type: {batch_type}")
    if status not in (BATCH_DRAFT, BATCH_ACTIVE):
        raise BatchError("New batches start as draft or active")

    require_batch_type_permission(batch_type, actor)

    region = None
    if batch_type == BATCH_TYPE_SUB_GROUP:
        if region_id is None:
            raise BatchError("region_id is required for sub-group batches")
        region = db.session.get(Region, region_id)
        if region is None:
            raise BatchError("Region not found", {"region_id": region_id})
        if actor.role != ROLE_ADMIN and region.host_user_id != actor.id:
            raise deny_ownership(actor.id, f"region:{region.id}", "You do not host this region")
    elif region_id is not None:
        raise BatchError("Group-buy batches do not belong to a region")

    entries = _parse_product_entries(products or [])
    if status == BATCH_ACTIVE and not entries:
        raise BatchError("Add at least one product before activating a batch")

    def _op() -> Batch:
        batch = Batch(
            batch_type=batch_type,
            status=BATCH_DRAFT,
            owner_user_id=region.host_user_id if region is not None and region.host_user_id else actor.id,
            region=region,
        )
        for k, v in patch.items():
            if k in BATCH_MUTABLE_FIELDS:
                setattr(batch, k, v)
        if batch.discount_bps is None:
            batch.discount_bps = 2000
        if batch.shipping_fee_cents is None:
            batch.shipping_fee_cents = 0

        db.session.add(batch)
        _apply_memberships(batch, entries)
        db.session.flush()

        if status == BATCH_ACTIVE:
            _demote_competing_batches(batch)
            batch.status = BATCH_ACTIVE

        db.session.commit()
        return batch

    batch = run_with_retry(_op)
    current_app.logger.info("Batch %s created (%s, %s) by user %s", batch.id, batch_type, batch.status, actor.id)
    return batch


def update_batch(*, batch_id: int, patch: dict, actor: User) -> Batch | None:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        return None
    require_batch_access(batch, actor)

    if batch.status in (BATCH_COMPLETED, BATCH_CANCELLED):
        raise BatchError(f"Cannot edit a {batch.status} batch")

    for k, v in patch.items():
        if k in BATCH_MUTABLE_FIELDS:
            setattr(batch, k, v)

    db.session.commit()
    return batch


def set_batch_products(*, batch_id: int, products: list, actor: User) -> Batch | None:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        return None
    require_batch_access(batch, actor)

    if batch.status in (BATCH_COMPLETED, BATCH_CANCELLED):
        raise BatchError(f"Cannot edit products of a {batch.status} batch")

    entries = _parse_product_entries(products)

    def _op() -> Batch:
        locked = lock_for_update(db.session.query(Batch).filter_by(id=batch_id)).first()
        # Reservations may have moved since the batch was loaded
        for m in locked.memberships:
            db.session.refresh(m)
        _apply_memberships(locked, entries)
        db.session.commit()
        return locked

    return run_with_retry(_op)


def transition_batch(*, batch_id: int, new_status: str, actor: User) -> Batch | None:
    if new_status not in BATCH_STATUSES:
        raise BatchError(f"Unknown batch status: {new_status}")

    batch = db.session.get(Batch, batch_id)
    if batch is None:
        return None
    require_batch_access(batch, actor)

    def _op() -> Batch:
        locked = lock_for_update(db.session.query(Batch).filter_by(id=batch_id)).first()
        current = locked.status
        if current == new_status:
            return locked
        if not can_transition(current, new_status):
            raise BatchError(
                f"Cannot move batch from {current} to {new_status}",
                {"from": current, "to": new_status, "allowed": sorted(ALLOWED_TRANSITIONS.get(current, set()))},
            )
        if new_status == BATCH_ACTIVE:
            if not locked.memberships:
                raise BatchError("Add at least one product before activating a batch")
            _demote_competing_batches(locked)
        locked.status = new_status
        db.session.commit()
        current_app.logger.info("Batch %s moved %s -> %s by user %s", locked.id, current, new_status, actor.id)
        return locked

    return run_with_retry(_op)


def delete_batch(*, batch_id: int, actor: User) -> bool:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        return False
    require_batch_access(batch, actor)

    has_orders = db.session.query(Order.id).filter(Order.batch_id == batch.id).first()
    if has_orders:
        raise ConflictError("Batch has orders; cancel it instead.")

    db.session.delete(batch)
    db.session.commit()
    current_app.logger.info("Batch %s deleted by user %s", batch_id, actor.id)
    return True
