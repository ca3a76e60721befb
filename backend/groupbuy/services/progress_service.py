# Overview: Batch progress aggregation: capacity, percentages and completion.

"""
Batch progress aggregator.

Pure functions over (target, current) pairs plus a builder that turns a
Batch and its memberships into the progress document served to clients.
Batch level numbers are always summed from the memberships.
"""

from __future__ import annotations

from typing import Any, Iterable

from ..extensions import db
from ..models import Batch, BatchProduct


def remaining_capacity(target: int, current: int) -> int:
    return max(0, target - current)


def progress_percent(target: int, current: int) -> int:
    """Whole-number fill percentage; 0 for an empty target."""
    if target <= 0:
        return 0
    return round(100 * current / target)


def clamp_quantity(requested: Any, remaining: int) -> int:
    """
    Clamp a requested quantity into [0, remaining].

    Never raises: non-integers, booleans, negatives and garbage clamp to 0.
    Numeric strings ("3") are accepted because form inputs send strings.
    """
    if isinstance(requested, bool):
        return 0
    if isinstance(requested, str):
        stripped = requested.strip()
        if not stripped.isdigit():
            return 0
        requested = int(stripped)
    if not isinstance(requested, int):
        return 0
    upper = max(0, remaining)
    return min(max(0, requested), upper)


def is_membership_complete(target: int, current: int) -> bool:
    return current >= target


def is_batch_complete(memberships: Iterable[BatchProduct]) -> bool:
    """True iff the batch has memberships and every one is filled."""
    rows = list(memberships)
    if not rows:
        return False
    return all(is_membership_complete(m.target_vials, m.current_vials) for m in rows)


def membership_progress(m: BatchProduct) -> dict:
    product = m.product
    return {
        "batch_product_id": m.id,
        "product_id": m.product_id,
        "product_name": product.name if product else None,
        "category": product.category if product else None,
        "image_url": product.image_url if product else None,
        "price_per_vial_cents": m.price_per_vial_cents,
        "target_vials": m.target_vials,
        "current_vials": m.current_vials,
        "remaining_vials": remaining_capacity(m.target_vials, m.current_vials),
        "progress_percent": progress_percent(m.target_vials, m.current_vials),
        "is_complete": is_membership_complete(m.target_vials, m.current_vials),
    }


def batch_progress(batch: Batch) -> dict:
    """Progress document: batch totals plus one row per product."""
    rows = [membership_progress(m) for m in batch.memberships]
    target = sum(r["target_vials"] for r in rows)
    current = sum(r["current_vials"] for r in rows)
    return {
        "batch_id": batch.id,
        "batch_type": batch.batch_type,
        "name": batch.name,
        "status": batch.status,
        "region_id": batch.region_id,
        "target_vials": target,
        "current_vials": current,
        "remaining_vials": remaining_capacity(target, current),
        "progress_percent": progress_percent(target, current),
        "is_complete": is_batch_complete(batch.memberships),
        "products": rows,
    }


def get_batch_progress(batch_id: int) -> dict | None:
    """Fresh read of a batch's progress (None if the batch does not exist)."""
    batch = db.session.get(Batch, batch_id)
    if not batch:
        return None
    db.session.refresh(batch)
    for m in batch.memberships:
        db.session.refresh(m)
    return batch_progress(batch)
