# Overview: Dashboard statistics for admins and batch analytics for hosts.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Batch, Order, Product, Region, User
from ..models.auth import ROLE_ADMIN, USER_ROLES
from ..models.batches import BATCH_STATUSES, BATCH_COMPLETED, ORDERABLE_BATCH_STATUSES
from ..models.orders import ORDER_STATUSES, ORDER_CANCELLED, PAYMENT_PAID, PAYMENT_PENDING
from . import progress_service
from .batch_service import list_managed_batches
from groupbuy.time_utils import month_key, previous_month_keys


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _counts_by(column, keys) -> dict[str, int]:
    rows = db.session.query(column, func.count()).group_by(column).all()
    found = {k: int(n) for k, n in rows}
    return {k: found.get(k, 0) for k in keys}


def admin_dashboard() -> dict:
    """Headline numbers for the admin dashboard."""
    paid_revenue = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.payment_status == PAYMENT_PAID)
        .scalar()
    )
    outstanding = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.payment_status == PAYMENT_PENDING, Order.status != ORDER_CANCELLED)
        .scalar()
    )

    open_batches = (
        db.session.query(Batch)
        .filter(Batch.status.in_(ORDERABLE_BATCH_STATUSES))
        .order_by(Batch.created_at.desc(), Batch.id.desc())
        .all()
    )

    return {
        "products": {
            "total": db.session.query(Product).count(),
            "active": db.session.query(Product).filter(Product.is_active.is_(True)).count(),
        },
        "batches": _counts_by(Batch.status, BATCH_STATUSES),
        "orders": _counts_by(Order.status, ORDER_STATUSES),
        "users": _counts_by(User.role, USER_ROLES),
        "regions": {
            "total": db.session.query(Region).count(),
            "active": db.session.query(Region).filter(Region.is_active.is_(True)).count(),
        },
        "revenue_cents": int(paid_revenue or 0),
        "outstanding_cents": int(outstanding or 0),
        "open_batches": [progress_service.batch_progress(b) for b in open_batches],
    }


def host_analytics(actor: User, *, months: int = 6, now: datetime | None = None) -> dict:
    """
    Performance of the batches an actor manages (every batch for admins).

    Revenue counts paid orders only; cancelled orders are ignored everywhere.
    """
    if months < 1 or months > 24:
        raise ReportError("months must be between 1 and 24")

    batches = list_managed_batches(actor)
    batch_ids = [b.id for b in batches]

    orders = []
    if batch_ids:
        orders = (
            db.session.query(Order)
            .filter(Order.batch_id.in_(batch_ids), Order.status != ORDER_CANCELLED)
            .all()
        )

    paid = [o for o in orders if o.payment_status == PAYMENT_PAID]
    revenue = sum(o.total_cents for o in paid)
    completed = sum(1 for b in batches if b.status == BATCH_COMPLETED)
    active = sum(1 for b in batches if b.status in ORDERABLE_BATCH_STATUSES)

    month_keys = previous_month_keys(months, now)
    monthly = {k: 0 for k in month_keys}
    for o in paid:
        if o.created_at is None:
            continue
        key = month_key(o.created_at)
        if key in monthly:
            monthly[key] += o.total_cents

    by_batch: dict[int, list[Order]] = {}
    for o in orders:
        by_batch.setdefault(o.batch_id, []).append(o)

    performance = []
    for b in batches:
        batch_orders = by_batch.get(b.id, [])
        performance.append({
            "batch_id": b.id,
            "name": b.name,
            "status": b.status,
            "participants": len({o.contact_handle for o in batch_orders}),
            "orders": len(batch_orders),
            "vials": b.current_vials,
            "target_vials": b.target_vials,
            "progress_percent": progress_service.progress_percent(b.target_vials, b.current_vials),
            "revenue_cents": sum(o.total_cents for o in batch_orders if o.payment_status == PAYMENT_PAID),
        })

    return {
        "scope": "all" if actor.role == ROLE_ADMIN else "hosted",
        "total_batches": len(batches),
        "active_batches": active,
        "completed_batches": completed,
        "total_orders": len(orders),
        "paid_orders": len(paid),
        "revenue_cents": revenue,
        "vials_committed": sum(b.current_vials for b in batches),
        "average_order_value_cents": round(revenue / len(paid)) if paid else 0,
        "completion_rate": round(100 * completed / len(batches), 1) if batches else 0.0,
        "monthly_revenue": [{"month": k, "revenue_cents": monthly[k]} for k in month_keys],
        "batch_performance": performance,
    }
