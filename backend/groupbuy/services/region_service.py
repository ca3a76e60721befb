# Overview: Service-layer operations for regional sub-groups and their hosts.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Region, User, Batch
from ..models.auth import ROLE_ADMIN, ROLE_HOST
from ..models.batches import BATCH_TYPE_SUB_GROUP, ORDERABLE_BATCH_STATUSES
from ..validation import ConflictError, ValidationError
from . import progress_service
from .permission_service import deny_ownership


REGION_MUTABLE_FIELDS = {
    "name",
    "description",
    "region",
    "city",
    "host_user_id",
    "contact_handle",
    "join_fee_cents",
    "is_active",
}

# What a host may change on a region they run
HOST_MUTABLE_FIELDS = {"description", "contact_handle"}


def _check_host(host_user_id: int | None) -> None:
    if host_user_id is None:
        return
    host = db.session.get(User, host_user_id)
    if not host:
        raise ValidationError("host_user_id does not reference a user")
    if host.role not in (ROLE_HOST, ROLE_ADMIN):
        raise ValidationError("Region host must have the host role")
    if not host.is_active:
        raise ValidationError("Region host account is deactivated")


def _hand_over_batches(region: Region, host_user_id: int | None) -> None:
    """Sub-group batches of a region belong to its current host."""
    if host_user_id is None:
        return
    db.session.query(Batch).filter(
        Batch.region_id == region.id,
        Batch.batch_type == BATCH_TYPE_SUB_GROUP,
    ).update({Batch.owner_user_id: host_user_id}, synchronize_session="fetch")


def current_batch_for_region(region_id: int) -> Batch | None:
    """Most recent orderable sub-group batch of a region."""
    return (
        db.session.query(Batch)
        .filter(
            Batch.region_id == region_id,
            Batch.batch_type == BATCH_TYPE_SUB_GROUP,
            Batch.status.in_(ORDERABLE_BATCH_STATUSES),
        )
        .order_by(Batch.created_at.desc(), Batch.id.desc())
        .first()
    )


def list_public_regions() -> list[dict]:
    """Active regions with host card and their current orderable batch (if any)."""
    regions = (
        db.session.query(Region)
        .filter(Region.is_active.is_(True))
        .order_by(Region.region.asc(), Region.city.asc(), Region.name.asc())
        .all()
    )
    out = []
    for region in regions:
        data = region.to_dict()
        batch = current_batch_for_region(region.id)
        data["active_batch"] = progress_service.batch_progress(batch) if batch else None
        out.append(data)
    return out


def list_regions(actor: User) -> list[Region]:
    """Admins see every region; hosts see the ones they run."""
    query = db.session.query(Region)
    if actor.role != ROLE_ADMIN:
        query = query.filter(Region.host_user_id == actor.id)
    return query.order_by(Region.name.asc(), Region.id.asc()).all()


def get_region(region_id: int) -> Region | None:
    return db.session.get(Region, region_id)


def require_region_host(region: Region, actor: User) -> None:
    """Admins pass; hosts must be the region's assigned host."""
    if actor.role == ROLE_ADMIN:
        return
    if region.host_user_id != actor.id:
        raise deny_ownership(actor.id, f"region:{region.id}", "You do not host this region")


def create_region(*, patch: dict) -> Region:
    _check_host(patch.get("host_user_id"))

    region = Region()
    for k, v in patch.items():
        if k in REGION_MUTABLE_FIELDS:
            setattr(region, k, v)
    if region.is_active is None:
        region.is_active = True
    if region.join_fee_cents is None:
        region.join_fee_cents = 0

    db.session.add(region)
    db.session.commit()
    current_app.logger.info("Region %s created (%s, %s)", region.id, region.name, region.city)
    return region


def update_region(*, region_id: int, patch: dict, actor: User) -> Region | None:
    region = db.session.get(Region, region_id)
    if not region:
        return None

    require_region_host(region, actor)
    allowed = REGION_MUTABLE_FIELDS if actor.role == ROLE_ADMIN else HOST_MUTABLE_FIELDS
    for k in patch:
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}")

    if "host_user_id" in patch:
        _check_host(patch["host_user_id"])

    for k, v in patch.items():
        setattr(region, k, v)
    if "host_user_id" in patch:
        _hand_over_batches(region, patch["host_user_id"])

    db.session.commit()
    return region


def assign_host(*, region_id: int, host_user_id: int | None) -> Region | None:
    region = db.session.get(Region, region_id)
    if not region:
        return None
    _check_host(host_user_id)
    region.host_user_id = host_user_id
    _hand_over_batches(region, host_user_id)
    db.session.commit()
    current_app.logger.info("Region %s host set to %s", region.id, host_user_id)
    return region


def delete_region(*, region_id: int) -> bool:
    """
    Delete a region that never ran a batch. Regions with batch history must
    be deactivated instead (ConflictError).
    """
    region = db.session.get(Region, region_id)
    if not region:
        return False
    has_batches = db.session.query(Batch.id).filter(Batch.region_id == region.id).first()
    if has_batches:
        raise ConflictError("Region has batches; deactivate it instead.")
    db.session.delete(region)
    db.session.commit()
    return True
