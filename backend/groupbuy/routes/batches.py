# Overview: Flask API routes for group-buy and sub-group batches and their progress.

from flask import Blueprint, request, jsonify, current_app, g

from ..models import Batch
from ..services import batch_service, progress_service, settings_service
from ..services.batch_service import BatchError
from ..services.permission_service import PermissionDeniedError
from ..services.settings_service import FeatureDisabledError
from ..models.batches import BATCH_TYPE_GROUP_BUY, BATCH_TYPE_SUB_GROUP
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_batch,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_any_permission


BATCH_POLICY = ModelValidationPolicy(
    writable_fields=set(batch_service.BATCH_MUTABLE_FIELDS),
    required_on_create={"name"},
)

MANAGE_BATCH_PERMISSIONS = ("MANAGE_GROUP_BUY_BATCHES", "MANAGE_SUB_GROUP_BATCHES")

FLAG_FOR_TYPE = {
    BATCH_TYPE_GROUP_BUY: settings_service.GROUP_BUY_ENABLED,
    BATCH_TYPE_SUB_GROUP: settings_service.REGIONS_ENABLED,
}

batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


def _require_type_enabled(batch_type: str | None) -> None:
    key = FLAG_FOR_TYPE.get(batch_type)
    if key:
        settings_service.require_enabled(key)


# -- public --

@batches_bp.get("")
def list_batches_route():
    """
    Orderable batches with progress.

    Query params:
    - type: group_buy | sub_group (optional)
    """
    batch_type = request.args.get("type")
    if batch_type and batch_type not in FLAG_FOR_TYPE:
        return jsonify({"error": f"Unknown batch type: {batch_type}"}), 400

    try:
        if batch_type:
            _require_type_enabled(batch_type)
        batches = batch_service.list_public_batches(batch_type)
        if not batch_type:
            flags = settings_service.get_flags()
            batches = [b for b in batches if flags.get(FLAG_FOR_TYPE[b.batch_type], True)]
    except FeatureDisabledError as e:
        return jsonify({"error": str(e), "feature": e.key}), 403

    items = [batch_service.batch_detail(b) for b in batches]
    return jsonify({"items": items, "count": len(items)}), 200


@batches_bp.get("/<int:batch_id>")
def get_batch_route(batch_id: int):
    batch = batch_service.get_public_batch(batch_id)
    if not batch:
        return jsonify({"error": "Batch not found"}), 404
    try:
        _require_type_enabled(batch.batch_type)
    except FeatureDisabledError as e:
        return jsonify({"error": str(e), "feature": e.key}), 403
    return jsonify(batch_service.batch_detail(batch)), 200


@batches_bp.get("/<int:batch_id>/progress")
def batch_progress_route(batch_id: int):
    """Fresh per-product progress; clients poll this while a batch is open."""
    batch = batch_service.get_public_batch(batch_id)
    if batch is None:
        return jsonify({"error": "Batch not found"}), 404
    try:
        _require_type_enabled(batch.batch_type)
    except FeatureDisabledError as e:
        return jsonify({"error": str(e), "feature": e.key}), 403
    progress = progress_service.get_batch_progress(batch_id)
    return jsonify(progress), 200


# -- management --

@batches_bp.get("/manage")
@require_auth
@require_any_permission(*MANAGE_BATCH_PERMISSIONS)
def list_managed_batches_route():
    """
    Batches the caller manages, every status.

    Query params:
    - type: group_buy | sub_group
    - status: draft | active | completed | cancelled
    """
    batches = batch_service.list_managed_batches(
        g.current_user,
        batch_type=request.args.get("type"),
        status=request.args.get("status"),
    )
    items = [batch_service.batch_detail(b) for b in batches]
    return jsonify({"items": items, "count": len(items)}), 200


@batches_bp.get("/manage/<int:batch_id>")
@require_auth
@require_any_permission(*MANAGE_BATCH_PERMISSIONS)
def get_managed_batch_route(batch_id: int):
    try:
        batch = batch_service.get_managed_batch(batch_id, g.current_user)
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    if not batch:
        return jsonify({"error": "Batch not found"}), 404
    return jsonify(batch_service.batch_detail(batch)), 200


@batches_bp.post("")
@require_auth
@require_any_permission(*MANAGE_BATCH_PERMISSIONS)
def create_batch_route():
    """
    Create a batch.

    Body:
    {
        "batch_type": "group_buy" | "sub_group",
        "region_id": 3,               # sub_group only
        "status": "draft" | "active", # optional, default draft
        "name": "...",
        "discount_bps": 2000,
        "shipping_fee_cents": 0,
        "products": [{"product_id": 1, "target_vials": 100, "price_per_vial_cents": 80000}]
    }
    """
    payload = dict(request.get_json(silent=True) or {})
    batch_type = payload.pop("batch_type", None)
    region_id = payload.pop("region_id", None)
    status = payload.pop("status", "draft")
    products = payload.pop("products", None)

    if batch_type not in FLAG_FOR_TYPE:
        return jsonify({"error": "batch_type must be group_buy or sub_group"}), 400
    if region_id is not None and (isinstance(region_id, bool) or not isinstance(region_id, int)):
        return jsonify({"error": "region_id must be an integer"}), 400

    try:
        patch = validate_payload(model=Batch, payload=payload, policy=BATCH_POLICY, partial=False)
        enforce_rules_batch(patch)
        batch = batch_service.create_batch(
            actor=g.current_user,
            batch_type=batch_type,
            patch=patch,
            products=products,
            region_id=region_id,
            status=status,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BatchError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to create batch")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(batch_service.batch_detail(batch)), 201


@batches_bp.put("/<int:batch_id>")
@require_auth
@require_any_permission(*MANAGE_BATCH_PERMISSIONS)
def update_batch_route(batch_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Batch, payload=payload, policy=BATCH_POLICY, partial=True)
        enforce_rules_batch(patch)
        batch = batch_service.update_batch(batch_id=batch_id, patch=patch, actor=g.current_user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BatchError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update batch")
        return jsonify({"error": "Internal server error"}), 500

    if not batch:
        return jsonify({"error": "Batch not found"}), 404
    return jsonify(batch_service.batch_detail(batch)), 200


@batches_bp.put("/<int:batch_id>/products")
@require_auth
@require_any_permission(*MANAGE_BATCH_PERMISSIONS)
def set_batch_products_route(batch_id: int):
    """Replace the batch's product memberships. Body: {"products": [...]}."""
    data = request.get_json(silent=True) or {}
    products = data.get("products")
    if not isinstance(products, list):
        return jsonify({"error": "products must be a list"}), 400

    try:
        batch = batch_service.set_batch_products(batch_id=batch_id, products=products, actor=g.current_user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BatchError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to set batch products")
        return jsonify({"error": "Internal server error"}), 500

    if not batch:
        return jsonify({"error": "Batch not found"}), 404
    return jsonify(batch_service.batch_detail(batch)), 200


@batches_bp.post("/<int:batch_id>/status")
@require_auth
@require_any_permission(*MANAGE_BATCH_PERMISSIONS)
def transition_batch_route(batch_id: int):
    """Body: {"status": "active" | "completed" | "cancelled" | "draft"}."""
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status required"}), 400

    try:
        batch = batch_service.transition_batch(batch_id=batch_id, new_status=new_status, actor=g.current_user)
    except BatchError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to change batch status")
        return jsonify({"error": "Internal server error"}), 500

    if not batch:
        return jsonify({"error": "Batch not found"}), 404
    return jsonify(batch_service.batch_detail(batch)), 200


@batches_bp.delete("/<int:batch_id>")
@require_auth
@require_any_permission(*MANAGE_BATCH_PERMISSIONS)
def delete_batch_route(batch_id: int):
    try:
        deleted = batch_service.delete_batch(batch_id=batch_id, actor=g.current_user)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403

    if not deleted:
        return jsonify({"error": "Batch not found"}), 404
    return jsonify({"deleted": True, "batch_id": batch_id}), 200
