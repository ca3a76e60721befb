# Overview: Flask API routes for regional sub-groups and host assignment.

from flask import Blueprint, request, jsonify, current_app, g

from ..models import Region
from ..services import region_service, settings_service, progress_service
from ..services.permission_service import PermissionDeniedError
from ..services.settings_service import FeatureDisabledError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_region,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission, require_any_permission


REGION_POLICY = ModelValidationPolicy(
    writable_fields=set(region_service.REGION_MUTABLE_FIELDS),
    required_on_create={"name", "region", "city"},
)

regions_bp = Blueprint("regions", __name__, url_prefix="/api/regions")


@regions_bp.get("")
def list_public_regions_route():
    """Active regions with their current sub-group batch. 403 when regions are switched off."""
    try:
        settings_service.require_enabled(settings_service.REGIONS_ENABLED)
    except FeatureDisabledError as e:
        return jsonify({"error": str(e), "feature": e.key}), 403

    items = region_service.list_public_regions()
    return jsonify({"items": items, "count": len(items)}), 200


@regions_bp.get("/<int:region_id>")
def get_public_region_route(region_id: int):
    try:
        settings_service.require_enabled(settings_service.REGIONS_ENABLED)
    except FeatureDisabledError as e:
        return jsonify({"error": str(e), "feature": e.key}), 403

    region = region_service.get_region(region_id)
    if not region or not region.is_active:
        return jsonify({"error": "Region not found"}), 404

    data = region.to_dict()
    batch = region_service.current_batch_for_region(region.id)
    data["active_batch"] = progress_service.batch_progress(batch) if batch else None
    return jsonify(data), 200


@regions_bp.get("/manage")
@require_auth
@require_any_permission("MANAGE_REGIONS", "MANAGE_SUB_GROUP_BATCHES")
def list_managed_regions_route():
    regions = region_service.list_regions(g.current_user)
    return jsonify({"items": [r.to_dict() for r in regions], "count": len(regions)}), 200


@regions_bp.post("")
@require_auth
@require_permission("MANAGE_REGIONS")
def create_region_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Region, payload=payload, policy=REGION_POLICY, partial=False)
        enforce_rules_region(patch)
        region = region_service.create_region(patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create region")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(region.to_dict()), 201


@regions_bp.put("/<int:region_id>")
@require_auth
@require_any_permission("MANAGE_REGIONS", "MANAGE_SUB_GROUP_BATCHES")
def update_region_route(region_id: int):
    """Admins edit every field; hosts edit description and contact_handle of their own region."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Region, payload=payload, policy=REGION_POLICY, partial=True)
        enforce_rules_region(patch)
        region = region_service.update_region(region_id=region_id, patch=patch, actor=g.current_user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update region")
        return jsonify({"error": "Internal server error"}), 500

    if not region:
        return jsonify({"error": "Region not found"}), 404
    return jsonify(region.to_dict()), 200


@regions_bp.put("/<int:region_id>/host")
@require_auth
@require_permission("MANAGE_REGIONS")
def assign_host_route(region_id: int):
    """Body: {"host_user_id": 7} or {"host_user_id": null} to unassign."""
    data = request.get_json(silent=True) or {}
    if "host_user_id" not in data:
        return jsonify({"error": "host_user_id required"}), 400
    host_user_id = data["host_user_id"]
    if host_user_id is not None and (isinstance(host_user_id, bool) or not isinstance(host_user_id, int)):
        return jsonify({"error": "host_user_id must be an integer or null"}), 400

    try:
        region = region_service.assign_host(region_id=region_id, host_user_id=host_user_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    if not region:
        return jsonify({"error": "Region not found"}), 404
    return jsonify(region.to_dict()), 200


@regions_bp.delete("/<int:region_id>")
@require_auth
@require_permission("MANAGE_REGIONS")
def delete_region_route(region_id: int):
    try:
        deleted = region_service.delete_region(region_id=region_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    if not deleted:
        return jsonify({"error": "Region not found"}), 404
    return jsonify({"deleted": True, "region_id": region_id}), 200
