# Overview: Flask API routes for site feature flags.

from flask import Blueprint, request, jsonify, g

from ..services import settings_service
from ..services.settings_service import SettingsError
from ..decorators import require_auth, require_permission


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    """Public: the storefront reads these to decide which buying modes to show."""
    return jsonify(settings_service.get_flags()), 200


@settings_bp.put("")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_settings_route():
    """Body: any subset of {"regions_enabled", "group_buy_enabled", "individual_purchase_enabled"}."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify({"error": "Provide at least one setting"}), 400

    try:
        flags = settings_service.update_flags(data, updated_by_user_id=g.current_user.id)
    except SettingsError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(flags), 200
