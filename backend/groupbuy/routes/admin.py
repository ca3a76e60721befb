# Overview: Flask API routes for the admin dashboard, user management and integrity audit.

"""
Admin routes.

SECURITY: every route is permission-gated.
- GET  /api/admin/dashboard         VIEW_ALL_ORDERS
- GET  /api/admin/users             MANAGE_USERS
- POST /api/admin/users             MANAGE_USERS
- PUT  /api/admin/users/<id>/role   MANAGE_USERS
- PUT  /api/admin/users/<id>/active MANAGE_USERS
- GET  /api/admin/integrity         VIEW_INTEGRITY
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models.auth import USER_ROLES
from ..services import auth_service, reporting_service, integrity_service
from ..services.auth_service import AccountError, PasswordValidationError
from ..decorators import require_auth, require_permission


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/dashboard")
@require_auth
@require_permission("VIEW_ALL_ORDERS")
def dashboard_route():
    try:
        return jsonify(reporting_service.admin_dashboard()), 200
    except Exception:
        current_app.logger.exception("Failed to build admin dashboard")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    role = request.args.get("role")
    if role and role not in USER_ROLES:
        return jsonify({"error": f"Unknown role: {role}"}), 400
    users = auth_service.list_users(role=role, search=request.args.get("search"))
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """Create any account type (e.g. onboarding a host)."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            email=data.get("email"),
            password=data.get("password") or "",
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            role=data.get("role") or "customer",
        )
    except (AccountError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("User %s (%s) created by admin %s", user.id, user.role, g.current_user.id)
    return jsonify(user.to_dict()), 201


@admin_bp.put("/users/<int:user_id>/role")
@require_auth
@require_permission("MANAGE_USERS")
def set_role_route(user_id: int):
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    if not role:
        return jsonify({"error": "role required"}), 400

    try:
        user = auth_service.set_role(user_id, role, actor_user_id=g.current_user.id)
    except AccountError as e:
        status = 404 if "not found" in str(e).lower() else 400
        return jsonify({"error": str(e)}), status

    return jsonify(user.to_dict()), 200


@admin_bp.put("/users/<int:user_id>/active")
@require_auth
@require_permission("MANAGE_USERS")
def set_active_route(user_id: int):
    data = request.get_json(silent=True) or {}
    is_active = data.get("is_active")
    if not isinstance(is_active, bool):
        return jsonify({"error": "is_active must be a boolean"}), 400

    try:
        user = auth_service.set_active(user_id, is_active, actor_user_id=g.current_user.id)
    except AccountError as e:
        status = 404 if "not found" in str(e).lower() else 400
        return jsonify({"error": str(e)}), status

    return jsonify(user.to_dict()), 200


@admin_bp.get("/integrity")
@require_auth
@require_permission("VIEW_INTEGRITY")
def integrity_route():
    """Read-only invariant audit. Always 200; check "ok" and "violations"."""
    return jsonify(integrity_service.run_integrity_checks()), 200
