# Overview: Flask API routes for order tracking, dashboards and status changes.

from flask import Blueprint, request, jsonify, current_app, g

from ..models.auth import ROLE_ADMIN
from ..services import order_service, permission_service
from ..services.order_service import OrderError
from ..services.checkout_service import CheckoutError
from ..services.permission_service import PermissionDeniedError
from ..decorators import require_auth, require_permission, require_any_permission


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _list_args() -> dict:
    return {
        "status": request.args.get("status"),
        "payment_status": request.args.get("payment_status"),
        "order_type": request.args.get("type"),
        "batch_id": request.args.get("batch_id", type=int),
        "search": request.args.get("search"),
        "sort": request.args.get("sort", "created_at"),
        "direction": request.args.get("direction", "desc"),
        "page": request.args.get("page", type=int),
        "per_page": request.args.get("per_page", type=int),
    }


@orders_bp.get("/track/<string:order_code>")
def track_order_route(order_code: str):
    """Public lookup by order code (e.g. GB-20250101-001)."""
    data = order_service.track_order(order_code)
    if data is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(data), 200


@orders_bp.get("/mine")
@require_auth
@require_permission("VIEW_OWN_ORDERS")
def my_orders_route():
    try:
        result = order_service.list_orders(g.current_user, scope="mine", **_list_args())
    except OrderError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200


@orders_bp.get("")
@require_auth
@require_any_permission("VIEW_ALL_ORDERS", "VIEW_HOSTED_ORDERS")
def list_orders_route():
    """
    Order dashboard listing.

    Query params:
    - scope: all (admin only) | hosted; defaults to all for admins, hosted otherwise
    - status, payment_status, type, batch_id, search
    - sort: created_at | total | status | customer | order_code
    - direction: asc | desc
    - page, per_page
    """
    user = g.current_user
    scope = request.args.get("scope") or ("all" if user.role == ROLE_ADMIN else "hosted")
    if scope == "all" and not permission_service.user_has_permission(user.id, "VIEW_ALL_ORDERS"):
        return jsonify({"error": "Permission denied", "required_permission": "VIEW_ALL_ORDERS"}), 403

    try:
        result = order_service.list_orders(user, scope=scope, **_list_args())
    except OrderError as e:
        return jsonify({"error": str(e)}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    return jsonify(result), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    """Owners, admins and the batch's host can read an order."""
    try:
        order = order_service.get_order_for_actor(order_id, g.current_user)
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order.to_dict()), 200


@orders_bp.post("/<int:order_id>/status")
@require_auth
@require_permission("UPDATE_ORDER_STATUS")
def update_order_status_route(order_id: int):
    """Body: {"status": "confirmed" | "processing" | "shipped" | "delivered" | "cancelled"}."""
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status required"}), 400

    try:
        order = order_service.update_order_status(order_id=order_id, new_status=new_status, actor=g.current_user)
    except (OrderError, CheckoutError) as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500

    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order.to_dict()), 200


@orders_bp.post("/<int:order_id>/payment")
@require_auth
@require_permission("UPDATE_ORDER_STATUS")
def update_payment_status_route(order_id: int):
    """Body: {"payment_status": "paid" | "refunded"}."""
    data = request.get_json(silent=True) or {}
    new_status = data.get("payment_status")
    if not new_status:
        return jsonify({"error": "payment_status required"}), 400

    try:
        order = order_service.update_payment_status(order_id=order_id, new_status=new_status, actor=g.current_user)
    except OrderError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500

    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order.to_dict()), 200


@orders_bp.post("/bulk")
@require_auth
@require_permission("UPDATE_ORDER_STATUS")
def bulk_update_route():
    """Body: {"order_ids": [1, 2], "status": "...", "payment_status": "..."}."""
    data = request.get_json(silent=True) or {}

    try:
        result = order_service.bulk_update(
            order_ids=data.get("order_ids"),
            actor=g.current_user,
            status=data.get("status"),
            payment_status=data.get("payment_status"),
        )
    except OrderError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to bulk update orders")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result), 200
