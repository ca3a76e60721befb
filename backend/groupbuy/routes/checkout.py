# Overview: Flask API routes for cart quotes and checkout in every buying mode.

"""
Checkout routes.

Guests may check out; a valid bearer token links the order to the account
and lets repeat batch checkouts consolidate into one pending order.

Request body for every checkout:
{
    "cart": [{"mode": "group_buy", "product_id": 1, "batch_id": 4,
              "batch_product_id": 9, "quantity": 20, ...}],
    "customer_name": "...",
    "contact_handle": "...",
    "customer_email": "...",            # optional
    "shipping_address": "...",          # individual only
    "shipping_city": "...",
    "shipping_province": "...",
    "shipping_zip_code": "...",
    "idempotency_key": "..."            # or Idempotency-Key header
}

Responses:
- 201 new order (or lines merged into a pending order)
- 200 replay of an earlier checkout with the same idempotency key
- 400 invalid cart or customer details
- 403 buying mode switched off
- 409 not enough remaining capacity (details.products lists each shortfall)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import checkout_service
from ..services.checkout_service import CheckoutError, CapacityError
from ..services.settings_service import FeatureDisabledError
from ..models.orders import ORDER_TYPE_GROUP_BUY, ORDER_TYPE_SUB_GROUP
from ..decorators import optional_auth


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


def _idempotency_key(data: dict):
    return checkout_service.parse_idempotency_key(
        data.get("idempotency_key") or request.headers.get("Idempotency-Key")
    )


def _result_response(result):
    status = 200 if result.replayed else 201
    return jsonify(result.to_dict()), status


def _place_batch_order(order_type: str, batch_id: int):
    data = request.get_json(silent=True) or {}

    try:
        cart = checkout_service.parse_cart(data.get("cart"))
        customer = checkout_service.parse_customer(data)
        result = checkout_service.place_batch_order(
            order_type=order_type,
            batch_id=batch_id,
            cart=cart,
            customer=customer,
            user=g.current_user,
            idempotency_key=_idempotency_key(data),
        )
    except FeatureDisabledError as e:
        return jsonify({"error": str(e), "feature": e.key}), 403
    except CapacityError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except CheckoutError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to place %s order", order_type)
        return jsonify({"error": "Internal server error"}), 500

    return _result_response(result)


@checkout_bp.post("/quote")
def quote_route():
    """Clamp a cart against live capacity and prices without reserving anything."""
    data = request.get_json(silent=True) or {}
    try:
        cart = checkout_service.parse_cart(data.get("cart"))
    except CheckoutError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    return jsonify(checkout_service.quote_cart(cart)), 200


@checkout_bp.post("/group-buy/<int:batch_id>")
@optional_auth
def group_buy_checkout_route(batch_id: int):
    return _place_batch_order(ORDER_TYPE_GROUP_BUY, batch_id)


@checkout_bp.post("/sub-group/<int:batch_id>")
@optional_auth
def sub_group_checkout_route(batch_id: int):
    return _place_batch_order(ORDER_TYPE_SUB_GROUP, batch_id)


@checkout_bp.post("/individual")
@optional_auth
def individual_checkout_route():
    data = request.get_json(silent=True) or {}

    try:
        cart = checkout_service.parse_cart(data.get("cart"))
        customer = checkout_service.parse_customer(data, require_address=True)
        result = checkout_service.place_individual_order(
            cart=cart,
            customer=customer,
            user=g.current_user,
            idempotency_key=_idempotency_key(data),
        )
    except FeatureDisabledError as e:
        return jsonify({"error": str(e), "feature": e.key}), 403
    except CheckoutError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to place individual order")
        return jsonify({"error": "Internal server error"}), 500

    return _result_response(result)
