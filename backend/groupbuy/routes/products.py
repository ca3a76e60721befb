# Overview: Flask API routes for the peptide catalog; parses input and returns JSON responses.

# backend/groupbuy/routes/products.py
"""
Catalog routes.

Browsing (active products, categories) is public. Managing the catalog
requires MANAGE_PRODUCTS.
"""
from flask import Blueprint, request, g, current_app

from ..services import catalog_service
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category",
        "description",
        "price_per_vial_cents",
        "price_per_box_cents",
        "vials_per_box",
        "is_active",
        "image_url",
        "specifications",
    },
    required_on_create={"name", "category", "price_per_vial_cents", "price_per_box_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Active catalog.

    Query params:
    - category: exact category name
    - search: substring of name or description
    """
    return catalog_service.list_products(
        category=request.args.get("category"),
        search=request.args.get("search"),
    )


@products_bp.get("/categories")
def list_categories():
    categories = catalog_service.list_categories()
    return {"items": categories, "count": len(categories)}


@products_bp.get("/all")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def list_all_products():
    """Every product including inactive ones (admin catalog screen)."""
    return catalog_service.list_products(
        include_inactive=True,
        category=request.args.get("category"),
        search=request.args.get("search"),
    )


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    p = catalog_service.get_product(product_id)
    if not p:
        return {"error": "Product not found"}, 404
    return p.to_dict()


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = catalog_service.create_product(patch=patch, created_by_user_id=g.current_user.id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = catalog_service.update_product(product_id=product_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    if not updated:
        return {"error": "Product not found"}, 404
    return updated


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    """
    Hard delete. Products used by a batch or an order return 409;
    set is_active=false instead.
    """
    try:
        deleted = catalog_service.delete_product(product_id=product_id)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not deleted:
        return {"error": "Product not found"}, 404
    return {"deleted": True, "product_id": product_id}
