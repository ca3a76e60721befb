# Overview: Service-layer operations for the product catalog.

"""
Product catalog.

Prices are integer centavos. Products referenced by batches or orders can be
deactivated but not deleted; order items keep their frozen prices either way.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, BatchProduct, OrderItem
from ..validation import ConflictError, ValidationError
from .image_service import validate_image_reference, ImageValidationError

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "description",
    "price_per_vial_cents",
    "price_per_box_cents",
    "vials_per_box",
    "is_active",
    "image_url",
    "specifications",
}


# (name, description, category, price_per_vial_cents, price_per_box_cents, specifications)
SEED_PRODUCTS = [
    ("Bacteriostatic Water (Benzyl Alcohol 0.9%)", "3 ml/vial, 10 vials/kits", "Bacteriostatic Water", 17250, 172500,
     {"concentration": "0.9%", "volume_per_vial": "3ml", "vials_per_kit": 10}),
    ("Bacteriostatic Water (Benzyl Alcohol 0.9%)", "10 ml/vial, 10 vials/kits", "Bacteriostatic Water", 20125, 201250,
     {"concentration": "0.9%", "volume_per_vial": "10ml", "vials_per_kit": 10}),

    ("Semaglutide", "2 mg/vial, 10 vials/kit", "Semaglutide", 46575, 465750, {"concentration": "2mg", "vials_per_kit": 10}),
    ("Semaglutide", "5 mg/vial, 10 vials/kit", "Semaglutide", 47725, 477250, {"concentration": "5mg", "vials_per_kit": 10}),
    ("Semaglutide", "10 mg/vial, 10 vials/kit", "Semaglutide", 52325, 523250, {"concentration": "10mg", "vials_per_kit": 10}),
    ("Semaglutide", "15 mg/vial, 10 vials/kit", "Semaglutide", 60375, 603750, {"concentration": "15mg", "vials_per_kit": 10}),
    ("Semaglutide", "20 mg/vial, 10 vials/kit", "Semaglutide", 70725, 707250, {"concentration": "20mg", "vials_per_kit": 10}),

    ("Tirzepatide", "5 mg/vial, 10 vials/kits", "Tirzepatide", 48875, 488750, {"concentration": "5mg", "vials_per_kit": 10}),
    ("Tirzepatide", "10 mg/vial, 10 vials/kits", "Tirzepatide", 57500, 575000, {"concentration": "10mg", "vials_per_kit": 10}),
    ("Tirzepatide", "15 mg/vial, 10 vials/kits", "Tirzepatide", 73025, 730250, {"concentration": "15mg", "vials_per_kit": 10}),
    ("Tirzepatide", "20 mg/vial, 10 vials/kits", "Tirzepatide", 80500, 805000, {"concentration": "20mg", "vials_per_kit": 10}),
    ("Tirzepatide", "30 mg/vial, 10 vials/kits", "Tirzepatide", 93725, 937250, {"concentration": "30mg", "vials_per_kit": 10}),
    ("Tirzepatide", "40 mg/vial, 10 vials/kits", "Tirzepatide", 103500, 1035000, {"concentration": "40mg", "vials_per_kit": 10}),

    ("Retatrutide", "5 mg/vial, 10 vials/kits", "Retatrutide", 57500, 575000, {"concentration": "5mg", "vials_per_kit": 10}),
    ("Retatrutide", "10 mg/vial, 10 vials/kits", "Retatrutide", 86250, 862500, {"concentration": "10mg", "vials_per_kit": 10}),
    ("Retatrutide", "15 mg/vial, 10 vials/kits", "Retatrutide", 103500, 1035000, {"concentration": "15mg", "vials_per_kit": 10}),
    ("Retatrutide", "20 mg/vial, 10 vials/kits", "Retatrutide", 115000, 1150000, {"concentration": "20mg", "vials_per_kit": 10}),

    ("MOTS-c", "10 mg/vial, 10 vials/kits", "MOTS-c", 138000, 1380000, {"concentration": "10mg", "vials_per_kit": 10}),
    ("Ipamorelin", "5 mg/vial, 10 vials/kits", "Ipamorelin", 34500, 345000, {"concentration": "5mg", "vials_per_kit": 10}),

    ("BCP-157", "5 mg/vial, 10 vials/kits", "BCP-157", 34500, 345000, {"concentration": "5mg", "vials_per_kit": 10}),
    ("BCP-157", "10 mg/vial, 10 vials/kits", "BCP-157", 50025, 500250, {"concentration": "10mg", "vials_per_kit": 10}),

    ("TB-500", "5 mg/vial, 10 vials/kits", "TB-500", 53475, 534750, {"concentration": "5mg", "vials_per_kit": 10}),
    ("TB-500", "10 mg/vial, 10 vials/kits", "TB-500", 86250, 862500, {"concentration": "10mg", "vials_per_kit": 10}),

    ("HCG", "5000 iu, 10 vials/kits", "HCG", 63250, 632500, {"concentration": "5000iu", "vials_per_kit": 10}),
    ("HCG", "10000 iu, 10 vials/kits", "HCG", 86250, 862500, {"concentration": "10000iu", "vials_per_kit": 10}),

    ("NAD+", "100 mg/vial, 10 vials/kits", "NAD+", 37375, 373750, {"concentration": "100mg", "vials_per_kit": 10}),
    ("NAD+", "500 mg/vial, 10 vials/kits", "NAD+", 60375, 603750, {"concentration": "500mg", "vials_per_kit": 10}),

    ("HGH 191AA (Somatropin)", "10 iu, 10 vials", "HGH", 46000, 460000, {"concentration": "10iu", "vials_per_kit": 10}),
    ("HGH 191AA (Somatropin)", "15 iu, 10 vials", "HGH", 57500, 575000, {"concentration": "15iu", "vials_per_kit": 10}),
]


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_image(patch: dict) -> None:
    if "image_url" in patch:
        try:
            patch["image_url"] = validate_image_reference(patch["image_url"])
        except ImageValidationError as e:
            raise ValidationError(str(e))


def list_products(
    *,
    include_inactive: bool = False,
    category: str | None = None,
    search: str | None = None,
) -> dict:
    """Catalog listing ordered by category then name. Public callers only see active products."""
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(like), Product.description.ilike(like)))

    products = query.order_by(Product.category.asc(), Product.name.asc(), Product.id.asc()).all()
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.is_active.is_(True))
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [r[0] for r in rows]


def get_product(product_id: int, *, include_inactive: bool = False) -> Product | None:
    p = db.session.get(Product, product_id)
    if p is None or (not include_inactive and not p.is_active):
        return None
    return p


def create_product(*, patch: dict, created_by_user_id: int | None = None) -> dict:
    _check_image(patch)

    p = Product(created_by_user_id=created_by_user_id)
    apply_product_patch(p, patch)
    if p.vials_per_box is None:
        p.vials_per_box = 10
    if p.is_active is None:
        p.is_active = True

    db.session.add(p)
    db.session.commit()
    current_app.logger.info("Product %s created: %s", p.id, p.name)
    return p.to_dict()


def update_product(*, product_id: int, patch: dict) -> dict | None:
    p = db.session.get(Product, product_id)
    if not p:
        return None

    _check_image(patch)
    apply_product_patch(p, patch)
    db.session.commit()
    return p.to_dict()


def delete_product(*, product_id: int) -> bool:
    """
    Hard-delete an unreferenced product.

    Returns False if not found. Raises ConflictError when a batch or order
    still references the product (deactivate it instead).
    """
    p = db.session.get(Product, product_id)
    if not p:
        return False

    in_batches = db.session.query(BatchProduct.id).filter(BatchProduct.product_id == p.id).first()
    in_orders = db.session.query(OrderItem.id).filter(OrderItem.product_id == p.id).first()
    if in_batches or in_orders:
        raise ConflictError("Product is referenced by batches or orders; deactivate it instead.")

    db.session.delete(p)
    db.session.commit()
    current_app.logger.info("Product %s deleted", product_id)
    return True


def seed_catalog(*, created_by_user_id: int | None = None) -> dict:
    """
    Insert the built-in peptide list. Rows already present (same name and
    description) are left untouched, so seeding twice is a no-op.
    """
    created = 0
    skipped = 0
    for name, description, category, vial_cents, box_cents, specs in SEED_PRODUCTS:
        existing = (
            db.session.query(Product.id)
            .filter(Product.name == name, Product.description == description)
            .first()
        )
        if existing:
            skipped += 1
            continue
        db.session.add(Product(
            name=name,
            description=description,
            category=category,
            price_per_vial_cents=vial_cents,
            price_per_box_cents=box_cents,
            vials_per_box=10,
            is_active=True,
            specifications=dict(specs),
            created_by_user_id=created_by_user_id,
        ))
        created += 1

    db.session.commit()
    total = db.session.query(Product).count()
    current_app.logger.info("Catalog seed: %s created, %s skipped, %s total", created, skipped, total)
    return {"created": created, "skipped": skipped, "total": total}
