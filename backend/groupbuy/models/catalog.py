from __future__ import annotations

from ..extensions import db
from groupbuy.time_utils import to_utc_z


class Product(db.Model):
    """
    Sellable catalog item.

    PRICING: price_per_vial_cents is the group-buy reference price and
    price_per_box_cents the individual purchase price. Both are stored in
    centavos; the frontend only formats them.

    Order items copy the unit price at checkout, so editing a product never
    changes historical order totals.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        db.Index("ix_products_active", "is_active"),
        db.CheckConstraint("price_per_vial_cents >= 0", name="ck_products_vial_price"),
        db.CheckConstraint("price_per_box_cents >= 0", name="ck_products_box_price"),
        db.CheckConstraint("vials_per_box > 0", name="ck_products_vials_per_box"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price_per_vial_cents = db.Column(db.Integer, nullable=False)
    price_per_box_cents = db.Column(db.Integer, nullable=False)
    vials_per_box = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # http(s) URL or inline data:image/...;base64 URI
    image_url = db.Column(db.Text, nullable=True)
    specifications = db.Column(db.JSON, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} category={self.category!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price_per_vial_cents": self.price_per_vial_cents,
            "price_per_box_cents": self.price_per_box_cents,
            "vials_per_box": self.vials_per_box,
            "is_active": self.is_active,
            "image_url": self.image_url,
            "specifications": self.specifications or {},
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
