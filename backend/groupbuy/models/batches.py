from __future__ import annotations

from ..extensions import db
from groupbuy.time_utils import to_utc_z


BATCH_TYPE_GROUP_BUY = "group_buy"
BATCH_TYPE_SUB_GROUP = "sub_group"
BATCH_TYPES = (BATCH_TYPE_GROUP_BUY, BATCH_TYPE_SUB_GROUP)

BATCH_DRAFT = "draft"
BATCH_ACTIVE = "active"
BATCH_PAYMENT_COLLECTION = "payment_collection"
BATCH_ORDERING = "ordering"
BATCH_PROCESSING = "processing"
BATCH_SHIPPED = "shipped"
BATCH_DELIVERED = "delivered"
BATCH_COMPLETED = "completed"
BATCH_CANCELLED = "cancelled"

BATCH_STATUSES = (
    BATCH_DRAFT,
    BATCH_ACTIVE,
    BATCH_PAYMENT_COLLECTION,
    BATCH_ORDERING,
    BATCH_PROCESSING,
    BATCH_SHIPPED,
    BATCH_DELIVERED,
    BATCH_COMPLETED,
    BATCH_CANCELLED,
)

# Statuses in which buyers may still place orders
ORDERABLE_BATCH_STATUSES = (BATCH_ACTIVE, BATCH_PAYMENT_COLLECTION)


class Batch(db.Model):
    """
    Pooled purchase campaign.

    Admin-run group-buy batches have no region; host-run sub-group batches
    belong to exactly one region.

    PROGRESS: target_vials and current_vials are not stored. They are summed
    from the memberships on read so the batch total can never drift from its
    products.
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.Index("ix_batches_type_status", "batch_type", "status"),
        db.Index("ix_batches_region_status", "region_id", "status"),
        db.CheckConstraint("discount_bps >= 0 AND discount_bps <= 10000", name="ck_batches_discount"),
        db.CheckConstraint(
            "batch_type = 'group_buy' OR region_id IS NOT NULL",
            name="ck_batches_sub_group_region",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    batch_type = db.Column(db.String(20), nullable=False, default=BATCH_TYPE_GROUP_BUY)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default=BATCH_DRAFT)

    # 2000 bps = 20% off catalog vial price
    discount_bps = db.Column(db.Integer, nullable=False, default=2000)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    region_id = db.Column(db.Integer, db.ForeignKey("regions.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", foreign_keys=[owner_user_id])
    region = db.relationship("Region", backref=db.backref("batches", lazy=True))
    memberships = db.relationship(
        "BatchProduct",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchProduct.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def target_vials(self) -> int:
        return sum(m.target_vials for m in self.memberships)

    @property
    def current_vials(self) -> int:
        return sum(m.current_vials for m in self.memberships)

    @property
    def is_orderable(self) -> bool:
        return self.status in ORDERABLE_BATCH_STATUSES

    def __repr__(self) -> str:
        return f"<Batch id={self.id} type={self.batch_type} status={self.status} name={self.name!r}>"

    def to_dict(self, include_products: bool = False) -> dict:
        data = {
            "id": self.id,
            "batch_type": self.batch_type,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "discount_bps": self.discount_bps,
            "discount_percentage": self.discount_bps / 100,
            "shipping_fee_cents": self.shipping_fee_cents,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "owner_user_id": self.owner_user_id,
            "region_id": self.region_id,
            "target_vials": self.target_vials,
            "current_vials": self.current_vials,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_products:
            data["products"] = [m.to_dict() for m in self.memberships]
        return data


class BatchProduct(db.Model):
    """
    A product's participation in a batch.

    RESERVATION: current_vials only moves through single conditional UPDATE
    statements (see checkout_service.reserve_vials), and the check
    constraints below reject anything outside [0, target_vials].
    """
    __tablename__ = "batch_products"
    __table_args__ = (
        db.UniqueConstraint("batch_id", "product_id", name="uq_batch_products_batch_product"),
        db.CheckConstraint("target_vials >= 0", name="ck_batch_products_target"),
        db.CheckConstraint("current_vials >= 0", name="ck_batch_products_current_min"),
        db.CheckConstraint("current_vials <= target_vials", name="ck_batch_products_current_max"),
        db.CheckConstraint("price_per_vial_cents >= 0", name="ck_batch_products_price"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    target_vials = db.Column(db.Integer, nullable=False)
    current_vials = db.Column(db.Integer, nullable=False, default=0)

    # Agreed per-vial price for this batch (may be discounted from catalog)
    price_per_vial_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    batch = db.relationship("Batch", back_populates="memberships")
    product = db.relationship("Product")

    @property
    def remaining_vials(self) -> int:
        return max(0, self.target_vials - self.current_vials)

    def __repr__(self) -> str:
        return (
            f"<BatchProduct batch={self.batch_id} product={self.product_id} "
            f"{self.current_vials}/{self.target_vials}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "target_vials": self.target_vials,
            "current_vials": self.current_vials,
            "remaining_vials": self.remaining_vials,
            "price_per_vial_cents": self.price_per_vial_cents,
        }
