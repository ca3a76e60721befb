from __future__ import annotations

from ..extensions import db
from groupbuy.time_utils import to_utc_z


ORDER_TYPE_INDIVIDUAL = "individual"
ORDER_TYPE_GROUP_BUY = "group_buy"
ORDER_TYPE_SUB_GROUP = "sub_group"
ORDER_TYPES = (ORDER_TYPE_INDIVIDUAL, ORDER_TYPE_GROUP_BUY, ORDER_TYPE_SUB_GROUP)

ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_PROCESSING = "processing"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"
ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_CONFIRMED,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_REFUNDED)

UNIT_VIAL = "vial"
UNIT_BOX = "box"


class Order(db.Model):
    """
    Customer order.

    Batch orders (group_buy / sub_group) reference exactly one batch and hold
    vial-priced items; individual orders have no batch, hold box-priced items
    and carry a shipping address and shipping charge.

    TOTALS: subtotal_cents is always the sum of item line totals and
    total_cents = subtotal_cents + shipping_cents. Both are written by the
    checkout service in the same transaction as the items.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_batch_status", "batch_id", "status"),
        db.Index("ix_orders_user_batch", "user_id", "batch_id"),
        db.Index("ix_orders_created", "created_at"),
        db.CheckConstraint(
            "order_type = 'individual' OR batch_id IS NOT NULL",
            name="ck_orders_batch_required",
        ),
        db.CheckConstraint("total_cents = subtotal_cents + shipping_cents", name="ck_orders_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    order_code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    order_type = db.Column(db.String(20), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)
    contact_handle = db.Column(db.String(50), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)

    shipping_address = db.Column(db.String(500), nullable=True)
    shipping_city = db.Column(db.String(100), nullable=True)
    shipping_province = db.Column(db.String(100), nullable=True)
    shipping_zip_code = db.Column(db.String(20), nullable=True)

    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default=ORDER_PENDING)
    payment_status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    batch = db.relationship("Batch", backref=db.backref("orders", lazy=True))
    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    checkout_keys = db.relationship(
        "OrderCheckoutKey",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderCheckoutKey.id",
    )

    @property
    def vial_count(self) -> int:
        return sum(item.quantity for item in self.items if item.unit == UNIT_VIAL)

    def __repr__(self) -> str:
        return f"<Order id={self.id} code={self.order_code!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_code": self.order_code,
            "order_type": self.order_type,
            "customer_name": self.customer_name,
            "contact_handle": self.contact_handle,
            "customer_email": self.customer_email,
            "shipping_address": self.shipping_address,
            "shipping_city": self.shipping_city,
            "shipping_province": self.shipping_province,
            "shipping_zip_code": self.shipping_zip_code,
            "batch_id": self.batch_id,
            "batch_name": self.batch.name if self.batch else None,
            "user_id": self.user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        db.CheckConstraint(
            "line_total_cents = quantity * unit_price_cents",
            name="ck_order_items_line_total",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_product_id = db.Column(db.Integer, db.ForeignKey("batch_products.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit = db.Column(db.String(10), nullable=False, default=UNIT_VIAL)

    # Frozen at order time
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")
    batch_product = db.relationship("BatchProduct")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "batch_product_id": self.batch_product_id,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class OrderCheckoutKey(db.Model):
    """
    Client-supplied idempotency key accepted by an order.

    An order keeps every key it was created or extended with, so a late
    retry of any earlier checkout replays instead of reserving again.
    """
    __tablename__ = "order_checkout_keys"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    idempotency_key = db.Column(db.String(128), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="checkout_keys")
