from __future__ import annotations

from ..extensions import db
from groupbuy.time_utils import to_utc_z


class Region(db.Model):
    """
    Regional sub-group: a locale with an assigned host who runs sub-group
    batches and receives buyer hand-offs on contact_handle (WhatsApp).
    """
    __tablename__ = "regions"
    __table_args__ = (
        db.Index("ix_regions_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    region = db.Column(db.String(100), nullable=False)
    city = db.Column(db.String(100), nullable=False)

    host_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    contact_handle = db.Column(db.String(50), nullable=True)
    join_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    host = db.relationship("User", foreign_keys=[host_user_id])

    def __repr__(self) -> str:
        return f"<Region id={self.id} name={self.name!r} city={self.city!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "region": self.region,
            "city": self.city,
            "host_user_id": self.host_user_id,
            "host": self.host.to_public_dict() if self.host else None,
            "contact_handle": self.contact_handle,
            "join_fee_cents": self.join_fee_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
