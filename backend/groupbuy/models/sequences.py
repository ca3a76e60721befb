from __future__ import annotations

from ..extensions import db


class OrderCodeSequence(db.Model):
    """
    Next order number per (prefix, day). Rows are incremented with a single
    UPDATE so concurrent checkouts never receive the same code.
    """
    __tablename__ = "order_code_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "date_key", name="uq_order_code_sequences_prefix_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(8), nullable=False)
    date_key = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
