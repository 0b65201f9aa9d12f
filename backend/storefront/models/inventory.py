from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow

MOVEMENT_REASONS = ("sale", "return", "adjustment", "restock", "initial")


class StockMovement(db.Model):
    """
    Append-only inventory ledger. Every stock change writes one row;
    rows are never updated or deleted by the application.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity_change <> 0", name="ck_stock_movements_nonzero"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # No FK: ledger rows outlive product deletion untouched
    product_id = db.Column(db.Integer, nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=True)
    size = db.Column(db.String(32), nullable=True)

    # Signed: negative for outflow
    quantity_change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(16), nullable=False, index=True)

    # Originating document ("sale" / "return"), when any
    reference_type = db.Column(db.String(16), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "size": self.size,
            "quantity_change": self.quantity_change,
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "staff_id": self.staff_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
