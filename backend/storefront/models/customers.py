from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Walk-in customer ledger keyed by phone number.

    Running aggregates are updated by the checkout workflow; contact fields by staff edits.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    # Denormalized aggregates (updated when sales are completed)
    total_spent = db.Column(db.Integer, nullable=False, default=0)
    purchase_count = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    tags = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "total_spent": self.total_spent,
            "purchase_count": self.purchase_count,
            "last_purchase_date": to_utc_z(self.last_purchase_date) if self.last_purchase_date else None,
            "loyalty_points": self.loyalty_points,
            "tags": list(self.tags or []),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
