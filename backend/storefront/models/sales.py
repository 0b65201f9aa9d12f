from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Completed point-of-sale transaction.

    Sales are written once by the checkout workflow; the only later mutation
    is attaching a user account (user_id).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("change >= 0", name="ck_sales_change_nonnegative"),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "SALE-2025-0001")
    sale_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = db.Column(db.String(128), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # Linked user account (storefront order history)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Totals (whole currency units)
    subtotal = db.Column(db.Integer, nullable=False)
    tax = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False)
    total_cost = db.Column(db.Integer, nullable=False, default=0)
    total_profit = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    cash_received = db.Column(db.Integer, nullable=False)
    change = db.Column(db.Integer, nullable=False)

    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    staff_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    lines = db.relationship(
        "SaleLine",
        order_by="SaleLine.position",
        cascade="all, delete-orphan",
        backref="sale",
        lazy=True,
    )
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "user_id": self.user_id,
            "subtotal": self.subtotal,
            "tax": self.tax,
            "discount_amount": self.discount_amount,
            "total": self.total,
            "total_cost": self.total_cost,
            "total_profit": self.total_profit,
            "payment_method": self.payment_method,
            "cash_received": self.cash_received,
            "change": self.change,
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Price snapshot of one cart item at the moment of sale."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    size = db.Column(db.String(32), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    unit_price = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(db.Integer, nullable=False, default=0)
    discount_percentage = db.Column(db.Integer, nullable=True)
    final_price = db.Column(db.Integer, nullable=False)

    subtotal = db.Column(db.Integer, nullable=False)
    cost = db.Column(db.Integer, nullable=False, default=0)
    profit = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "size": self.size,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "purchase_price": self.purchase_price,
            "discount_percentage": self.discount_percentage,
            "final_price": self.final_price,
            "subtotal": self.subtotal,
            "cost": self.cost,
            "profit": self.profit,
        }
