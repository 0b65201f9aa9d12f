from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow

RETURN_STATUSES = ("pending", "approved", "rejected")
EXPENSE_CATEGORIES = (
    "rent",
    "utilities",
    "salaries",
    "supplies",
    "marketing",
    "maintenance",
    "insurance",
    "taxes",
    "other",
)


class DocumentSequence(db.Model):
    """
    Per-year counter backing human-readable numbers (SALE-2025-0001, RET-..., EXP-...).

    next_number is the number the next allocation will hand out.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "year", name="uq_document_sequences_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)


class Return(db.Model):
    """
    Customer return against a prior sale.

    Status moves pending -> approved | rejected. Stock is restored once, on
    approval; stock_restored_at records that it happened.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_returns_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(32), nullable=False, unique=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    total_refund = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    reason = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stock_restored_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    lines = db.relationship(
        "ReturnLine",
        order_by="ReturnLine.id",
        cascade="all, delete-orphan",
        backref="return_doc",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "sale_id": self.sale_id,
            "sale_number": self.sale.sale_number if self.sale else None,
            "total_refund": self.total_refund,
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "staff_id": self.staff_id,
            "processed_by_user_id": self.processed_by_user_id,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "stock_restored_at": to_utc_z(self.stock_restored_at) if self.stock_restored_at else None,
            "items": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ReturnLine(db.Model):
    __tablename__ = "return_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    size = db.Column(db.String(32), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    final_price = db.Column(db.Integer, nullable=False)
    refund_amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_line_id": self.sale_line_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "size": self.size,
            "quantity": self.quantity,
            "final_price": self.final_price,
            "refund_amount": self.refund_amount,
            "reason": self.reason,
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_category_date", "category", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    expense_number = db.Column(db.String(32), nullable=False, unique=True)
    category = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    receipt_url = db.Column(db.String(1024), nullable=True)

    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_number": self.expense_number,
            "category": self.category,
            "amount": self.amount,
            "description": self.description,
            "date": to_utc_z(self.date),
            "receipt_url": self.receipt_url,
            "staff_id": self.staff_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
