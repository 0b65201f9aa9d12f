from __future__ import annotations

from ..extensions import db
from storefront.pricing import effective_price, is_discount_active
from storefront.time_utils import to_utc_z, utcnow


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(128), nullable=False, unique=True, index=True)
    icon = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "icon": self.icon,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog product with inventory counters.

    `stock` is the authoritative sellable quantity. When the product carries
    size buckets (ProductSizeStock rows) `stock` is a materialized sum of the
    buckets, recomputed by every inventory mutator.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_nonnegative"),
        db.CheckConstraint("discount IS NULL OR (discount >= 0 AND discount <= 100)", name="ck_products_discount_range"),
        db.Index("ix_products_category_created", "category_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    brand = db.Column(db.String(128), nullable=True, index=True)
    gender = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    features = db.Column(db.JSON, nullable=False, default=list)

    # Money, in whole currency units
    price = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(db.Integer, nullable=False, default=0)

    # Discount percentage, active while discount > 0 and end time is absent or in the future
    discount = db.Column(db.Integer, nullable=True)
    discount_end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)

    rating = db.Column(db.Float, nullable=False, default=0)
    reviews_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    images = db.relationship(
        "ProductImage",
        order_by="ProductImage.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    sizes = db.relationship(
        "ProductSizeStock",
        order_by="ProductSizeStock.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def stock_by_size(self) -> dict[str, int] | None:
        if not self.sizes:
            return None
        return {bucket.size: bucket.quantity for bucket in self.sizes}

    def has_active_discount(self, now=None) -> bool:
        return is_discount_active(self.discount, self.discount_end_time, now)

    def final_price(self, now=None) -> int:
        return effective_price(self.price, self.discount, self.discount_end_time, now)

    def to_dict(self, now=None) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category": self.category.to_dict() if self.category else None,
            "brand": self.brand,
            "gender": self.gender,
            "color": self.color,
            "features": list(self.features or []),
            "price": self.price,
            "purchase_price": self.purchase_price,
            "discount": self.discount,
            "discount_end_time": to_utc_z(self.discount_end_time) if self.discount_end_time else None,
            "has_active_discount": self.has_active_discount(now),
            "final_price": self.final_price(now),
            "stock": self.stock,
            "stock_by_size": self.stock_by_size,
            "images": [image.to_dict() for image in self.images],
            "rating": self.rating,
            "reviews_count": self.reviews_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductImage(db.Model):
    __tablename__ = "product_images"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    url = db.Column(db.String(1024), nullable=False)
    public_id = db.Column(db.String(255), nullable=False)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "public_id": self.public_id,
            "is_primary": self.is_primary,
            "position": self.position,
        }


class ProductSizeStock(db.Model):
    """One stock bucket per (product, size label)."""
    __tablename__ = "product_size_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "size", name="uq_product_size_stock"),
        db.CheckConstraint("quantity >= 0", name="ck_product_size_stock_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    size = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)


class Review(db.Model):
    __tablename__ = "reviews"
    __table_args__ = (
        db.UniqueConstraint("product_id", "user_id", name="uq_reviews_product_user"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User")
    product = db.relationship("Product", backref=db.backref("reviews", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }
