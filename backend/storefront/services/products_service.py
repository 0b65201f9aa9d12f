# backend/storefront/services/products_service.py
"""
Catalog Service

Products, categories and reviews. Listing evaluates the discount-active rule
in SQL so price filters and price sorting use the same effective price the
checkout will charge.
"""
from __future__ import annotations

import re

from sqlalchemy import and_, case, func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CartItem, Category, Product, ProductImage, ProductSizeStock, Review, User
from . import inventory_service
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry, write_transaction
from storefront.time_utils import utcnow
from storefront.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "category_id", "brand", "gender", "color", "features",
        "price", "purchase_price", "discount", "discount_end_time", "stock",
    },
    required_on_create={"name", "price"},
)
# Nested or derived keys handled outside validate_payload
PRODUCT_EXTRA_FIELDS = {"images", "stock_by_size", "category"}

SORT_OPTIONS = ("newest", "price_asc", "price_desc", "rating", "name")


def _active_discount_clause(now):
    return and_(
        Product.discount > 0,
        or_(Product.discount_end_time.is_(None), Product.discount_end_time > now),
    )


def effective_price_expr(now):
    """SQL twin of pricing.effective_price (half-up rounding on positive prices)."""
    return case(
        (
            _active_discount_clause(now),
            func.round(Product.price * (100 - Product.discount) / 100.0),
        ),
        else_=Product.price,
    )


def list_products_query(
    *,
    categories: list[str] | None = None,
    search: str | None = None,
    min_price: int | None = None,
    max_price: int | None = None,
    discounts_only: bool = False,
    brands: list[str] | None = None,
    sizes: list[str] | None = None,
    genders: list[str] | None = None,
    colors: list[str] | None = None,
    min_rating: float | None = None,
    sort_by: str | None = None,
    now=None,
):
    now = now or utcnow()
    query = db.session.query(Product)
    price = effective_price_expr(now)

    if categories:
        query = query.join(Category, Category.id == Product.category_id).filter(Category.slug.in_(categories))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.brand.ilike(pattern),
        ))
    if min_price is not None:
        query = query.filter(price >= min_price)
    if max_price is not None:
        query = query.filter(price <= max_price)
    if discounts_only:
        query = query.filter(_active_discount_clause(now))
    if brands:
        query = query.filter(Product.brand.in_(brands))
    if sizes:
        query = query.filter(Product.sizes.any(and_(
            ProductSizeStock.size.in_(sizes),
            ProductSizeStock.quantity > 0,
        )))
    if genders:
        query = query.filter(Product.gender.in_(genders))
    if colors:
        query = query.filter(Product.color.in_(colors))
    if min_rating is not None:
        query = query.filter(Product.rating >= min_rating)

    sort_by = sort_by or "newest"
    if sort_by not in SORT_OPTIONS:
        raise ValidationError(f"sort_by must be one of {', '.join(SORT_OPTIONS)}")
    if sort_by == "price_asc":
        query = query.order_by(price.asc(), Product.id.asc())
    elif sort_by == "price_desc":
        query = query.order_by(price.desc(), Product.id.desc())
    elif sort_by == "rating":
        query = query.order_by(Product.rating.desc(), Product.reviews_count.desc(), Product.id.desc())
    elif sort_by == "name":
        query = query.order_by(Product.name.asc(), Product.id.asc())
    else:
        query = query.order_by(Product.created_at.desc(), Product.id.desc())
    return query


def get_product(product_id: int) -> Product:
    return inventory_service.get_product(product_id)


# =============================================================================
# Write side
# =============================================================================

def _parse_images(raw) -> list[ProductImage]:
    if not isinstance(raw, list):
        raise ValidationError("images must be a list")
    images: list[ProductImage] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"images[{index}] must be an object")
        url = str(item.get("url") or "").strip()
        public_id = str(item.get("public_id") or "").strip()
        if not url or not public_id:
            raise ValidationError(f"images[{index}] requires url and public_id")
        images.append(ProductImage(
            url=url,
            public_id=public_id,
            is_primary=bool(item.get("is_primary")),
            position=index,
        ))
    # Exactly one primary; the first one wins, or the first image when none is flagged
    primary_seen = False
    for image in images:
        if image.is_primary and not primary_seen:
            primary_seen = True
        else:
            image.is_primary = False
    if images and not primary_seen:
        images[0].is_primary = True
    return images


def _resolve_category(payload: dict, patch: dict) -> None:
    if "category" in payload and payload["category"] is not None and "category_id" not in patch:
        slug = str(payload["category"]).strip()
        category = db.session.query(Category).filter_by(slug=slug).first()
        if not category:
            raise NotFoundError(f"Category {slug} not found")
        patch["category_id"] = category.id
    elif patch.get("category_id") is not None:
        if not db.session.get(Category, patch["category_id"]):
            raise NotFoundError("Category not found")


def _record_stock_change(
    product: Product,
    before: dict[str | None, int],
    staff_id: int | None,
    note: str,
    reason: str = "adjustment",
) -> None:
    """Append a movement for every bucket (or the scalar) whose quantity changed."""
    after = product.stock_by_size
    if after is None:
        after_map = {None: product.stock}
    else:
        after_map = dict(after)
    for key in set(before) | set(after_map):
        diff = after_map.get(key, 0) - before.get(key, 0)
        if diff:
            inventory_service.log_movement(
                product=product,
                quantity_change=diff,
                reason=reason,
                size=key,
                staff_id=staff_id,
                notes=note,
            )


def _stock_snapshot(product: Product) -> dict[str | None, int]:
    buckets = product.stock_by_size
    return dict(buckets) if buckets is not None else {None: product.stock}


def _set_stock(product: Product, *, stock=None, stock_by_size=None) -> None:
    if stock_by_size is not None:
        if stock_by_size:
            inventory_service.replace_size_buckets(product, stock_by_size)
        else:
            # Empty map turns size tracking off
            product.sizes.clear()
            product.stock = stock if stock is not None else product.stock
        return
    if stock is not None:
        if product.stock_by_size is not None:
            raise ValidationError("Use stock_by_size to change stock of a product tracked per size")
        if stock < 0:
            raise ValidationError("stock must be >= 0")
        product.stock = stock


def create_product(payload: dict, *, staff_id: int | None = None) -> Product:
    patch = validate_payload(
        model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False, ignore=PRODUCT_EXTRA_FIELDS,
    )
    enforce_rules_product(patch)
    _resolve_category(payload, patch)
    images = _parse_images(payload.get("images") or [])
    if not images:
        raise ValidationError("At least one image with url and public_id is required")
    stock_by_size = inventory_service.parse_stock_by_size(payload.get("stock_by_size"))

    def _op() -> Product:
        with write_transaction():
            product = Product(**patch)
            product.features = patch.get("features") or []
            product.stock = patch.get("stock") or 0
            product.images = images
            db.session.add(product)
            if stock_by_size:
                inventory_service.replace_size_buckets(product, stock_by_size)
            db.session.flush()

            _record_stock_change(product, {}, staff_id, "Initial stock", reason="initial")

            log_activity(
                user_id=staff_id,
                action="create_product",
                entity_type="Product",
                entity_id=product.id,
                changes={"after": {"name": product.name, "price": product.price, "stock": product.stock}},
            )
        return product

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict, *, staff_id: int | None = None) -> Product:
    patch = validate_payload(
        model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True, ignore=PRODUCT_EXTRA_FIELDS,
    )
    enforce_rules_product(patch)
    images = _parse_images(payload["images"]) if payload.get("images") is not None else None
    if images is not None and not images:
        raise ValidationError("At least one image is required")
    stock_by_size = inventory_service.parse_stock_by_size(payload.get("stock_by_size"))
    stock = patch.pop("stock", None)

    def _op() -> Product:
        with write_transaction():
            product = inventory_service.get_product(product_id, lock=True)
            _resolve_category(payload, patch)
            before_stock = _stock_snapshot(product)
            before = {k: getattr(product, k) for k in ("name", "price", "purchase_price", "discount", "stock")}

            for key, value in patch.items():
                setattr(product, key, value)
            if images is not None:
                product.images.clear()
                db.session.flush()
                product.images.extend(images)
            _set_stock(product, stock=stock, stock_by_size=stock_by_size)
            db.session.flush()
            _record_stock_change(product, before_stock, staff_id, "Product update")

            log_activity(
                user_id=staff_id,
                action="update_product",
                entity_type="Product",
                entity_id=product.id,
                changes={
                    "before": before,
                    "after": {k: getattr(product, k) for k in before},
                },
            )
        return product

    return run_with_retry(_op)


def delete_product(product_id: int, *, staff_id: int | None = None) -> None:
    with write_transaction():
        product = inventory_service.get_product(product_id, lock=True)
        snapshot = {"name": product.name, "price": product.price, "stock": product.stock}
        db.session.query(CartItem).filter_by(product_id=product.id).delete(synchronize_session=False)
        db.session.delete(product)
        log_activity(
            user_id=staff_id,
            action="delete_product",
            entity_type="Product",
            entity_id=product_id,
            changes={"before": snapshot},
        )


def bulk_update(operation: str | None, updates, *, staff_id: int | None = None) -> list[dict]:
    """
    Apply many stock or price changes in one transaction; any bad entry aborts all.
    """
    if operation not in ("update_stock", "update_prices"):
        raise ValidationError("Valid operation is required (update_stock or update_prices)")
    if not updates or not isinstance(updates, list):
        raise ValidationError("Updates array is required")

    def _op() -> list[dict]:
        results: list[dict] = []
        with write_transaction():
            for index, entry in enumerate(updates):
                if not isinstance(entry, dict) or entry.get("product_id") is None:
                    raise ValidationError(f"updates[{index}].product_id is required")
                product_id = coerce_int(entry["product_id"], f"updates[{index}].product_id")
                product = inventory_service.get_product(product_id, lock=True)

                if operation == "update_stock":
                    before = _stock_snapshot(product)
                    stock = coerce_int(entry["stock"], f"updates[{index}].stock") if entry.get("stock") is not None else None
                    by_size = inventory_service.parse_stock_by_size(entry.get("stock_by_size"))
                    _set_stock(product, stock=stock, stock_by_size=by_size)
                    db.session.flush()
                    _record_stock_change(product, before, staff_id, "Bulk stock update")
                    results.append({"product_id": product.id, "stock": product.stock, "stock_by_size": product.stock_by_size})
                else:
                    patch = {}
                    for field in ("price", "purchase_price"):
                        if entry.get(field) is not None:
                            patch[field] = coerce_int(entry[field], f"updates[{index}].{field}")
                    enforce_rules_product(patch)
                    for key, value in patch.items():
                        setattr(product, key, value)
                    results.append({"product_id": product.id, "price": product.price, "purchase_price": product.purchase_price})

            log_activity(
                user_id=staff_id,
                action=f"bulk_{operation}",
                entity_type="Product",
                changes={"after": {"total": len(results), "products": [r["product_id"] for r in results]}},
            )
        return results

    return run_with_retry(_op)


# =============================================================================
# Categories
# =============================================================================

def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "category"


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(payload: dict, *, staff_id: int | None = None) -> Category:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    slug = slugify(str(payload.get("slug") or name))
    if db.session.query(Category.id).filter_by(slug=slug).first():
        raise ConflictError(f"Category slug {slug} already exists")

    category = Category(name=name, slug=slug, icon=(payload.get("icon") or None))
    db.session.add(category)
    db.session.flush()
    log_activity(user_id=staff_id, action="create_category", entity_type="Category", entity_id=category.id,
                 changes={"after": {"name": name, "slug": slug}})
    db.session.commit()
    return category


# =============================================================================
# Reviews
# =============================================================================

def list_reviews(product_id: int) -> list[Review]:
    inventory_service.get_product(product_id)
    return (
        db.session.query(Review)
        .filter_by(product_id=product_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )


def add_review(product_id: int, *, user: User, rating, comment) -> Review:
    if rating is None:
        raise ValidationError("rating is required")
    rating = coerce_int(rating, "rating")
    if not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5")
    comment = str(comment or "").strip()
    if not comment:
        raise ValidationError("comment is required")

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    if db.session.query(Review.id).filter_by(product_id=product_id, user_id=user.id).first():
        raise ConflictError("You have already reviewed this product")

    review = Review(product_id=product_id, user_id=user.id, rating=rating, comment=comment)
    db.session.add(review)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("You have already reviewed this product")

    avg, count = (
        db.session.query(func.avg(Review.rating), func.count(Review.id))
        .filter(Review.product_id == product_id)
        .one()
    )
    product.rating = round(float(avg or 0), 1)
    product.reviews_count = count
    db.session.commit()
    return review
