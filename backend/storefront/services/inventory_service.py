# Overview: Service-layer operations for inventory; stock counters, size buckets and the movement ledger.

"""
Inventory Service

Stock lives in two places: Product.stock (scalar) and, for sized products,
ProductSizeStock buckets. For sized products the scalar is always the sum of
the buckets; every mutator here recomputes it in the same transaction.

Decrements are conditional UPDATEs (WHERE quantity + delta >= 0). A zero
rowcount means the stock was not there and nothing was written; callers turn
that into a business error and roll back.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, select, update

from ..extensions import db
from ..models import Product, ProductSizeStock, Setting, StockMovement
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry, write_transaction
from storefront.time_utils import utcnow
from storefront.validation import NotFoundError, ValidationError, coerce_int


class StockError(Exception):
    """Raised when a stock change would violate inventory rules."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def available_quantity(product: Product, size: str | None = None) -> int:
    """Sellable quantity for a product, or for one of its size buckets."""
    buckets = product.stock_by_size
    if size and buckets is not None:
        return buckets.get(size, 0)
    return product.stock


def current_quantity(product_id: int, size: str | None = None) -> int:
    """Quantity as currently stored, bypassing any loaded instance state."""
    if size is not None:
        query = db.session.query(ProductSizeStock.quantity).filter_by(product_id=product_id, size=size)
    else:
        query = db.session.query(Product.stock).filter_by(id=product_id)
    return query.scalar() or 0


def sync_scalar_stock(product_id: int) -> None:
    """Recompute Product.stock as the sum of its size buckets."""
    total = (
        select(func.coalesce(func.sum(ProductSizeStock.quantity), 0))
        .where(ProductSizeStock.product_id == product_id)
        .scalar_subquery()
    )
    db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=total, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


def apply_stock_delta(product_id: int, delta: int, size: str | None = None) -> bool:
    """
    Conditionally add `delta` to a size bucket (when `size` is given) or to the
    scalar stock. Returns False, writing nothing, when the result would be
    negative or the bucket does not exist.
    """
    if size is not None:
        result = db.session.execute(
            update(ProductSizeStock)
            .where(
                ProductSizeStock.product_id == product_id,
                ProductSizeStock.size == size,
                ProductSizeStock.quantity + delta >= 0,
            )
            .values(quantity=ProductSizeStock.quantity + delta)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            return False
        sync_scalar_stock(product_id)
        return True

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock + delta >= 0)
        .values(stock=Product.stock + delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def ensure_size_bucket(product_id: int, size: str) -> None:
    exists = db.session.query(ProductSizeStock.id).filter_by(product_id=product_id, size=size).first()
    if not exists:
        db.session.add(ProductSizeStock(product_id=product_id, size=size, quantity=0))
        db.session.flush()


def replace_size_buckets(product: Product, stock_by_size: dict[str, int]) -> None:
    """Overwrite a product's size map and recompute its scalar stock."""
    current = {bucket.size: bucket for bucket in product.sizes}
    for size, bucket in current.items():
        if size not in stock_by_size:
            product.sizes.remove(bucket)
    for size, quantity in stock_by_size.items():
        if size in current:
            current[size].quantity = quantity
        else:
            product.sizes.append(ProductSizeStock(size=size, quantity=quantity))
    product.stock = sum(stock_by_size.values())


def parse_stock_by_size(raw) -> dict[str, int] | None:
    """Validate a {size: quantity} mapping from a client payload."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("stock_by_size must be an object mapping size to quantity")
    parsed: dict[str, int] = {}
    for size, quantity in raw.items():
        label = str(size).strip()
        if not label or len(label) > 32:
            raise ValidationError("stock_by_size keys must be non-empty size labels")
        value = coerce_int(quantity, f"stock_by_size.{label}")
        if value < 0:
            raise ValidationError(f"stock_by_size.{label} must be >= 0")
        parsed[label] = value
    return parsed


def log_movement(
    *,
    product: Product,
    quantity_change: int,
    reason: str,
    size: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    staff_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        product_name=product.name,
        size=size,
        quantity_change=quantity_change,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        staff_id=staff_id,
        notes=notes[:500] if notes else None,
    )
    db.session.add(movement)
    return movement


def adjust_stock(
    product_id: int,
    *,
    quantity_change,
    reason: str | None,
    size: str | None = None,
    notes: str | None = None,
    staff_id: int | None = None,
) -> tuple[Product, StockMovement]:
    """
    Manual inventory correction (stocktake, damage, found goods).

    Sized products must be adjusted per size; the size must already exist.
    """
    if quantity_change is None:
        raise ValidationError("quantity_change is required")
    delta = coerce_int(quantity_change, "quantity_change")
    if delta == 0:
        raise StockError("Quantity change must not be zero")
    if not reason or not str(reason).strip():
        raise ValidationError("Reason is required")
    reason = str(reason).strip()
    size = str(size).strip() if size else None

    def _op():
        with write_transaction():
            product = get_product(product_id, lock=True)
            buckets = product.stock_by_size
            before = {"stock": product.stock, "stock_by_size": buckets}

            if size:
                if buckets is None or size not in buckets:
                    raise StockError(f"Size {size} not found for this product")
                current = buckets[size]
            else:
                if buckets is not None:
                    raise StockError(
                        "Size is required for products with per-size stock",
                        details={"sizes": sorted(buckets)},
                    )
                current = product.stock

            if current + delta < 0:
                label = f" for size {size}" if size else ""
                raise StockError(
                    f"Insufficient stock. Current stock{label}: {current}, Adjustment: {delta}",
                    details={"current": current, "quantity_change": delta, "size": size},
                )

            if not apply_stock_delta(product.id, delta, size):
                raise StockError("Stock changed during adjustment; retry")
            # Counters were written with UPDATE statements; reload them
            db.session.expire_all()

            movement = log_movement(
                product=product,
                quantity_change=delta,
                reason="adjustment",
                size=size,
                staff_id=staff_id,
                notes=notes or reason,
            )
            log_activity(
                user_id=staff_id,
                action="adjust_stock",
                entity_type="Product",
                entity_id=product.id,
                changes={
                    "before": before,
                    "after": {"stock": product.stock, "stock_by_size": product.stock_by_size},
                    "reason": reason,
                },
            )
        return product, movement

    return run_with_retry(_op)


def low_stock_threshold() -> int:
    """Setting `low_stock_threshold` wins over LOW_STOCK_THRESHOLD config."""
    setting = db.session.get(Setting, "low_stock_threshold")
    if setting is not None and setting.value is not None:
        try:
            return coerce_int(setting.value, "low_stock_threshold")
        except ValidationError:
            current_app.logger.warning("Ignoring invalid low_stock_threshold setting: %r", setting.value)
    return current_app.config["LOW_STOCK_THRESHOLD"]


def low_stock_products(threshold: int | None = None) -> list[dict]:
    """
    Products at or below the threshold. Sized products are reported per
    bucket; scalar products by their stock.
    """
    if threshold is None:
        threshold = low_stock_threshold()

    rows: list[dict] = []
    products = db.session.query(Product).order_by(Product.stock.asc(), Product.id.asc()).all()
    for product in products:
        buckets = product.stock_by_size
        if buckets is not None:
            low = {size: qty for size, qty in buckets.items() if qty <= threshold}
            if low:
                rows.append({
                    "id": product.id,
                    "name": product.name,
                    "stock": product.stock,
                    "low_sizes": low,
                    "threshold": threshold,
                })
        elif product.stock <= threshold:
            rows.append({
                "id": product.id,
                "name": product.name,
                "stock": product.stock,
                "low_sizes": None,
                "threshold": threshold,
            })
    return rows


def list_movements_query(*, product_id=None, reason=None, start=None, end=None):
    query = db.session.query(StockMovement)
    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if reason:
        query = query.filter(StockMovement.reason == reason)
    if start:
        query = query.filter(StockMovement.created_at >= start)
    if end:
        query = query.filter(StockMovement.created_at <= end)
    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
