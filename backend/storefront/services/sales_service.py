# Overview: Service-layer operations for sales; checkout workflow, listing and account linking.

"""
Sales Service

create_sale() turns a cart into a Sale in ONE database transaction:

    validate cart -> lock products -> check stock -> price lines -> totals
    -> allocate SALE-<year>-NNNN -> customer upsert -> account link
    -> persist sale -> conditional stock decrements + movements -> activity

Any failure rolls everything back: there is never a sale without its stock
decrements, nor a decrement without its sale. Concurrent checkouts of the
same product serialize on the write lock (BEGIN IMMEDIATE on SQLite, row
locks elsewhere) and each decrement is an UPDATE ... WHERE stock >= qty, so
stock can never go negative.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sale, SaleLine, User
from . import customer_service, inventory_service
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry, write_transaction
from .document_service import next_document_number
from storefront.pricing import price_line
from storefront.time_utils import utcnow
from storefront.validation import ConflictError, NotFoundError, ValidationError, coerce_int, enforce_amount


class SaleError(Exception):
    """Raised when sale operations fail."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int
    size: str | None


def parse_items(items) -> list[CartItem]:
    """Validate the raw `items` array of a checkout request."""
    if not items or not isinstance(items, list):
        raise ValidationError("Sale must have at least one item")

    parsed: list[CartItem] = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("product_id", raw.get("id"))
        if product_id is None:
            raise ValidationError(f"items[{index}].product_id is required")
        product_id = coerce_int(product_id, f"items[{index}].product_id")
        quantity = coerce_int(raw.get("quantity", 1), f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")
        size = raw.get("size")
        size = str(size).strip() or None if size is not None else None
        parsed.append(CartItem(product_id=product_id, quantity=quantity, size=size))
    return parsed


def _parse_money(value, field: str, *, required: bool = False) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    amount = coerce_int(value, field)
    enforce_amount(amount, field)
    return amount


def _insufficient(product: Product, item: CartItem, requested: int, available: int) -> SaleError:
    label = f"{product.name} (Size {item.size})" if item.size else product.name
    message = f"Insufficient stock for {label}. Available: {available}, Requested: {requested}"
    buckets = product.stock_by_size
    if item.size and buckets is not None:
        message += f". Available sizes: {', '.join(buckets)}"
    return SaleError(message, details={
        "product_id": product.id,
        "product_name": product.name,
        "size": item.size,
        "requested": requested,
        "available": available,
    })


def _check_stock(products: dict[int, Product], items: list[CartItem]) -> None:
    """Verify every (product, size) can cover the summed requested quantity."""
    requested: dict[tuple[int, str | None], int] = {}
    for item in items:
        product = products[item.product_id]
        # Sized stock is only ever decremented per bucket so the scalar stays their sum.
        if product.stock_by_size is not None and not item.size:
            raise SaleError(
                f"Size is required for {product.name}. Available sizes: {', '.join(product.stock_by_size)}",
                details={"product_id": product.id, "sizes": list(product.stock_by_size)},
            )
        key = (item.product_id, item.size if product.stock_by_size is not None else None)
        requested[key] = requested.get(key, 0) + item.quantity

    for item in items:
        product = products[item.product_id]
        key = (item.product_id, item.size if product.stock_by_size is not None else None)
        available = inventory_service.available_quantity(product, item.size)
        if requested[key] > available:
            raise _insufficient(product, item, requested[key], available)


def find_user_for_contact(email: str | None, phone: str | None) -> User | None:
    """
    Best-effort account match for a walk-in sale.

    Exact (case-insensitive) email match wins. Otherwise a phone match is
    used only when exactly one account has that phone; ambiguity is logged
    and the sale stays unlinked.
    """
    email = (email or "").strip().lower()
    phone = (phone or "").strip()
    if email:
        user = db.session.query(User).filter(func.lower(User.email) == email).first()
        if user:
            return user
    if phone:
        users = db.session.query(User).filter(User.phone == phone).limit(2).all()
        if len(users) == 1:
            return users[0]
        if len(users) > 1:
            current_app.logger.warning("Sale account link skipped: phone %s matches several users", phone)
    return None


def create_sale(
    *,
    items,
    cash_received,
    tax=0,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    customer_email: str | None = None,
    staff_user: User | None = None,
) -> Sale:
    cart = parse_items(items)
    cash = _parse_money(cash_received, "cash_received", required=True)
    tax_amount = _parse_money(tax, "tax") or 0
    customer_name = (customer_name or "").strip() or None
    customer_phone = (customer_phone or "").strip() or None
    customer_email = (customer_email or "").strip() or None
    staff_id = staff_user.id if staff_user else None

    def _op() -> Sale:
        with write_transaction():
            now = utcnow()

            products: dict[int, Product] = {}
            for product_id in sorted({item.product_id for item in cart}):
                product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
                if not product:
                    raise NotFoundError(f"Product {product_id} not found")
                products[product_id] = product

            _check_stock(products, cart)

            lines: list[SaleLine] = []
            subtotal = discount_amount = total_cost = total_profit = 0
            for position, item in enumerate(cart):
                product = products[item.product_id]
                priced = price_line(
                    price=product.price,
                    purchase_price=product.purchase_price,
                    discount=product.discount,
                    discount_end_time=product.discount_end_time,
                    quantity=item.quantity,
                    now=now,
                )
                subtotal += priced.subtotal
                discount_amount += priced.discount_amount
                total_cost += priced.cost
                total_profit += priced.profit
                lines.append(SaleLine(
                    position=position,
                    product_id=product.id,
                    product_name=product.name,
                    size=item.size,
                    quantity=item.quantity,
                    unit_price=priced.unit_price,
                    purchase_price=product.purchase_price or 0,
                    discount_percentage=priced.discount_percentage,
                    final_price=priced.final_price,
                    subtotal=priced.subtotal,
                    cost=priced.cost,
                    profit=priced.profit,
                ))

            total = subtotal + tax_amount
            change = cash - total
            if change < 0:
                currency = current_app.config.get("CURRENCY", "")
                raise SaleError(
                    f"Insufficient cash. Total: {total:,} {currency}, Received: {cash:,} {currency}".strip(),
                    details={"total": total, "cash_received": cash},
                )

            sale_number = next_document_number(document_type="SALE", prefix="SALE", year=now.year)

            customer = customer_service.record_purchase(
                phone=customer_phone,
                name=customer_name,
                email=customer_email,
                total=total,
            )
            user = find_user_for_contact(customer_email, customer_phone)

            sale = Sale(
                sale_number=sale_number,
                customer_id=customer.id if customer else None,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                user_id=user.id if user else None,
                subtotal=subtotal,
                tax=tax_amount,
                discount_amount=discount_amount,
                total=total,
                total_cost=total_cost,
                total_profit=total_profit,
                payment_method="cash",
                cash_received=cash,
                change=change,
                staff_id=staff_id,
                staff_name=staff_user.name if staff_user else None,
                created_at=now,
                updated_at=now,
                lines=lines,
            )
            db.session.add(sale)
            db.session.flush()

            for line in lines:
                product = products[line.product_id]
                bucket = line.size if product.stock_by_size is not None else None
                if not inventory_service.apply_stock_delta(product.id, -line.quantity, bucket):
                    available = inventory_service.current_quantity(product.id, bucket)
                    raise _insufficient(product, CartItem(product.id, line.quantity, line.size), line.quantity, available)
                inventory_service.log_movement(
                    product=product,
                    quantity_change=-line.quantity,
                    reason="sale",
                    size=line.size,
                    reference_type="sale",
                    reference_id=sale.id,
                    staff_id=staff_id,
                    notes=f"Sale {sale_number}",
                )

            log_activity(
                user_id=staff_id,
                action="complete_sale",
                entity_type="Sale",
                entity_id=sale.id,
                changes={"after": {"sale_number": sale_number, "total": total, "items_count": len(lines)}},
            )
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def list_sales_query(*, start=None, end=None, user_id: int | None = None):
    query = db.session.query(Sale)
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at <= end)
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc())


def link_user(
    sale_id: int,
    *,
    user_email: str | None = None,
    user_phone: str | None = None,
    actor_user_id: int | None = None,
) -> Sale:
    """Attach a user account to an existing sale (staff correction of the best-effort link)."""
    user_email = (user_email or "").strip().lower()
    user_phone = (user_phone or "").strip()
    if not user_email and not user_phone:
        raise ValidationError("user_email or user_phone is required")

    sale = get_sale(sale_id)
    if user_email:
        user = db.session.query(User).filter(func.lower(User.email) == user_email).first()
    else:
        matches = db.session.query(User).filter(User.phone == user_phone).limit(2).all()
        if len(matches) > 1:
            raise ConflictError("More than one user has this phone number; link by email instead")
        user = matches[0] if matches else None
    if not user:
        raise NotFoundError("User not found")

    previous = sale.user_id
    sale.user_id = user.id
    log_activity(
        user_id=actor_user_id,
        action="link_sale_user",
        entity_type="Sale",
        entity_id=sale.id,
        changes={"before": {"user_id": previous}, "after": {"user_id": user.id}},
    )
    db.session.commit()
    return sale
