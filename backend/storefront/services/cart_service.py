# Overview: Service-layer operations for the storefront cart (one per user, replaced wholesale).

from __future__ import annotations

from ..extensions import db
from ..models import Cart, CartItem, Product
from .sales_service import parse_items
from storefront.validation import NotFoundError, ValidationError


def get_cart(user_id: int) -> Cart:
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is None:
        cart = Cart(user_id=user_id)
        db.session.add(cart)
        db.session.commit()
    return cart


def replace_cart(user_id: int, items) -> Cart:
    """Overwrite the user's cart. Prices are not stored; checkout re-prices."""
    if items is not None and not isinstance(items, list):
        raise ValidationError("items must be a list")
    parsed = parse_items(items) if items else []

    known = {
        pid for (pid,) in db.session.query(Product.id)
        .filter(Product.id.in_({item.product_id for item in parsed}))
        .all()
    } if parsed else set()
    for item in parsed:
        if item.product_id not in known:
            raise NotFoundError(f"Product {item.product_id} not found")

    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is None:
        cart = Cart(user_id=user_id)
        db.session.add(cart)

    # Merge duplicate (product, size) lines
    merged: dict[tuple[int, str | None], int] = {}
    for item in parsed:
        key = (item.product_id, item.size)
        merged[key] = merged.get(key, 0) + item.quantity

    cart.items.clear()
    db.session.flush()
    for (product_id, size), quantity in merged.items():
        cart.items.append(CartItem(product_id=product_id, size=size, quantity=quantity))
    db.session.commit()
    return cart
