# Overview: Discount-active rule and line pricing shared by catalog display and checkout.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from storefront.time_utils import as_naive_utc, utcnow


def is_discount_active(discount: int | None, discount_end_time: datetime | None, now: datetime | None = None) -> bool:
    """
    A discount applies iff its percentage is positive and its end time is
    absent or strictly in the future relative to `now`.
    """
    if not discount or discount <= 0:
        return False
    if discount_end_time is None:
        return True
    now = as_naive_utc(now) if now is not None else utcnow()
    return as_naive_utc(discount_end_time) > now


def discounted_price(price: int, discount: int) -> int:
    """price * (1 - discount/100), rounded half-up to a whole currency unit."""
    value = Decimal(price) * (Decimal(100) - Decimal(discount)) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def effective_price(price: int, discount: int | None, discount_end_time: datetime | None, now: datetime | None = None) -> int:
    if is_discount_active(discount, discount_end_time, now):
        return discounted_price(price, discount)
    return price


@dataclass(frozen=True)
class LinePrice:
    unit_price: int
    discount_percentage: int | None
    final_price: int
    quantity: int
    subtotal: int
    undiscounted_subtotal: int
    cost: int
    profit: int

    @property
    def discount_amount(self) -> int:
        return self.undiscounted_subtotal - self.subtotal


def price_line(
    *,
    price: int,
    purchase_price: int | None,
    discount: int | None,
    discount_end_time: datetime | None,
    quantity: int,
    now: datetime | None = None,
) -> LinePrice:
    """Snapshot the price of one sale line at `now`."""
    active = is_discount_active(discount, discount_end_time, now)
    final_price = discounted_price(price, discount) if active else price
    subtotal = final_price * quantity
    cost = (purchase_price or 0) * quantity
    return LinePrice(
        unit_price=price,
        discount_percentage=discount if active else None,
        final_price=final_price,
        quantity=quantity,
        subtotal=subtotal,
        undiscounted_subtotal=price * quantity,
        cost=cost,
        profit=subtotal - cost,
    )
