# Overview: Service-layer operations for customers; contact records and purchase aggregates.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Sale
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry
from storefront.time_utils import utcnow
from storefront.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "tags", "notes", "loyalty_points"},
    required_on_create={"name", "phone"},
)


def loyalty_points_for(total: int) -> int:
    unit = current_app.config.get("LOYALTY_POINT_UNIT") or 0
    if unit <= 0 or total <= 0:
        return 0
    return total // unit


def record_purchase(
    *,
    phone: str | None,
    name: str | None,
    email: str | None,
    total: int,
) -> Customer | None:
    """
    Resolve the sale's customer by phone and fold the purchase into its
    aggregates, creating the customer when a name is given.

    Runs inside the checkout transaction; does not commit.
    """
    phone = (phone or "").strip()
    if not phone:
        return None

    now = utcnow()
    customer = lock_for_update(db.session.query(Customer).filter_by(phone=phone)).first()
    if customer:
        customer.total_spent += total
        customer.purchase_count += 1
        customer.last_purchase_date = now
        customer.loyalty_points += loyalty_points_for(total)
        return customer

    name = (name or "").strip()
    if not name:
        return None

    customer = Customer(
        name=name,
        phone=phone,
        email=(email or "").strip() or None,
        total_spent=total,
        purchase_count=1,
        last_purchase_date=now,
        loyalty_points=loyalty_points_for(total),
        tags=[],
    )
    db.session.add(customer)
    db.session.flush()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def list_customers_query(search: str | None = None):
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.email.ilike(pattern),
        ))
    return query.order_by(Customer.created_at.desc(), Customer.id.desc())


def recent_sales(customer_id: int, limit: int = 10) -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter_by(customer_id=customer_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )


def _ensure_phone_free(phone: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Customer.id).filter(Customer.phone == phone)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError("Customer with this phone number already exists")


def _check_rules(patch: dict) -> None:
    if patch.get("loyalty_points") is not None and patch["loyalty_points"] < 0:
        raise ValidationError("loyalty_points must be >= 0")


def create_customer(payload: dict, *, actor_user_id: int | None = None) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    _check_rules(patch)
    _ensure_phone_free(patch["phone"])

    customer = Customer(**patch)
    db.session.add(customer)
    db.session.flush()
    log_activity(
        user_id=actor_user_id,
        action="create_customer",
        entity_type="Customer",
        entity_id=customer.id,
        changes={"after": {"name": customer.name, "phone": customer.phone}},
    )
    db.session.commit()
    return customer


def update_customer(customer_id: int, payload: dict, *, actor_user_id: int | None = None) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    _check_rules(patch)

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found")
        if "phone" in patch and patch["phone"] != customer.phone:
            _ensure_phone_free(patch["phone"], exclude_id=customer.id)

        before = {k: getattr(customer, k) for k in patch}
        for key, value in patch.items():
            setattr(customer, key, value)
        log_activity(
            user_id=actor_user_id,
            action="update_customer",
            entity_type="Customer",
            entity_id=customer.id,
            changes={"before": before, "after": patch},
        )
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(customer_id: int, *, actor_user_id: int | None = None) -> None:
    customer = get_customer(customer_id)
    snapshot = {"name": customer.name, "phone": customer.phone}
    # Sales keep their customer_name/phone snapshot
    db.session.query(Sale).filter_by(customer_id=customer.id).update(
        {Sale.customer_id: None}, synchronize_session=False
    )
    db.session.delete(customer)
    log_activity(
        user_id=actor_user_id,
        action="delete_customer",
        entity_type="Customer",
        entity_id=customer_id,
        changes={"before": snapshot},
    )
    db.session.commit()
