# Overview: Service-layer operations for expenses; numbered operating costs feeding the financial report.

from __future__ import annotations

from ..extensions import db
from ..models import EXPENSE_CATEGORIES, Expense
from .activity_service import log_activity
from .concurrency import run_with_retry, write_transaction
from .document_service import next_document_number
from storefront.time_utils import to_utc_z, utcnow
from storefront.validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_amount,
    validate_payload,
)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"category", "amount", "description", "date", "receipt_url"},
    required_on_create={"category", "amount", "description"},
)


def _check_rules(patch: dict) -> None:
    if "category" in patch and patch["category"] not in EXPENSE_CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(EXPENSE_CATEGORIES)}")
    if "amount" in patch:
        enforce_amount(patch["amount"], "amount", allow_zero=False)


def _snapshot(expense: Expense) -> dict:
    return {
        "category": expense.category,
        "amount": expense.amount,
        "description": expense.description,
        "date": to_utc_z(expense.date),
    }


def create_expense(payload: dict, *, staff_id: int | None = None) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    _check_rules(patch)
    patch.setdefault("date", None)

    def _op() -> Expense:
        with write_transaction():
            expense = Expense(
                expense_number=next_document_number(document_type="EXPENSE", prefix="EXP"),
                staff_id=staff_id,
                **{k: v for k, v in patch.items() if k != "date"},
            )
            expense.date = patch["date"] or utcnow()
            db.session.add(expense)
            db.session.flush()
            log_activity(
                user_id=staff_id,
                action="create_expense",
                entity_type="Expense",
                entity_id=expense.id,
                changes={"after": {"expense_number": expense.expense_number, **_snapshot(expense)}},
            )
        return expense

    return run_with_retry(_op)


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def update_expense(expense_id: int, payload: dict, *, staff_id: int | None = None) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    _check_rules(patch)

    expense = get_expense(expense_id)
    before = _snapshot(expense)
    for key, value in patch.items():
        setattr(expense, key, value)
    log_activity(
        user_id=staff_id,
        action="update_expense",
        entity_type="Expense",
        entity_id=expense.id,
        changes={"before": before, "after": _snapshot(expense)},
    )
    db.session.commit()
    return expense


def delete_expense(expense_id: int, *, staff_id: int | None = None) -> None:
    expense = get_expense(expense_id)
    log_activity(
        user_id=staff_id,
        action="delete_expense",
        entity_type="Expense",
        entity_id=expense.id,
        changes={"before": {"expense_number": expense.expense_number, **_snapshot(expense)}},
    )
    db.session.delete(expense)
    db.session.commit()


def list_expenses_query(*, category: str | None = None, start=None, end=None):
    query = db.session.query(Expense)
    if category:
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(f"category must be one of {', '.join(EXPENSE_CATEGORIES)}")
        query = query.filter(Expense.category == category)
    if start:
        query = query.filter(Expense.date >= start)
    if end:
        query = query.filter(Expense.date <= end)
    return query.order_by(Expense.date.desc(), Expense.id.desc())
