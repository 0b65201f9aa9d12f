# Overview: Service-layer operations for returns; creation against a sale and approval with stock restoration.

"""
Return Service

A return is created "pending" and moves once to "approved" or "rejected".
Approval restores stock for every returned line in the same transaction as
the status change and stamps stock_restored_at; a return that already has
that stamp is never restored again, so repeated approvals are harmless.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Return, ReturnLine, Sale, SaleLine
from . import inventory_service
from .activity_service import log_activity
from .concurrency import lock_for_update, run_with_retry, write_transaction
from .document_service import next_document_number
from storefront.time_utils import utcnow
from storefront.validation import NotFoundError, ValidationError, coerce_int

# Allowed transitions; same-status updates are no-ops
RETURN_TRANSITIONS = {
    "pending": {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}


class ReturnError(Exception):
    """Raised when return operations fail."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _match_line(sale: Sale, product_id: int, size: str | None) -> SaleLine | None:
    for line in sale.lines:
        if line.product_id != product_id:
            continue
        if (line.size or None) == size:
            return line
    return None


def _already_returned(sale_line_id: int) -> int:
    """Quantity of a sale line already claimed by non-rejected returns."""
    return (
        db.session.query(func.coalesce(func.sum(ReturnLine.quantity), 0))
        .join(Return, Return.id == ReturnLine.return_id)
        .filter(ReturnLine.sale_line_id == sale_line_id, Return.status != "rejected")
        .scalar()
    )


def create_return(
    *,
    sale_id,
    items,
    reason: str | None = None,
    notes: str | None = None,
    staff_id: int | None = None,
) -> Return:
    if sale_id is None:
        raise ValidationError("sale_id is required")
    sale_id = coerce_int(sale_id, "sale_id")
    if not items or not isinstance(items, list):
        raise ValidationError("Return must have at least one item")

    requested = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("product_id")
        if product_id is None:
            raise ValidationError(f"items[{index}].product_id is required")
        if raw.get("quantity") is None:
            raise ValidationError(f"items[{index}].quantity is required")
        quantity = coerce_int(raw["quantity"], f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")
        size = raw.get("size")
        requested.append({
            "product_id": coerce_int(product_id, f"items[{index}].product_id"),
            "quantity": quantity,
            "size": str(size).strip() or None if size is not None else None,
            "reason": (raw.get("reason") or "").strip() or None,
        })

    def _op() -> Return:
        with write_transaction():
            sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
            if not sale:
                raise NotFoundError("Sale not found")

            claimed: dict[int, int] = {}
            lines: list[ReturnLine] = []
            total_refund = 0
            for item in requested:
                sale_line = _match_line(sale, item["product_id"], item["size"])
                if not sale_line:
                    label = f" (size {item['size']})" if item["size"] else ""
                    raise ReturnError(
                        f"Product {item['product_id']}{label} not found in original sale",
                        details={"product_id": item["product_id"], "size": item["size"]},
                    )

                if sale_line.id not in claimed:
                    claimed[sale_line.id] = _already_returned(sale_line.id)
                claimed[sale_line.id] += item["quantity"]
                if claimed[sale_line.id] > sale_line.quantity:
                    raise ReturnError(
                        f"Return quantity ({claimed[sale_line.id]}) exceeds sold quantity "
                        f"({sale_line.quantity}) for {sale_line.product_name}",
                        details={
                            "sale_line_id": sale_line.id,
                            "sold": sale_line.quantity,
                            "requested": claimed[sale_line.id],
                        },
                    )

                refund = sale_line.final_price * item["quantity"]
                total_refund += refund
                lines.append(ReturnLine(
                    sale_line_id=sale_line.id,
                    product_id=sale_line.product_id,
                    product_name=sale_line.product_name,
                    size=sale_line.size,
                    quantity=item["quantity"],
                    final_price=sale_line.final_price,
                    refund_amount=refund,
                    reason=item["reason"],
                ))

            return_number = next_document_number(document_type="RETURN", prefix="RET")
            ret = Return(
                return_number=return_number,
                sale_id=sale.id,
                total_refund=total_refund,
                status="pending",
                reason=(reason or "").strip() or None,
                notes=(notes or "").strip() or None,
                staff_id=staff_id,
                lines=lines,
            )
            db.session.add(ret)
            db.session.flush()

            log_activity(
                user_id=staff_id,
                action="create_return",
                entity_type="Return",
                entity_id=ret.id,
                changes={"after": {
                    "return_number": return_number,
                    "sale_number": sale.sale_number,
                    "total_refund": total_refund,
                }},
            )
        return ret

    return run_with_retry(_op)


def _restore_stock(ret: Return, staff_id: int | None) -> None:
    for line in ret.lines:
        product = None
        if line.product_id is not None:
            product = lock_for_update(db.session.query(Product).filter_by(id=line.product_id)).first()
        if product is None:
            current_app.logger.warning(
                "Return %s: product %s no longer exists; stock not restored for this line",
                ret.return_number,
                line.product_id,
            )
            continue

        buckets = product.stock_by_size
        bucket = None
        if buckets is not None:
            if not line.size:
                raise ReturnError(
                    f"{product.name} is tracked per size; returned line has no size",
                    details={"product_id": product.id},
                )
            inventory_service.ensure_size_bucket(product.id, line.size)
            bucket = line.size

        if not inventory_service.apply_stock_delta(product.id, line.quantity, bucket):
            raise ReturnError(f"Could not restore stock for {product.name}")

        inventory_service.log_movement(
            product=product,
            quantity_change=line.quantity,
            reason="return",
            size=line.size,
            reference_type="return",
            reference_id=ret.id,
            staff_id=staff_id,
            notes=f"Return {ret.return_number}",
        )


def update_status(
    return_id: int,
    *,
    status: str | None,
    notes: str | None = None,
    staff_id: int | None = None,
) -> Return:
    if status not in RETURN_TRANSITIONS:
        raise ValidationError("Valid status is required (pending, approved, rejected)")

    def _op() -> Return:
        with write_transaction():
            ret = lock_for_update(db.session.query(Return).filter_by(id=return_id)).first()
            if not ret:
                raise NotFoundError("Return not found")

            old_status = ret.status
            if notes is not None:
                ret.notes = notes.strip() or None

            if status == old_status:
                return ret

            if status not in RETURN_TRANSITIONS[old_status]:
                raise ReturnError(
                    f"Cannot change return status from {old_status} to {status}",
                    details={"from": old_status, "to": status},
                )

            now = utcnow()
            ret.status = status
            ret.processed_by_user_id = staff_id
            ret.processed_at = now

            if status == "approved" and ret.stock_restored_at is None:
                _restore_stock(ret, staff_id)
                ret.stock_restored_at = now

            log_activity(
                user_id=staff_id,
                action=f"{status}_return",
                entity_type="Return",
                entity_id=ret.id,
                changes={"before": {"status": old_status}, "after": {"status": status}},
            )
        return ret

    return run_with_retry(_op)


def get_return(return_id: int) -> Return:
    ret = db.session.get(Return, return_id)
    if not ret:
        raise NotFoundError("Return not found")
    return ret


def list_returns_query(status: str | None = None):
    query = db.session.query(Return)
    if status:
        if status not in RETURN_TRANSITIONS:
            raise ValidationError("status must be one of pending, approved, rejected")
        query = query.filter(Return.status == status)
    return query.order_by(Return.created_at.desc(), Return.id.desc())
