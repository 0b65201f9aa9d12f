# Overview: Flask API routes for the stock movement ledger (read-only).

from flask import Blueprint, request, jsonify, current_app

from ..models import MOVEMENT_REASONS
from ..services import inventory_service
from ..decorators import require_auth, require_staff
from storefront.validation import (
    ValidationError,
    coerce_int,
    paginate,
    parse_date_arg,
    parse_pagination,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/stock-movements")


@inventory_bp.get("")
@require_auth
@require_staff
def list_movements_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=current_app.config["MOVEMENTS_PAGE_SIZE"])

        product_id = request.args.get("product_id")
        if product_id:
            product_id = coerce_int(product_id, "product_id")

        reason = request.args.get("reason")
        if reason and reason not in MOVEMENT_REASONS:
            return jsonify({"error": f"reason must be one of {', '.join(MOVEMENT_REASONS)}"}), 400

        query = inventory_service.list_movements_query(
            product_id=product_id,
            reason=reason,
            start=parse_date_arg(request.args.get("start_date"), "start_date"),
            end=parse_date_arg(request.args.get("end_date"), "end_date", end_of_day=True),
        )
        movements, pagination = paginate(query, page, limit)
        return jsonify({
            "movements": [m.to_dict() for m in movements],
            "pagination": pagination,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
