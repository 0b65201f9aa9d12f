# Overview: Flask API routes for a signed-in user's own purchase history.

from flask import Blueprint, request, jsonify, current_app, g

from ..models import Sale
from ..services import sales_service
from ..decorators import require_auth
from storefront.validation import ValidationError, paginate, parse_pagination


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=current_app.config["SALES_PAGE_SIZE"])
        query = sales_service.list_sales_query(user_id=g.current_user.id)
        orders, pagination = paginate(query, page, limit)
        return jsonify({"orders": [o.to_dict() for o in orders], "pagination": pagination}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:sale_id>")
@require_auth
def get_order_route(sale_id: int):
    try:
        # Other users' sales are reported as missing
        sale = Sale.query.filter_by(id=sale_id, user_id=g.current_user.id).first()
        if not sale:
            return jsonify({"error": "Order not found"}), 404
        return jsonify({"order": sale.to_dict()}), 200
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500
