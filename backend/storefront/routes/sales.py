# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import sales_service
from ..services.sales_service import SaleError
from ..decorators import require_auth, require_staff
from storefront.validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    paginate,
    parse_date_arg,
    parse_pagination,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_staff
def create_sale_route():
    """
    Complete a checkout.

    Body:
        items: [{product_id, quantity, size?}]
        cash_received: int
        tax?: int
        customer_name?, customer_phone?, customer_email?
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.create_sale(
            items=data.get("items"),
            cash_received=data.get("cash_received"),
            tax=data.get("tax", 0),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            customer_email=data.get("customer_email"),
            staff_user=g.current_user,
        )
        return jsonify({"message": "Sale completed", "sale": sale.to_dict()}), 201

    except (ValidationError, SaleError) as e:
        return jsonify({"error": str(e), "details": getattr(e, "details", {})}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_staff
def list_sales_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=current_app.config["SALES_PAGE_SIZE"])
        query = sales_service.list_sales_query(
            start=parse_date_arg(request.args.get("start_date"), "start_date"),
            end=parse_date_arg(request.args.get("end_date"), "end_date", end_of_day=True),
        )
        sales, pagination = paginate(query, page, limit)
        return jsonify({
            "sales": [s.to_dict() for s in sales],
            "pagination": pagination,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_staff
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/link-user")
@require_auth
@require_staff
def link_user_route():
    """Body: {sale_id, user_email? | user_phone?}"""
    try:
        data = request.get_json(silent=True) or {}
        if data.get("sale_id") is None:
            return jsonify({"error": "sale_id is required"}), 400
        sale_id = data["sale_id"]
        if not isinstance(sale_id, int) or isinstance(sale_id, bool):
            return jsonify({"error": "sale_id must be an integer"}), 400

        sale = sales_service.link_user(
            sale_id,
            user_email=data.get("user_email"),
            user_phone=data.get("user_phone"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"message": "Sale linked to user", "sale": sale.to_dict(include_lines=False)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to link sale to user")
        return jsonify({"error": "Internal server error"}), 500
