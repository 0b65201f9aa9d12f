# Overview: Flask API routes for operating expenses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import expense_service
from ..decorators import require_auth, require_admin, require_staff
from storefront.validation import NotFoundError, ValidationError, paginate, parse_date_arg, parse_pagination


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_staff
def list_expenses_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=20)
        query = expense_service.list_expenses_query(
            category=request.args.get("category"),
            start=parse_date_arg(request.args.get("start_date"), "start_date"),
            end=parse_date_arg(request.args.get("end_date"), "end_date", end_of_day=True),
        )
        expenses, pagination = paginate(query, page, limit)
        return jsonify({
            "expenses": [e.to_dict() for e in expenses],
            "pagination": pagination,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.post("")
@require_auth
@require_staff
def create_expense_route():
    try:
        expense = expense_service.create_expense(request.get_json(silent=True) or {}, staff_id=g.current_user.id)
        return jsonify({"expense": expense.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_staff
def get_expense_route(expense_id: int):
    try:
        return jsonify({"expense": expense_service.get_expense(expense_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.put("/<int:expense_id>")
@require_auth
@require_staff
def update_expense_route(expense_id: int):
    try:
        expense = expense_service.update_expense(
            expense_id,
            request.get_json(silent=True) or {},
            staff_id=g.current_user.id,
        )
        return jsonify({"expense": expense.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_admin
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id, staff_id=g.current_user.id)
        return jsonify({"message": "Expense deleted"}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500
