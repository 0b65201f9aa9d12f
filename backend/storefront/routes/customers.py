# Overview: Flask API routes for customer records; staff reads/writes, admin deletes.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import customer_service
from ..decorators import require_auth, require_admin, require_staff
from storefront.validation import ConflictError, NotFoundError, ValidationError, paginate, parse_pagination


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_staff
def list_customers_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=current_app.config["CUSTOMERS_PAGE_SIZE"])
        query = customer_service.list_customers_query(request.args.get("search"))
        customers, pagination = paginate(query, page, limit)
        return jsonify({
            "customers": [c.to_dict() for c in customers],
            "pagination": pagination,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("")
@require_auth
@require_staff
def create_customer_route():
    try:
        customer = customer_service.create_customer(
            request.get_json(silent=True) or {},
            actor_user_id=g.current_user.id,
        )
        return jsonify({"customer": customer.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_staff
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        sales = customer_service.recent_sales(customer.id)
        return jsonify({
            "customer": customer.to_dict(),
            "recent_sales": [s.to_dict(include_lines=False) for s in sales],
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_staff
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(
            customer_id,
            request.get_json(silent=True) or {},
            actor_user_id=g.current_user.id,
        )
        return jsonify({"customer": customer.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_admin
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id, actor_user_id=g.current_user.id)
        return jsonify({"message": "Customer deleted"}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500
