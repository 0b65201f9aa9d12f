# Overview: Flask API routes for product categories.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service
from ..decorators import require_auth, require_staff
from storefront.validation import ConflictError, ValidationError


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories_route():
    categories = products_service.list_categories()
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@categories_bp.post("")
@require_auth
@require_staff
def create_category_route():
    try:
        category = products_service.create_category(
            request.get_json(silent=True) or {},
            staff_id=g.current_user.id,
        )
        return jsonify({"category": category.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500
