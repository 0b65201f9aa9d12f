# Overview: Flask API routes for catalog and stock operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import inventory_service, products_service
from ..services.inventory_service import StockError
from ..decorators import require_auth, require_admin, require_staff
from storefront.time_utils import utcnow
from storefront.validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    paginate,
    parse_pagination,
)


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _float_arg(name: str) -> float | None:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number")


def _int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    return coerce_int(raw, name)


def _list_arg(name: str) -> list[str]:
    values: list[str] = []
    for raw in request.args.getlist(name):
        values.extend(v.strip() for v in raw.split(",") if v.strip())
    return values


@products_bp.get("")
def list_products_route():
    """Public catalog listing with filters, sorting and pagination."""
    try:
        page, limit = parse_pagination(request.args, default_limit=20)
        now = utcnow()
        query = products_service.list_products_query(
            categories=_list_arg("category"),
            search=request.args.get("search"),
            min_price=_int_arg("min_price"),
            max_price=_int_arg("max_price"),
            discounts_only=request.args.get("discounts_only", "").lower() in ("1", "true", "yes"),
            brands=_list_arg("brand"),
            sizes=_list_arg("size"),
            genders=_list_arg("gender"),
            colors=_list_arg("color"),
            min_rating=_float_arg("min_rating"),
            sort_by=request.args.get("sort_by"),
            now=now,
        )
        products, pagination = paginate(query, page, limit)
        return jsonify({
            "products": [p.to_dict(now) for p in products],
            "pagination": pagination,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/low-stock")
@require_auth
@require_staff
def low_stock_route():
    try:
        threshold = _int_arg("threshold")
        if threshold is not None and threshold < 0:
            return jsonify({"error": "threshold must be >= 0"}), 400
        rows = inventory_service.low_stock_products(threshold)
        return jsonify({"products": rows, "count": len(rows)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list low-stock products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_staff
def create_product_route():
    try:
        payload = request.get_json(silent=True)
        product = products_service.create_product(payload or {}, staff_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_staff
def update_product_route(product_id: int):
    try:
        payload = request.get_json(silent=True)
        product = products_service.update_product(product_id, payload or {}, staff_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id, staff_id=g.current_user.id)
        return jsonify({"message": "Product deleted"}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/adjust-stock")
@require_auth
@require_staff
def adjust_stock_route(product_id: int):
    """
    Manual stock correction.

    Body: {quantity_change (non-zero int), reason, size?, notes?}
    """
    try:
        data = request.get_json(silent=True) or {}
        product, movement = inventory_service.adjust_stock(
            product_id,
            quantity_change=data.get("quantity_change"),
            reason=data.get("reason"),
            size=data.get("size"),
            notes=data.get("notes"),
            staff_id=g.current_user.id,
        )
        return jsonify({
            "message": "Stock adjusted successfully",
            "product": {
                "id": product.id,
                "name": product.name,
                "stock": product.stock,
                "stock_by_size": product.stock_by_size,
            },
            "movement": movement.to_dict(),
        }), 200

    except (ValidationError, StockError) as e:
        return jsonify({"error": str(e), "details": getattr(e, "details", {})}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/bulk")
@require_auth
@require_admin
def bulk_update_route():
    """Body: {operation: update_stock | update_prices, updates: [...]}; all-or-nothing."""
    try:
        data = request.get_json(silent=True) or {}
        results = products_service.bulk_update(
            data.get("operation"),
            data.get("updates"),
            staff_id=g.current_user.id,
        )
        return jsonify({"results": results, "total": len(results)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to run bulk product update")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/reviews")
def list_reviews_route(product_id: int):
    try:
        reviews = products_service.list_reviews(product_id)
        return jsonify({"reviews": [r.to_dict() for r in reviews]}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list reviews")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/reviews")
@require_auth
def add_review_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        review = products_service.add_review(
            product_id,
            user=g.current_user,
            rating=data.get("rating"),
            comment=data.get("comment"),
        )
        return jsonify({"review": review.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to add review")
        return jsonify({"error": "Internal server error"}), 500
