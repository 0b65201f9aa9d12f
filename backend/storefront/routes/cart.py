# Overview: Flask API routes for the signed-in user's cart.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import cart_service
from ..decorators import require_auth
from storefront.validation import NotFoundError, ValidationError


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    cart = cart_service.get_cart(g.current_user.id)
    return jsonify({"cart": cart.to_dict()}), 200


@cart_bp.put("")
@require_auth
def replace_cart_route():
    """Body: {items: [{product_id, quantity, size?}]}; an empty list clears the cart."""
    try:
        data = request.get_json(silent=True) or {}
        cart = cart_service.replace_cart(g.current_user.id, data.get("items"))
        return jsonify({"cart": cart.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update cart")
        return jsonify({"error": "Internal server error"}), 500
