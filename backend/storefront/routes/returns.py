# Overview: Flask API routes for returns; creation against a sale and status updates.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import return_service
from ..services.return_service import ReturnError
from ..decorators import require_auth, require_staff
from storefront.validation import NotFoundError, ValidationError, paginate, parse_pagination


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
@require_staff
def create_return_route():
    """Body: {sale_id, items: [{product_id, quantity, size?, reason?}], reason?, notes?}"""
    try:
        data = request.get_json(silent=True) or {}
        ret = return_service.create_return(
            sale_id=data.get("sale_id"),
            items=data.get("items"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            staff_id=g.current_user.id,
        )
        return jsonify({"message": "Return created", "return": ret.to_dict()}), 201

    except (ValidationError, ReturnError) as e:
        return jsonify({"error": str(e), "details": getattr(e, "details", {})}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_auth
@require_staff
def list_returns_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=20)
        query = return_service.list_returns_query(request.args.get("status"))
        returns, pagination = paginate(query, page, limit)
        return jsonify({
            "returns": [r.to_dict() for r in returns],
            "pagination": pagination,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_auth
@require_staff
def get_return_route(return_id: int):
    try:
        ret = return_service.get_return(return_id)
        return jsonify({"return": ret.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.patch("/<int:return_id>")
@require_auth
@require_staff
def update_return_route(return_id: int):
    """Body: {status: approved | rejected | pending, notes?}"""
    try:
        data = request.get_json(silent=True) or {}
        ret = return_service.update_status(
            return_id,
            status=data.get("status"),
            notes=data.get("notes"),
            staff_id=g.current_user.id,
        )
        return jsonify({"message": f"Return {ret.status}", "return": ret.to_dict()}), 200

    except (ValidationError, ReturnError) as e:
        return jsonify({"error": str(e), "details": getattr(e, "details", {})}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update return")
        return jsonify({"error": "Internal server error"}), 500
