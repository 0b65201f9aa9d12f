# Overview: Flask API routes for the activity log (admin only).

from flask import Blueprint, request, jsonify, current_app

from ..services import activity_service
from ..decorators import require_auth, require_admin
from storefront.validation import ValidationError, coerce_int, paginate, parse_pagination


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity-logs")


@activity_bp.get("")
@require_auth
@require_admin
def list_activity_route():
    try:
        page, limit = parse_pagination(request.args, default_limit=50)
        user_id = request.args.get("user_id")
        query = activity_service.list_activity_query(
            action=request.args.get("action"),
            entity_type=request.args.get("entity_type"),
            user_id=coerce_int(user_id, "user_id") if user_id else None,
        )
        logs, pagination = paginate(query, page, limit)
        return jsonify({"logs": [entry.to_dict() for entry in logs], "pagination": pagination}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list activity logs")
        return jsonify({"error": "Internal server error"}), 500
