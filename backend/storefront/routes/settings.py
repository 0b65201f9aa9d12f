# Overview: Flask API routes for store settings; staff read, admin write.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import settings_service
from ..decorators import require_auth, require_admin, require_staff
from storefront.validation import ValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@require_staff
def get_settings_route():
    key = request.args.get("key")
    if key:
        return jsonify({"key": key, "value": settings_service.get_setting(key)}), 200
    return jsonify({"settings": settings_service.all_settings()}), 200


@settings_bp.put("")
@require_auth
@require_admin
def put_setting_route():
    """Body: {key, value}"""
    try:
        data = request.get_json(silent=True) or {}
        if "value" not in data:
            return jsonify({"error": "value is required"}), 400
        setting = settings_service.set_setting(data.get("key"), data["value"], user_id=g.current_user.id)
        return jsonify({"setting": setting.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update setting")
        return jsonify({"error": "Internal server error"}), 500
