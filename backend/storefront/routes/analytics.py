# Overview: Flask API routes for sales and customer analytics (read-only).

from flask import Blueprint, request, jsonify, current_app

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_auth, require_staff


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/sales")
@require_auth
@require_staff
def sales_analytics_route():
    """Query: timeframe (today|week|month|quarter|year), metric."""
    try:
        data = reporting_service.sales_analytics(
            request.args.get("timeframe"),
            request.args.get("metric"),
        )
        return jsonify(data), 200

    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute sales analytics")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/customers")
@require_auth
@require_staff
def customer_analytics_route():
    try:
        return jsonify(reporting_service.customer_analytics(request.args.get("timeframe"))), 200

    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute customer analytics")
        return jsonify({"error": "Internal server error"}), 500
