# Overview: Flask API routes for financial reports (admin and staff).

from flask import Blueprint, request, jsonify, current_app

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_auth, require_staff


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/financial")
@require_auth
@require_staff
def financial_report_route():
    try:
        report = reporting_service.financial_report(
            request.args.get("timeframe"),
            request.args.get("group_by"),
        )
        return jsonify(report), 200

    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to build financial report")
        return jsonify({"error": "Internal server error"}), 500
