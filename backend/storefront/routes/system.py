# backend/storefront/routes/system.py
"""System health endpoint."""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "ok", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {"status": "error", "latency_ms": round((time.time() - start_time) * 1000, 2)}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    return jsonify({
        "status": "ok",
        "database": database["status"],
        "database_latency_ms": database["latency_ms"],
        "time": to_utc_z(utcnow()),
    }), 200
