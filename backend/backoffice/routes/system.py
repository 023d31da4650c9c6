# backend/backoffice/routes/system.py
"""
System health endpoint.

Reports database reachability and which collaborators are configured, so a
deploy with missing Stripe or ShipStation credentials is visible at a glance.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db, get_collaborators
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    collaborators = get_collaborators()
    body = {
        "status": "ok" if database["status"] == "healthy" else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "stripe": {"configured": collaborators.gateway is not None},
            "shipstation": {"configured": collaborators.shipstation is not None},
        },
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503
