# backend/onboarding/routes/system.py
"""
System health endpoint.

Reports database reachability plus the short-code counter state, which is the
first thing to look at when final validations start failing.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..errors import OnboardingError
from ..extensions import db
from ..models import Merchant, User
from ..services import short_code_service

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        merchant_count = db.session.query(Merchant).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "merchants": merchant_count,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_short_code_health() -> dict:
    try:
        status = short_code_service.sequence_status()
        try:
            status["next_code"] = short_code_service.peek_next_short_code()
        except OnboardingError:
            status["next_code"] = None
        status["status"] = "healthy" if status["in_sync"] else "degraded"
        return status
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Short-code health check failed")
        return {"status": "unhealthy", "error": "Database error"}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    checks = {"database": database}
    if database["status"] == "healthy":
        checks["short_codes"] = check_short_code_health()

    overall = "healthy"
    if any(c["status"] == "unhealthy" for c in checks.values()):
        overall = "unhealthy"
    elif any(c["status"] == "degraded" for c in checks.values()):
        overall = "degraded"

    return jsonify({"status": overall, "checks": checks}), 200 if overall != "unhealthy" else 503
