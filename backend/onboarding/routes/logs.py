# backend/onboarding/routes/logs.py

from flask import Blueprint, request, jsonify

from ..services import activity_service
from ..decorators import require_auth, require_permission


logs_bp = Blueprint("logs", __name__, url_prefix="/api/logs")


@logs_bp.get("")
@require_auth
@require_permission("VIEW_ACTIVITY_LOG")
def list_logs_route():
    """
    Activity log, newest first.

    Query params: user_id, matricule, limit (default 100), offset.
    """
    logs, total = activity_service.list_activity(
        user_id=request.args.get("user_id", type=int),
        matricule=request.args.get("matricule"),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"logs": [entry.to_dict() for entry in logs], "total": total}), 200
