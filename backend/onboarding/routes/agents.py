# backend/onboarding/routes/agents.py
"""
Agent performance counters.

- GET /api/agents/me/performance - the caller's own counters
- GET /api/agents/performance    - counters the caller may see:
    SUPERVISOR             -> agents reporting to them
    ADMIN                  -> everyone (optional ?role= filter)
    CALL_CENTER_SUPERVISOR -> data-entry agents
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Role
from ..permissions import role_has_permission
from ..services import directory_service
from ..services import performance_service
from ..decorators import require_auth, require_any_permission, require_permission


agents_bp = Blueprint("agents", __name__, url_prefix="/api/agents")


@agents_bp.get("/me/performance")
@require_auth
@require_permission("VIEW_OWN_PERFORMANCE")
def my_performance_route():
    return jsonify({"performance": performance_service.get_performance(g.current_user.id)}), 200


@agents_bp.get("/performance")
@require_auth
@require_any_permission("VIEW_TEAM_PERFORMANCE", "VIEW_ALL_PERFORMANCE", "VIEW_DATA_ENTRY_PERFORMANCE")
def performance_route():
    try:
        user = g.current_user
        role_filter = request.args.get("role")

        if role_has_permission(user.role, "VIEW_ALL_PERFORMANCE"):
            rows = performance_service.list_performance(role=role_filter.upper() if role_filter else None)
        elif role_has_permission(user.role, "VIEW_TEAM_PERFORMANCE"):
            team = directory_service.team_of(user.id)
            rows = performance_service.list_performance(user_ids=[agent.id for agent in team])
        else:
            rows = performance_service.list_performance(role=Role.DATA_ENTRY_AGENT.value)

        return jsonify({"performance": rows}), 200
    except Exception:
        current_app.logger.exception("Failed to list performance")
        return jsonify({"error": "Internal server error"}), 500
