# backend/onboarding/routes/exports.py
"""
Provisioning exports of finally validated data.

- GET /api/exports/merchants?format=xlsx|csv
- GET /api/exports/operators?format=xlsx|csv
"""

from flask import Blueprint, Response, request, jsonify, current_app

from ..errors import OnboardingError, error_response
from ..services import export_service
from ..decorators import require_auth, require_permission


exports_bp = Blueprint("exports", __name__, url_prefix="/api/exports")


def _export(kind: str):
    try:
        payload, mimetype, filename = export_service.render(
            kind, request.args.get("format", "xlsx")
        )
        return Response(
            payload,
            mimetype=mimetype,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    except OnboardingError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to export %s", kind)
        return jsonify({"error": "Internal server error"}), 500


@exports_bp.get("/merchants")
@require_auth
@require_permission("EXPORT_MERCHANTS")
def export_merchants_route():
    return _export("merchants")


@exports_bp.get("/operators")
@require_auth
@require_permission("EXPORT_MERCHANTS")
def export_operators_route():
    return _export("operators")
