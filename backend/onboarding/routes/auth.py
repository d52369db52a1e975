# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/onboarding/routes/auth.py
"""
Authentication API routes

Accounts are created by operators through the CLI (flask users create);
there is no self-registration.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..permissions import get_role_permissions
from ..services import auth_service
from ..services import session_service
from ..services import activity_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
        {"matricule": "AG001", "password": "..."}

    Response:
        {"user": {...}, "permissions": [...], "token": "...", "session": {...}}

    Error responses:
        400: matricule and password required
        401: Invalid credentials
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            data = {}
        matricule = (data.get("matricule") or "").strip()
        password = data.get("password")

        if not all([matricule, password]):
            return jsonify({"error": "matricule and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(matricule, password)

        if not user:
            activity_service.log_activity(
                "LOGIN_FAILED",
                matricule=matricule,
                status_code=401,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        return jsonify({
            "user": user.to_dict(),
            "permissions": sorted(get_role_permissions(user.role)),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the presented session token."""
    try:
        token = request.headers.get("Authorization", "").split(" ", 1)[1]
        session_service.revoke_session(token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user and the capabilities of their role."""
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
    }), 200
