# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/orion_pos/routes/auth.py
"""
Authentication API routes

- Login issues an opaque bearer token (see session_service)
- Logout revokes the presented token
- /session returns the current user and their permission codes
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..permissions import get_role_permissions
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info, permissions and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = (data.get("username") or "").strip()
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username and password required", "kind": "validation_error"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
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
        session_service.revoke_session(g.auth_token, reason="User logout")
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/session")
@require_auth
def session_route():
    """Current user and permission codes (frontend RBAC filtering)."""
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
        "session": g.session_context.session.to_dict(),
    }), 200
