# Overview: Flask API routes for staff account management; parses input and returns JSON responses.

"""
User management routes (admin only).

- GET/POST /api/users
- PUT/DELETE /api/users/<id>

The default admin cannot be deleted, deactivated or demoted.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import User
from ..services import auth_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload, error_response
from ..decorators import require_auth, require_permission

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

USER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"username", "role", "full_name", "is_active"},
)


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users():
    users = auth_service.list_users()
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Create a new user.

    Request body:
    - username: str (required)
    - password: str (required, min 6 chars)
    - role: "admin" | "cashier" (default cashier)
    - full_name: str (optional)
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password"),
            role=data.get("role"),
            full_name=data.get("full_name"),
        )
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "message": "User created"}), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user(user_id: int):
    """
    Update a user. Omitting password keeps the current one; a new password
    signs the user out everywhere.
    """
    data = dict(request.get_json(silent=True) or {})
    password = data.pop("password", None) or None

    try:
        patch = validate_payload(model=User, payload=data, policy=USER_UPDATE_POLICY, partial=True, ignore_unknown=True)
        user = auth_service.update_user(user_id, patch, password=password)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "message": "User updated"}), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def delete_user(user_id: int):
    try:
        auth_service.delete_user(user_id, acting_user_id=g.current_user.id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200
