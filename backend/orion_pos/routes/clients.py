# Overview: Flask API routes for clients; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..models import Client
from ..services import clients_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload, error_response
from ..decorators import require_auth, require_permission

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address"},
    required_on_create={"name"},
)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
@require_permission("MANAGE_CLIENTS")
def list_clients():
    clients = clients_service.list_clients(search=request.args.get("search"))
    return {"items": [c.to_dict() for c in clients], "count": len(clients)}


@clients_bp.get("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def get_client(client_id: int):
    """Client card with purchase history."""
    try:
        return clients_service.get_client_with_sales(client_id)
    except ValidationError as e:
        return error_response(e)


@clients_bp.post("")
@require_auth
@require_permission("MANAGE_CLIENTS")
def create_client():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
        client = clients_service.create_client(patch)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create client")
        return {"error": "Internal server error"}, 500

    return client.to_dict(), 201


@clients_bp.put("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def update_client(client_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Client, payload=payload, policy=CLIENT_POLICY, partial=True, ignore_unknown=True
        )
        client = clients_service.update_client(client_id, patch)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update client")
        return {"error": "Internal server error"}, 500

    return client.to_dict(), 200


@clients_bp.delete("/<int:client_id>")
@require_auth
@require_permission("DELETE_CLIENTS")
def delete_client(client_id: int):
    try:
        clients_service.delete_client(client_id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete client")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200
