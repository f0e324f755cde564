# Overview: Flask API routes for the stock movement log; parses input and returns JSON responses.

from flask import Blueprint, request, g, current_app

from ..services import inventory_service
from ..validation import ValidationError, error_response, coerce_int
from ..decorators import require_auth, require_permission

stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")


@stock_movements_bp.get("")
@require_auth
@require_permission("VIEW_STOCK_MOVEMENTS")
def list_movements():
    """
    Query params:
    - period: today | week | month (optional, business timezone)
    - product_id: int (optional)
    - limit: int (optional, max 1000)
    """
    try:
        movements = inventory_service.list_movements(
            period=request.args.get("period") or None,
            product_id=request.args.get("product_id", type=int),
            limit=request.args.get("limit", type=int),
        )
    except ValidationError as e:
        return error_response(e)
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@stock_movements_bp.post("")
@require_auth
@require_permission("MANAGE_STOCK_MOVEMENTS")
def create_movement():
    """
    Record a manual movement.

    Request body:
    - product_id: int (required)
    - movement_type: "entry" | "exit" (required)
    - quantity: int > 0 (required)
    - reason: str (optional, defaults to "manual movement")
    """
    payload = request.get_json(silent=True) or {}
    try:
        if payload.get("product_id") in (None, ""):
            raise ValidationError("product_id is required")
        movement, new_quantity = inventory_service.record_manual_movement(
            coerce_int("product_id", payload.get("product_id")),
            payload.get("movement_type"),
            payload.get("quantity"),
            payload.get("reason"),
            g.current_user.id,
        )
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return {"error": "Internal server error"}, 500

    return {"movement": movement.to_dict(), "new_quantity": new_quantity}, 201


@stock_movements_bp.delete("/<int:movement_id>")
@require_auth
@require_permission("MANAGE_STOCK_MOVEMENTS")
def delete_movement(movement_id: int):
    """Delete a movement and apply the compensating quantity change."""
    try:
        result = inventory_service.delete_movement(movement_id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete stock movement")
        return {"error": "Internal server error"}, 500

    return {"ok": True, **result}, 200
