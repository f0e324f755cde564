# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales routes.

- POST /api/sales checks out a cart (prices come from the catalog)
- DELETE /api/sales/<id> removes a sale and restocks its items
"""

from flask import Blueprint, request, g, current_app

from ..services import inventory_service, sales_service
from ..validation import ValidationError, error_response
from ..decorators import require_auth, require_permission

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales():
    """
    Query params:
    - period: today | week | month (optional, business timezone)
    - client_id: int (optional)
    - limit: int (optional, max 1000)
    """
    try:
        sales = sales_service.list_sales(
            period=request.args.get("period") or None,
            client_id=request.args.get("client_id", type=int),
            limit=request.args.get("limit", type=int),
        )
    except ValidationError as e:
        return error_response(e)
    return {"items": [s.to_dict() for s in sales], "count": len(sales)}


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale(sale_id: int):
    try:
        return sales_service.get_sale(sale_id)
    except ValidationError as e:
        return error_response(e)


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale():
    """
    Check out a cart.

    Request body:
    - items: [{"product_id": int, "quantity": int}] (required, non-empty)
    - client_id: int, or client_name + client_phone to create one
    - discount_type: "percent" (default) | "fixed"
    - discount_value: int (percent 0..100, or cents)
    - payment_method: str (default "cash")
    - invoice_number: str (optional; generated when omitted)
    """
    payload = request.get_json(silent=True) or {}
    try:
        sale = sales_service.checkout(payload, g.current_user.id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"error": "Internal server error"}, 500

    return sale.to_dict(include_items=True), 201


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_permission("DELETE_SALE")
def delete_sale(sale_id: int):
    try:
        result = inventory_service.reverse_sale(sale_id, g.current_user.id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return {"error": "Internal server error"}, 500

    return {"ok": True, **result}, 200
