# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/orion_pos/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS permission
- Write operations require MANAGE_PRODUCTS permission
- Quick restock requires RESTOCK_PRODUCTS (cashiers hold it)
- purchase_price_cents is only returned to holders of VIEW_COSTS
"""
from flask import Blueprint, request, g, current_app
from ..services import inventory_service, products_service
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    error_response,
)
from ..decorators import require_auth, require_permission, current_user_can

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category",
        "purchase_price_cents",
        "sale_price_cents",
        "quantity",
        "min_stock",
        "image",
        "barcode",
    },
    required_on_create={"name", "sale_price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products():
    """
    List products ordered by name.

    Query params:
    - search: str (optional) - name contains / barcode equals
    - category: str (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        include_cost=current_user_can("VIEW_COSTS"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/products/low-stock")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_low_stock():
    items = products_service.list_low_stock(include_cost=current_user_can("VIEW_COSTS"))
    return {"items": items, "count": len(items)}


@products_bp.get("/products/<int:product_id>")
@require_auth
@require_permission("VIEW_PRODUCTS")
def get_product(product_id: int):
    try:
        return products_service.get_product(product_id, include_cost=current_user_can("VIEW_COSTS"))
    except ValidationError as e:
        return error_response(e)


@products_bp.post("/products")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a new product. A positive initial quantity is logged as an
    "initial stock" entry.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = inventory_service.create_product(patch, g.current_user.id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return product.to_dict(), 201


@products_bp.put("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    """
    Update a product. A changed quantity is logged as an "admin adjustment".

    Read-only keys echoed back by form clients (id, created_at, ...) are ignored.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True, ignore_unknown=True
        )
        enforce_rules_product(patch)
        product = inventory_service.edit_product(product_id, patch, g.current_user.id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return product.to_dict(), 200


@products_bp.delete("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200


@products_bp.post("/products/<int:product_id>/add-stock")
@require_auth
@require_permission("RESTOCK_PRODUCTS")
def add_stock_route(product_id: int):
    """Quick restock. Body: {"quantity": <int > 0>}."""
    payload = request.get_json(silent=True) or {}

    try:
        new_quantity = inventory_service.quick_restock(product_id, payload.get("quantity"), g.current_user.id)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock product")
        return {"error": "Internal server error"}, 500

    return {"ok": True, "product_id": product_id, "new_quantity": new_quantity}, 200


@products_bp.get("/categories")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_categories():
    return {"categories": products_service.list_categories()}
