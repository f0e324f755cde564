# backend/orion_pos/services/products_service.py
"""
Catalog reads and product deletion.

Quantity-changing writes (create, edit, restock) live in
inventory_service so they always log a stock movement.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product, SaleItem, StockMovement
from ..validation import NotFoundError
from .concurrency import run_with_retry, unit_of_work


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    include_cost: bool = True,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing ordered by name, with optional filters and pagination.

    Args:
        search: case-insensitive match on name or exact barcode
        category: exact category label
        include_cost: False hides purchase_price_cents (cashier view)
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)

    if search:
        term = search.strip()
        base_query = base_query.filter(
            or_(Product.name.ilike(f"%{term}%"), Product.barcode == term)
        )
    if category:
        base_query = base_query.filter(Product.category == category)

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict(include_cost=include_cost) for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict(include_cost=include_cost) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int, *, include_cost: bool = True) -> dict:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product.to_dict(include_cost=include_cost)


def list_low_stock(*, include_cost: bool = True) -> list[dict]:
    """Products at or below their min_stock threshold, emptiest first."""
    products = (
        db.session.query(Product)
        .filter(Product.quantity <= Product.min_stock)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )
    return [p.to_dict(include_cost=include_cost) for p in products]


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.category.isnot(None), Product.category != "")
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [r[0] for r in rows]


def delete_product(product_id: int) -> bool:
    """
    Hard-delete a product.

    Movement and sale-item history is kept: their product_id is nulled and
    the denormalized product_name stays readable. No movement is logged.
    """
    def _op():
        with unit_of_work():
            product = db.session.query(Product).filter_by(id=product_id).first()
            if product is None:
                raise NotFoundError("Product not found")

            db.session.query(StockMovement).filter(
                StockMovement.product_id == product_id
            ).update({StockMovement.product_id: None}, synchronize_session=False)
            db.session.query(SaleItem).filter(
                SaleItem.product_id == product_id
            ).update({SaleItem.product_id: None}, synchronize_session=False)

            db.session.delete(product)
        return True

    deleted = run_with_retry(_op)
    current_app.logger.info("Product %s deleted", product_id)
    return deleted
