# Overview: Stock ledger; keeps Product.quantity and the StockMovement log consistent.

# backend/orion_pos/services/inventory_service.py
"""
Orion POS Stock Ledger Invariants (authoritative)

Inventory model:
- Product.quantity is the on-hand balance; StockMovement rows are the log.
- Every quantity change appends exactly one movement in the same transaction:
  entry (+magnitude) or exit (-magnitude), magnitude always > 0.
- Folding a product's movements from zero (entry +, exit -) in id order
  gives its stored quantity. Product creation logs its initial quantity as
  an entry, so the fold needs no separate starting balance.

Business invariants:
- An exit may never take quantity below zero (checkout may opt out with
  ALLOW_OVERSELL).
- Validation (missing/invalid quantity, unknown product, insufficient stock)
  runs before any write, so a retried operation never double-applies.
- Movements are never updated. Deleting one applies the compensating
  quantity change (entry deletion is floored at zero).

Time semantics:
- created_at is UTC-naive; "today/week/month" filters are computed in the
  business timezone (BUSINESS_TIMEZONE).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Product, Sale, StockMovement
from ..time_utils import period_start
from ..validation import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    enforce_rules_movement_type,
    enforce_rules_positive_quantity,
    enforce_rules_product,
)
from .concurrency import lock_for_update, run_with_retry, unit_of_work


REASON_INITIAL_STOCK = "initial stock"
REASON_ADMIN_ADJUSTMENT = "admin adjustment"
REASON_REPLENISHMENT = "replenishment"
REASON_MANUAL_MOVEMENT = "manual movement"
REASON_SALE = "sale {invoice_number}"
REASON_SALE_CANCELLATION = "sale cancellation {invoice_number}"

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "purchase_price_cents",
    "sale_price_cents",
    "quantity",
    "min_stock",
    "image",
    "barcode",
}

MAX_MOVEMENT_LIST_LIMIT = 1000


@dataclass
class ReconcileRow:
    product_id: int
    product_name: str
    stored_quantity: int
    ledger_quantity: int

    @property
    def matches(self) -> bool:
        return self.stored_quantity == self.ledger_quantity


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _append_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    reason: str,
    acting_user_id: int | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        product_name=product.name,
        movement_type=movement_type,
        quantity=quantity,
        reason=reason,
        user_id=acting_user_id,
    )
    db.session.add(movement)
    return movement


def _apply_entry(product: Product, quantity: int, reason: str, acting_user_id: int | None) -> StockMovement:
    product.quantity = (product.quantity or 0) + quantity
    return _append_movement(product, "entry", quantity, reason, acting_user_id)


def _apply_exit(
    product: Product,
    quantity: int,
    reason: str,
    acting_user_id: int | None,
    *,
    allow_negative: bool = False,
) -> StockMovement:
    on_hand = product.quantity or 0
    if not allow_negative and on_hand - quantity < 0:
        raise InsufficientStockError(
            "Insufficient stock",
            details={
                "product_id": product.id,
                "product_name": product.name,
                "requested": quantity,
                "on_hand": on_hand,
            },
        )
    product.quantity = on_hand - quantity
    return _append_movement(product, "exit", quantity, reason, acting_user_id)


def create_product(patch: dict, acting_user_id: int | None) -> Product:
    """
    Create a product and log its initial quantity as an entry.

    patch is a validated dict (see routes/products.PRODUCT_POLICY).
    """
    patch = dict(patch)
    enforce_rules_product(patch)
    if not patch.get("name"):
        raise ValidationError("name is required")
    if patch.get("sale_price_cents") is None:
        raise ValidationError("sale_price_cents is required")

    initial_quantity = patch.pop("quantity", None) or 0
    if patch.get("min_stock") is None:
        patch["min_stock"] = current_app.config.get("LOW_STOCK_DEFAULT", 5)
    if patch.get("purchase_price_cents") is None:
        patch["purchase_price_cents"] = 0

    def _op():
        with unit_of_work():
            product = Product(quantity=initial_quantity)
            for k, v in patch.items():
                if k in PRODUCT_MUTABLE_FIELDS:
                    setattr(product, k, v)
            db.session.add(product)
            db.session.flush()

            if initial_quantity > 0:
                _append_movement(product, "entry", initial_quantity, REASON_INITIAL_STOCK, acting_user_id)
        return product

    product = run_with_retry(_op)
    current_app.logger.info(
        "Product %s created with initial quantity %s by user %s",
        product.id, initial_quantity, acting_user_id,
    )
    return product


def edit_product(product_id: int, patch: dict, acting_user_id: int | None) -> Product:
    """
    Apply a partial edit. A changed quantity is logged as an admin adjustment
    (entry or exit of the difference) named after the product's edited name.
    """
    patch = dict(patch)
    enforce_rules_product(patch)

    def _op():
        with unit_of_work():
            product = get_product(product_id, lock=True)
            old_quantity = product.quantity or 0
            new_quantity = patch.get("quantity", old_quantity)

            for k, v in patch.items():
                if k in PRODUCT_MUTABLE_FIELDS and k != "quantity":
                    setattr(product, k, v)

            diff = new_quantity - old_quantity
            if diff:
                product.quantity = new_quantity
                _append_movement(
                    product,
                    "entry" if diff > 0 else "exit",
                    abs(diff),
                    REASON_ADMIN_ADJUSTMENT,
                    acting_user_id,
                )
        return product, diff

    product, diff = run_with_retry(_op)
    if diff:
        current_app.logger.info(
            "Product %s quantity adjusted by %+d by user %s", product_id, diff, acting_user_id,
        )
    return product


def quick_restock(product_id: int, quantity, acting_user_id: int | None) -> int:
    """Add stock to a product. Returns the new on-hand quantity."""
    qty = enforce_rules_positive_quantity(quantity)

    def _op():
        with unit_of_work():
            product = get_product(product_id, lock=True)
            _apply_entry(product, qty, REASON_REPLENISHMENT, acting_user_id)
            new_quantity = product.quantity
        return new_quantity

    new_quantity = run_with_retry(_op)
    current_app.logger.info("Product %s restocked +%s by user %s", product_id, qty, acting_user_id)
    return new_quantity


def record_manual_movement(
    product_id: int,
    movement_type,
    quantity,
    reason: str | None,
    acting_user_id: int | None,
) -> tuple[StockMovement, int]:
    """
    Privileged direct movement. An exit larger than on-hand raises
    InsufficientStockError and changes nothing.
    """
    movement_type = enforce_rules_movement_type(movement_type)
    qty = enforce_rules_positive_quantity(quantity)
    reason = (reason or "").strip() or REASON_MANUAL_MOVEMENT

    def _op():
        with unit_of_work():
            product = get_product(product_id, lock=True)
            if movement_type == "entry":
                movement = _apply_entry(product, qty, reason, acting_user_id)
            else:
                movement = _apply_exit(product, qty, reason, acting_user_id)
            new_quantity = product.quantity
        return movement, new_quantity

    movement, new_quantity = run_with_retry(_op)
    current_app.logger.info(
        "Manual %s of %s on product %s by user %s", movement_type, qty, product_id, acting_user_id,
    )
    return movement, new_quantity


def record_sale_movements(
    lines: Iterable,
    invoice_number: str,
    acting_user_id: int | None,
    *,
    allow_oversell: bool = False,
) -> list[StockMovement]:
    """
    Inner step of checkout: one exit per line, reason "sale <invoice>".

    Each line needs product_id and quantity attributes (SaleItem rows).
    Runs inside the caller's unit of work; does not commit.
    """
    reason = REASON_SALE.format(invoice_number=invoice_number)
    movements = []
    for line in lines:
        product = get_product(line.product_id, lock=True)
        movements.append(
            _apply_exit(product, line.quantity, reason, acting_user_id, allow_negative=allow_oversell)
        )
    db.session.flush()
    return movements


def restore_sale_movements(sale: Sale, acting_user_id: int | None) -> list[StockMovement]:
    """
    Inner step of sale cancellation: one entry per item whose product still
    exists. Does not commit.
    """
    reason = REASON_SALE_CANCELLATION.format(invoice_number=sale.invoice_number)
    movements = []
    for item in sale.items:
        if item.product_id is None:
            continue
        product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
        if product is None:
            continue
        movements.append(_apply_entry(product, item.quantity, reason, acting_user_id))
    return movements


def reverse_sale(sale_id: int, acting_user_id: int | None) -> dict:
    """
    Delete a sale: restore the stock its items consumed, then remove the
    items and the header.
    """
    def _op():
        with unit_of_work():
            sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
            if sale is None:
                raise NotFoundError("Sale not found")
            invoice_number = sale.invoice_number
            movements = restore_sale_movements(sale, acting_user_id)
            db.session.delete(sale)
        return invoice_number, len(movements)

    invoice_number, restored = run_with_retry(_op)
    current_app.logger.info(
        "Sale %s (%s) deleted by user %s, %s line(s) restocked",
        sale_id, invoice_number, acting_user_id, restored,
    )
    return {"sale_id": sale_id, "invoice_number": invoice_number, "restored_lines": restored}


def delete_movement(movement_id: int) -> dict:
    """
    Delete a movement and undo its effect on the product.

    entry: quantity -= magnitude, floored at zero unless the product was
           already oversold (then it only moves further down)
    exit: quantity += magnitude
    Orphaned movements (product deleted) are just removed.
    """
    def _op():
        with unit_of_work():
            movement = lock_for_update(db.session.query(StockMovement).filter_by(id=movement_id)).first()
            if movement is None:
                raise NotFoundError("Movement not found")

            product = None
            if movement.product_id is not None:
                product = lock_for_update(db.session.query(Product).filter_by(id=movement.product_id)).first()

            new_quantity = None
            if product is not None:
                current = product.quantity or 0
                if movement.movement_type == "entry":
                    remaining = current - movement.quantity
                    product.quantity = max(0, remaining) if current >= 0 else remaining
                else:
                    product.quantity = current + movement.quantity
                new_quantity = product.quantity

            product_id = movement.product_id
            db.session.delete(movement)
        return product_id, new_quantity

    product_id, new_quantity = run_with_retry(_op)
    current_app.logger.info("Movement %s deleted (product %s now %s)", movement_id, product_id, new_quantity)
    return {"movement_id": movement_id, "product_id": product_id, "quantity": new_quantity}


def list_movements(
    period: str | None = None,
    product_id: int | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    """Movements newest first, with the acting user eager-loaded."""
    tz_name = current_app.config["BUSINESS_TIMEZONE"]
    try:
        since = period_start(period, tz_name)
    except ValueError as exc:
        raise ValidationError(str(exc))

    q = db.session.query(StockMovement).options(joinedload(StockMovement.user))
    if since is not None:
        q = q.filter(StockMovement.created_at >= since)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)

    q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if limit is not None:
        q = q.limit(max(1, min(limit, MAX_MOVEMENT_LIST_LIMIT)))
    return q.all()


def _signed_quantity_expr():
    return case(
        (StockMovement.movement_type == "entry", StockMovement.quantity),
        else_=-StockMovement.quantity,
    )


def ledger_quantity(product_id: int) -> int:
    """Fold of a product's movement log (entries minus exits)."""
    total = db.session.query(
        func.coalesce(func.sum(_signed_quantity_expr()), 0)
    ).filter(StockMovement.product_id == product_id).scalar()
    return int(total or 0)


def reconcile_products() -> list[ReconcileRow]:
    """Stored vs. folded quantity for every product, ordered by id."""
    folded = dict(
        db.session.query(StockMovement.product_id, func.sum(_signed_quantity_expr()))
        .filter(StockMovement.product_id.isnot(None))
        .group_by(StockMovement.product_id)
        .all()
    )

    rows = []
    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        rows.append(ReconcileRow(
            product_id=product.id,
            product_name=product.name,
            stored_quantity=product.quantity or 0,
            ledger_quantity=int(folded.get(product.id) or 0),
        ))
    return rows
