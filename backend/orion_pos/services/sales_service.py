"""
Sales Service - checkout and sale history

WHY: A sale is written in one unit of work together with its stock exits.
Prices and costs are read from the catalog at checkout time and snapshotted
on the sale items; the client never sends prices.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Client, Sale, SaleItem
from ..time_utils import local_now, period_start, utcnow
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_discount,
    enforce_rules_positive_quantity,
)
from .clients_service import create_client_inner
from .concurrency import run_with_retry, unit_of_work
from .inventory_service import get_product, record_sale_movements


INVOICE_PREFIX = "FAC"
MAX_SALE_LIST_LIMIT = 1000
INVOICE_ALLOCATION_ATTEMPTS = 5


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


def parse_cart(items) -> list[CartLine]:
    """Validate the request cart: a non-empty list of {product_id, quantity}."""
    if not items or not isinstance(items, list):
        raise ValidationError("Cart is empty")

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("product_id", raw.get("id"))
        if product_id in (None, ""):
            raise ValidationError(f"items[{index}].product_id is required")
        lines.append(CartLine(
            product_id=coerce_int(f"items[{index}].product_id", product_id),
            quantity=enforce_rules_positive_quantity(raw.get("quantity"), f"items[{index}].quantity"),
        ))
    return lines


def compute_discount_cents(subtotal_cents: int, discount_type: str, discount_value: int) -> int:
    """
    percent: subtotal * value / 100, rounded half-up
    fixed: value (cents)
    Never more than the subtotal.
    """
    if discount_type == "percent":
        discount = (subtotal_cents * discount_value + 50) // 100
    else:
        discount = discount_value
    return min(discount, subtotal_cents)


def generate_invoice_number(tz_name: str, now=None) -> str:
    """FAC-YYYYMMDD-HHMMSS on the business-local clock."""
    local = local_now(tz_name, now)
    return f"{INVOICE_PREFIX}-{local:%Y%m%d-%H%M%S}"


def _invoice_exists(invoice_number: str) -> bool:
    return db.session.query(Sale.id).filter_by(invoice_number=invoice_number).first() is not None


def _unique_invoice_number(base: str) -> str:
    candidate = base
    suffix = 2
    while _invoice_exists(candidate):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def _check_stock(products: dict, requested: dict) -> None:
    """All-lines stock check so the error lists every short product at once."""
    insufficient = []
    for product_id, qty in requested.items():
        product = products[product_id]
        on_hand = product.quantity or 0
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "product_name": product.name,
                "requested": qty,
                "on_hand": on_hand,
            })
    if insufficient:
        raise InsufficientStockError("Insufficient stock", details={"items": insufficient})


def checkout(payload: dict, acting_user_id: int | None) -> Sale:
    """
    Create a sale from a cart and apply its stock exits.

    payload keys: items, client_id | (client_name, client_phone),
    discount_type, discount_value, payment_method, invoice_number.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    cart = parse_cart(payload.get("items"))
    discount_type, discount_value = enforce_rules_discount(
        payload.get("discount_type"), payload.get("discount_value")
    )

    payment_method = str(payload.get("payment_method") or "cash").strip() or "cash"
    if len(payment_method) > 32:
        raise ValidationError("payment_method exceeds max length 32")

    requested_invoice = str(payload.get("invoice_number") or "").strip() or None
    if requested_invoice and len(requested_invoice) > 64:
        raise ValidationError("invoice_number exceeds max length 64")

    client_id = payload.get("client_id")
    client_id = None if client_id in (None, "") else coerce_int("client_id", client_id)
    client_name = str(payload.get("client_name") or "").strip()
    client_phone = str(payload.get("client_phone") or "").strip()

    allow_oversell = bool(current_app.config.get("ALLOW_OVERSELL"))
    tz_name = current_app.config["BUSINESS_TIMEZONE"]

    def _op():
        with unit_of_work():
            products = {}
            requested: dict[int, int] = {}
            for line in cart:
                if line.product_id not in products:
                    products[line.product_id] = get_product(line.product_id, lock=True)
                requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

            if not allow_oversell:
                _check_stock(products, requested)

            if client_id is not None:
                client = db.session.query(Client).filter_by(id=client_id).first()
                if client is None:
                    raise NotFoundError("Client not found")
                resolved_client_id = client.id
            elif client_name:
                resolved_client_id = create_client_inner(client_name, client_phone).id
            else:
                resolved_client_id = None

            now = utcnow()
            if requested_invoice:
                if _invoice_exists(requested_invoice):
                    raise ConflictError("Invoice number already exists")
                invoice_number = requested_invoice
            else:
                invoice_number = _unique_invoice_number(generate_invoice_number(tz_name, now))

            sale = Sale(
                invoice_number=invoice_number,
                client_id=resolved_client_id,
                user_id=acting_user_id,
                discount_type=discount_type,
                discount_value=discount_value,
                payment_method=payment_method,
                created_at=now,
            )
            db.session.add(sale)
            # A concurrent writer may commit the same number after the check above
            try:
                db.session.flush()
            except IntegrityError as exc:
                if requested_invoice:
                    raise ConflictError("Invoice number already exists") from exc
                raise

            subtotal = 0
            for line in cart:
                product = products[line.product_id]
                line_total = product.sale_price_cents * line.quantity
                subtotal += line_total
                sale.items.append(SaleItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price_cents=product.sale_price_cents,
                    line_total_cents=line_total,
                    unit_cost_cents=product.purchase_price_cents or 0,
                ))

            discount = compute_discount_cents(subtotal, discount_type, discount_value)
            sale.subtotal_cents = subtotal
            sale.discount_cents = discount
            sale.total_cents = max(0, subtotal - discount)
            db.session.flush()

            record_sale_movements(
                sale.items, invoice_number, acting_user_id, allow_oversell=allow_oversell
            )
        return sale

    for attempt in range(INVOICE_ALLOCATION_ATTEMPTS):
        try:
            sale = run_with_retry(_op)
            break
        except IntegrityError:
            db.session.rollback()
            if attempt >= INVOICE_ALLOCATION_ATTEMPTS - 1:
                raise ConflictError("Could not allocate a unique invoice number")
            current_app.logger.warning(
                "Generated invoice number taken by a concurrent sale, retrying (attempt %s)", attempt + 1
            )

    current_app.logger.info(
        "Sale %s (%s) recorded by user %s: %s line(s), total %s",
        sale.id, sale.invoice_number, acting_user_id, len(cart), sale.total_cents,
    )
    return sale


def list_sales(
    period: str | None = None,
    client_id: int | None = None,
    limit: int | None = None,
) -> list[Sale]:
    """Sales newest first, with client and user eager-loaded."""
    try:
        since = period_start(period, current_app.config["BUSINESS_TIMEZONE"])
    except ValueError as exc:
        raise ValidationError(str(exc))

    q = db.session.query(Sale).options(joinedload(Sale.client), joinedload(Sale.user))
    if since is not None:
        q = q.filter(Sale.created_at >= since)
    if client_id is not None:
        q = q.filter(Sale.client_id == client_id)

    q = q.order_by(Sale.created_at.desc(), Sale.id.desc())
    if limit is not None:
        q = q.limit(max(1, min(limit, MAX_SALE_LIST_LIMIT)))
    return q.all()


def get_sale(sale_id: int) -> dict:
    sale = (
        db.session.query(Sale)
        .options(selectinload(Sale.items), joinedload(Sale.client), joinedload(Sale.user))
        .filter_by(id=sale_id)
        .first()
    )
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale.to_dict(include_items=True)
