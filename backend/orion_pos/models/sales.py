from __future__ import annotations

from ..extensions import db
from orion_pos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Completed sale (invoice header).

    A sale is written once at checkout and can only be deleted afterwards.
    Deleting it goes through inventory_service.reverse_sale so the ledger
    restores the stock its items consumed.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "FAC-20250114-153012")
    invoice_number = db.Column(db.String(64), nullable=False)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default="percent")  # percent | fixed
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    user = db.relationship("User")
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "client_phone": self.client.phone if self.client else None,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line item on a sale; name, price and cost are snapshots taken at checkout."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Purchase cost at the moment of sale, for profit reporting
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
