from __future__ import annotations

from ..extensions import db
from orion_pos.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data.

    QUANTITY OWNERSHIP:
    Product.quantity is a cached balance. Every change to it goes through
    services/inventory_service.py, which appends a StockMovement in the same
    transaction. Folding a product's movements (entry +, exit -) from zero
    gives back the stored quantity.

    version_id is an optimistic-lock counter; concurrent writers get
    StaleDataError and are retried by run_with_retry.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    # Caller-supplied reference (path or URL); uploads are handled elsewhere
    image = db.Column(db.String(512), nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.min_stock or 0)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self, include_cost: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "sale_price_cents": self.sale_price_cents,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "image": self.image,
            "barcode": self.barcode,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_cost:
            data["purchase_price_cents"] = self.purchase_price_cents
        return data


class StockMovement(db.Model):
    """
    One recorded quantity change.

    Rows are never updated. Deleting a row is a compensating operation
    (see inventory_service.delete_movement). product_id is nulled when the
    product is deleted; product_name keeps the history readable.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("movement_type IN ('entry', 'exit')", name="movement_type_valid"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    product_name = db.Column(db.String(255), nullable=False)

    # entry | exit
    movement_type = db.Column(db.String(8), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy=True, passive_deletes=True))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reason": self.reason,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "user_full_name": self.user.full_name if self.user else None,
            "created_at": to_utc_z(self.created_at),
        }
