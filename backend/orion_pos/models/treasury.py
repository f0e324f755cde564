from __future__ import annotations

from ..extensions import db
from orion_pos.time_utils import to_utc_z, utcnow


class Expense(db.Model):
    """
    Outgoing money, either already spent (realized) or budgeted (planned).

    Only validated expenses are deducted from the dashboard's net profit.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, default="realized")    # realized | planned
    category = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending")   # pending | validated

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "category": self.category,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class FinancialGoal(db.Model):
    """Savings target tracked on the treasury screen."""
    __tablename__ = "financial_goals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    target_amount_cents = db.Column(db.Integer, nullable=False)
    current_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    deadline = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active")  # active | achieved | cancelled

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def progress_percent(self) -> int:
        if not self.target_amount_cents:
            return 0
        return min(100, (self.current_amount_cents or 0) * 100 // self.target_amount_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "target_amount_cents": self.target_amount_cents,
            "current_amount_cents": self.current_amount_cents,
            "progress_percent": self.progress_percent,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
