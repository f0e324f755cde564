from __future__ import annotations

from ..extensions import db
from orion_pos.time_utils import to_utc_z, utcnow


class Client(db.Model):
    """
    Customer contact card.

    Clients can be created from the clients screen or on the fly at
    checkout (name + phone). Deleting a client keeps its sales; the
    sale's client_id is nulled.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True, index=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }
