from __future__ import annotations

from ..extensions import db
from orion_pos.time_utils import to_utc_z, utcnow


class CompanyConfig(db.Model):
    """
    Shop identity printed on invoices.

    Singleton: the row with id=1 is the only one read or written.
    """
    __tablename__ = "company_config"

    SINGLETON_ID = 1

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, default="ORION POS")
    logo = db.Column(db.String(512), nullable=True)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    invoice_header = db.Column(db.Text, nullable=True)
    invoice_footer = db.Column(db.Text, nullable=True, default="Misaotra tompoko!")

    currency = db.Column(db.String(16), nullable=False, default="Ar")
    # Basis points: 2000 = 20.00%
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "logo": self.logo,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
            "invoice_header": self.invoice_header,
            "invoice_footer": self.invoice_footer,
            "currency": self.currency,
            "tax_rate_bps": self.tax_rate_bps,
            "updated_at": to_utc_z(self.updated_at),
        }
