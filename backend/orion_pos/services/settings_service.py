from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import CompanyConfig
from ..validation import enforce_rules_company_config
from .concurrency import run_with_retry, unit_of_work


CONFIG_MUTABLE_FIELDS = {
    "name",
    "logo",
    "address",
    "phone",
    "email",
    "website",
    "invoice_header",
    "invoice_footer",
    "currency",
    "tax_rate_bps",
}


def ensure_company_config() -> tuple[CompanyConfig, bool]:
    """Create the singleton row with defaults if missing. Returns (config, created)."""
    config = db.session.get(CompanyConfig, CompanyConfig.SINGLETON_ID)
    if config is not None:
        return config, False
    config = CompanyConfig(id=CompanyConfig.SINGLETON_ID)
    db.session.add(config)
    db.session.commit()
    return config, True


def get_company_config() -> dict:
    config = db.session.get(CompanyConfig, CompanyConfig.SINGLETON_ID)
    if config is None:
        # Unsaved defaults; the row is created on first update or `system init`
        config = CompanyConfig(
            id=CompanyConfig.SINGLETON_ID,
            name="ORION POS",
            invoice_footer="Misaotra tompoko!",
            currency="Ar",
            tax_rate_bps=0,
        )
    return config.to_dict()


def update_company_config(patch: dict) -> dict:
    enforce_rules_company_config(patch)

    def _op():
        with unit_of_work():
            config = db.session.get(CompanyConfig, CompanyConfig.SINGLETON_ID)
            if config is None:
                config = CompanyConfig(id=CompanyConfig.SINGLETON_ID)
                db.session.add(config)
            for k, v in patch.items():
                if k in CONFIG_MUTABLE_FIELDS:
                    setattr(config, k, v)
        return config

    config = run_with_retry(_op)
    current_app.logger.info("Company config updated: %s", ", ".join(sorted(patch.keys())))
    return config.to_dict()
