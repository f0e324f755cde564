from __future__ import annotations

from flask import Blueprint, request, current_app

from ..decorators import require_auth, require_permission
from ..models import CompanyConfig
from ..services import settings_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload, error_response


COMPANY_CONFIG_POLICY = ModelValidationPolicy(
    writable_fields=set(settings_service.CONFIG_MUTABLE_FIELDS),
)

settings_bp = Blueprint("settings", __name__, url_prefix="/api")


@settings_bp.get("/config")
@require_auth
def get_config():
    return settings_service.get_company_config()


@settings_bp.put("/config")
@require_auth
@require_permission("MANAGE_CONFIG")
def update_config():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=CompanyConfig,
            payload=payload,
            policy=COMPANY_CONFIG_POLICY,
            partial=True,
            ignore_unknown=True,
        )
        return settings_service.update_company_config(patch)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update company config")
        return {"error": "Internal server error"}, 500
