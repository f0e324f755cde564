# Overview: Flask API routes for the dashboard; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_auth, require_permission

reports_bp = Blueprint("reports", __name__, url_prefix="/api/dashboard")


@reports_bp.get("/stats")
@require_auth
@require_permission("VIEW_DASHBOARD")
def dashboard_stats():
    try:
        return reporting_service.dashboard_stats()
    except Exception:
        current_app.logger.exception("Failed to compute dashboard stats")
        return {"error": "Internal server error"}, 500


@reports_bp.get("/chart")
@require_auth
@require_permission("VIEW_DASHBOARD")
def revenue_chart():
    """Query params: period = week | month (default month)."""
    try:
        rows = reporting_service.revenue_chart(request.args.get("period") or "month")
    except ReportError as e:
        return {"error": str(e), "kind": "validation_error"}, 400
    return {"items": rows, "count": len(rows)}


@reports_bp.get("/top-products")
@require_auth
@require_permission("VIEW_PRODUCTS")
def top_products():
    rows = reporting_service.top_products()
    return {"items": rows, "count": len(rows)}
