# Overview: Flask API routes for expenses and financial goals; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..models import Expense, FinancialGoal
from ..services import treasury_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload, error_response
from ..decorators import require_auth, require_permission

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"description", "amount_cents", "type", "category", "status"},
    required_on_create={"description", "amount_cents"},
)

GOAL_POLICY = ModelValidationPolicy(
    writable_fields={"name", "target_amount_cents", "current_amount_cents", "deadline", "status"},
    required_on_create={"name", "target_amount_cents"},
)

treasury_bp = Blueprint("treasury", __name__, url_prefix="/api")


# =============================================================================
# EXPENSES
# =============================================================================

@treasury_bp.get("/expenses")
@require_auth
@require_permission("MANAGE_TREASURY")
def list_expenses():
    """Query params: status (pending|validated), type (realized|planned)."""
    expenses = treasury_service.list_expenses(
        status=request.args.get("status") or None,
        expense_type=request.args.get("type") or None,
    )
    return {"items": [e.to_dict() for e in expenses], "count": len(expenses)}


@treasury_bp.post("/expenses")
@require_auth
@require_permission("MANAGE_TREASURY")
def create_expense():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        expense = treasury_service.create_expense(patch)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return {"error": "Internal server error"}, 500
    return expense.to_dict(), 201


@treasury_bp.put("/expenses/<int:expense_id>")
@require_auth
@require_permission("MANAGE_TREASURY")
def update_expense(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True, ignore_unknown=True
        )
        expense = treasury_service.update_expense(expense_id, patch)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return {"error": "Internal server error"}, 500
    return expense.to_dict(), 200


@treasury_bp.delete("/expenses/<int:expense_id>")
@require_auth
@require_permission("MANAGE_TREASURY")
def delete_expense(expense_id: int):
    try:
        treasury_service.delete_expense(expense_id)
    except ValidationError as e:
        return error_response(e)
    return {"ok": True}, 200


# =============================================================================
# FINANCIAL GOALS
# =============================================================================

@treasury_bp.get("/financial-goals")
@require_auth
@require_permission("MANAGE_TREASURY")
def list_goals():
    goals = treasury_service.list_goals()
    return {"items": [goal.to_dict() for goal in goals], "count": len(goals)}


@treasury_bp.post("/financial-goals")
@require_auth
@require_permission("MANAGE_TREASURY")
def create_goal():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=FinancialGoal, payload=payload, policy=GOAL_POLICY, partial=False)
        goal = treasury_service.create_goal(patch)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create financial goal")
        return {"error": "Internal server error"}, 500
    return goal.to_dict(), 201


@treasury_bp.put("/financial-goals/<int:goal_id>")
@require_auth
@require_permission("MANAGE_TREASURY")
def update_goal(goal_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=FinancialGoal, payload=payload, policy=GOAL_POLICY, partial=True, ignore_unknown=True
        )
        goal = treasury_service.update_goal(goal_id, patch)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update financial goal")
        return {"error": "Internal server error"}, 500
    return goal.to_dict(), 200


@treasury_bp.delete("/financial-goals/<int:goal_id>")
@require_auth
@require_permission("MANAGE_TREASURY")
def delete_goal(goal_id: int):
    try:
        treasury_service.delete_goal(goal_id)
    except ValidationError as e:
        return error_response(e)
    return {"ok": True}, 200
