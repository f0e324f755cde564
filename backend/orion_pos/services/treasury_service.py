# Overview: Service-layer operations for treasury; expenses and financial goals.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Expense, FinancialGoal
from ..validation import NotFoundError, enforce_rules_expense, enforce_rules_goal
from .concurrency import run_with_retry, unit_of_work


EXPENSE_MUTABLE_FIELDS = {"description", "amount_cents", "type", "category", "status"}
GOAL_MUTABLE_FIELDS = {"name", "target_amount_cents", "current_amount_cents", "deadline", "status"}


def list_expenses(status: str | None = None, expense_type: str | None = None) -> list[Expense]:
    q = db.session.query(Expense)
    if status:
        q = q.filter(Expense.status == status)
    if expense_type:
        q = q.filter(Expense.type == expense_type)
    return q.order_by(Expense.created_at.desc(), Expense.id.desc()).all()


def create_expense(patch: dict) -> Expense:
    enforce_rules_expense(patch)

    def _op():
        with unit_of_work():
            expense = Expense()
            for k, v in patch.items():
                if k in EXPENSE_MUTABLE_FIELDS:
                    setattr(expense, k, v)
            db.session.add(expense)
        return expense

    expense = run_with_retry(_op)
    current_app.logger.info("Expense %s recorded (%s cents)", expense.id, expense.amount_cents)
    return expense


def update_expense(expense_id: int, patch: dict) -> Expense:
    enforce_rules_expense(patch)

    def _op():
        with unit_of_work():
            expense = db.session.query(Expense).filter_by(id=expense_id).first()
            if expense is None:
                raise NotFoundError("Expense not found")
            for k, v in patch.items():
                if k in EXPENSE_MUTABLE_FIELDS:
                    setattr(expense, k, v)
        return expense

    return run_with_retry(_op)


def delete_expense(expense_id: int) -> None:
    def _op():
        with unit_of_work():
            deleted = db.session.query(Expense).filter_by(id=expense_id).delete()
            if not deleted:
                raise NotFoundError("Expense not found")

    run_with_retry(_op)


def list_goals() -> list[FinancialGoal]:
    return (
        db.session.query(FinancialGoal)
        .order_by(FinancialGoal.created_at.desc(), FinancialGoal.id.desc())
        .all()
    )


def _auto_achieve(goal: FinancialGoal) -> None:
    # Reaching the target flips an active goal to achieved
    if goal.status == "active" and goal.target_amount_cents and \
            (goal.current_amount_cents or 0) >= goal.target_amount_cents:
        goal.status = "achieved"


def create_goal(patch: dict) -> FinancialGoal:
    enforce_rules_goal(patch)

    def _op():
        with unit_of_work():
            goal = FinancialGoal(current_amount_cents=0, status="active")
            for k, v in patch.items():
                if k in GOAL_MUTABLE_FIELDS:
                    setattr(goal, k, v)
            _auto_achieve(goal)
            db.session.add(goal)
        return goal

    return run_with_retry(_op)


def update_goal(goal_id: int, patch: dict) -> FinancialGoal:
    enforce_rules_goal(patch)

    def _op():
        with unit_of_work():
            goal = db.session.query(FinancialGoal).filter_by(id=goal_id).first()
            if goal is None:
                raise NotFoundError("Financial goal not found")
            for k, v in patch.items():
                if k in GOAL_MUTABLE_FIELDS:
                    setattr(goal, k, v)
            if "status" not in patch:
                _auto_achieve(goal)
        return goal

    return run_with_retry(_op)


def delete_goal(goal_id: int) -> None:
    def _op():
        with unit_of_work():
            deleted = db.session.query(FinancialGoal).filter_by(id=goal_id).delete()
            if not deleted:
                raise NotFoundError("Financial goal not found")

    run_with_retry(_op)
