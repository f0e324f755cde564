"""
Treasury (expenses, financial goals) and dashboard reporting tests.
"""

from datetime import timedelta

import pytest

from orion_pos.extensions import db
from orion_pos.services import reporting_service, sales_service, treasury_service
from orion_pos.services.reporting_service import ReportError
from orion_pos.time_utils import local_date, utcnow
from orion_pos.validation import NotFoundError, ValidationError


# =============================================================================
# EXPENSES
# =============================================================================


class TestExpenses:

    def test_defaults_and_filters(self, db_session):
        treasury_service.create_expense({"description": "Loyer", "amount_cents": 50_000})
        treasury_service.create_expense(
            {"description": "Jirama", "amount_cents": 12_000, "type": "planned", "status": "validated"}
        )

        pending = treasury_service.list_expenses(status="pending")
        assert [(e.description, e.type) for e in pending] == [("Loyer", "realized")]
        assert [e.description for e in treasury_service.list_expenses(expense_type="planned")] == ["Jirama"]

    @pytest.mark.parametrize(
        "patch",
        [
            {"description": "X", "amount_cents": 0},
            {"description": "X", "amount_cents": -5},
            {"description": "X", "amount_cents": 10, "status": "paid"},
            {"description": "X", "amount_cents": 10, "type": "someday"},
        ],
    )
    def test_invalid(self, db_session, patch):
        with pytest.raises(ValidationError):
            treasury_service.create_expense(patch)

    def test_update_and_delete(self, db_session):
        expense = treasury_service.create_expense({"description": "Transport", "amount_cents": 3_000})
        updated = treasury_service.update_expense(expense.id, {"status": "validated"})
        assert updated.status == "validated"

        treasury_service.delete_expense(expense.id)
        with pytest.raises(NotFoundError):
            treasury_service.delete_expense(expense.id)


# =============================================================================
# FINANCIAL GOALS
# =============================================================================


class TestGoals:

    def test_progress_and_auto_achieve(self, db_session):
        goal = treasury_service.create_goal({"name": "Frigo", "target_amount_cents": 100_000})
        assert goal.status == "active"
        assert goal.to_dict()["progress_percent"] == 0

        goal = treasury_service.update_goal(goal.id, {"current_amount_cents": 40_000})
        assert goal.to_dict()["progress_percent"] == 40
        assert goal.status == "active"

        goal = treasury_service.update_goal(goal.id, {"current_amount_cents": 120_000})
        assert goal.status == "achieved"
        assert goal.to_dict()["progress_percent"] == 100

    def test_explicit_status_wins(self, db_session):
        goal = treasury_service.create_goal({"name": "Moto", "target_amount_cents": 10})
        goal = treasury_service.update_goal(goal.id, {"current_amount_cents": 50, "status": "cancelled"})
        assert goal.status == "cancelled"

    def test_unknown_goal(self, db_session):
        with pytest.raises(NotFoundError):
            treasury_service.update_goal(12345, {"name": "x"})


class TestTreasuryApi:

    def test_goal_deadline_parsing(self, client, admin_headers):
        resp = client.post(
            "/api/financial-goals",
            json={"name": "Stock de Noel", "target_amount_cents": 500_000, "deadline": "2026-12-15"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["deadline"] == "2026-12-15"

        resp = client.post(
            "/api/financial-goals",
            json={"name": "Bad", "target_amount_cents": 1, "deadline": "15/12/2026"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_expense_crud(self, client, admin_headers):
        resp = client.post("/api/expenses", json={"description": "Sacs", "amount_cents": 2_000}, headers=admin_headers)
        assert resp.status_code == 201
        expense_id = resp.get_json()["id"]

        resp = client.put(f"/api/expenses/{expense_id}", json={"status": "validated"}, headers=admin_headers)
        assert resp.status_code == 200

        data = client.get("/api/expenses?status=validated", headers=admin_headers).get_json()
        assert data["count"] == 1

        assert client.delete(f"/api/expenses/{expense_id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/expenses/{expense_id}", headers=admin_headers).status_code == 404


# =============================================================================
# DASHBOARD
# =============================================================================


class TestDashboard:

    def test_stats(self, make_product, admin_user):
        rice = make_product(name="Vary", sale_price_cents=3000, purchase_price_cents=2000, quantity=20)
        make_product(name="Empty", quantity=0)

        sales_service.checkout({"items": [{"product_id": rice.id, "quantity": 4}]}, admin_user.id)
        old = sales_service.checkout({"items": [{"product_id": rice.id, "quantity": 1}]}, admin_user.id)
        old.created_at = utcnow() - timedelta(days=45)
        db.session.commit()

        treasury_service.create_expense({"description": "Loyer", "amount_cents": 1_500, "status": "validated"})
        treasury_service.create_expense({"description": "Projet", "amount_cents": 99_000})

        stats = reporting_service.dashboard_stats()
        assert stats["today_sales"] == 1
        assert stats["today_revenue_cents"] == 12_000
        assert stats["month_sales"] == 1
        assert stats["month_revenue_cents"] == 12_000
        assert stats["critical_stock"] == 1
        assert stats["month_profit_cents"] == 4_000
        assert stats["month_expenses_cents"] == 1_500
        assert stats["net_profit_cents"] == 2_500

    def test_profit_uses_cost_snapshot(self, make_product, admin_user):
        from orion_pos.services import inventory_service

        product = make_product(sale_price_cents=1000, purchase_price_cents=600, quantity=5)
        sales_service.checkout({"items": [{"product_id": product.id, "quantity": 1}]}, admin_user.id)
        inventory_service.edit_product(product.id, {"purchase_price_cents": 900}, admin_user.id)

        assert reporting_service.dashboard_stats()["month_profit_cents"] == 400

    def test_chart_groups_by_local_day(self, make_product, admin_user):
        product = make_product(sale_price_cents=1000, quantity=10)
        sales_service.checkout({"items": [{"product_id": product.id, "quantity": 1}]}, admin_user.id)
        sales_service.checkout({"items": [{"product_id": product.id, "quantity": 2}]}, admin_user.id)

        rows = reporting_service.revenue_chart("week")
        today = local_date(utcnow(), "Indian/Antananarivo").isoformat()
        assert rows == [{"date": today, "revenue_cents": 3000, "sales": 2}]

    def test_chart_rejects_unknown_period(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.revenue_chart("year")

    def test_top_products(self, make_product, admin_user):
        a = make_product(name="A", sale_price_cents=100, quantity=20)
        b = make_product(name="B", sale_price_cents=500, quantity=20)
        sales_service.checkout(
            {"items": [{"product_id": a.id, "quantity": 5}, {"product_id": b.id, "quantity": 2}]}, admin_user.id
        )

        rows = reporting_service.top_products()
        assert [(r["product_name"], r["total_sold"], r["revenue_cents"]) for r in rows] == [
            ("A", 5, 500),
            ("B", 2, 1000),
        ]

    def test_api_endpoints(self, client, admin_headers):
        assert client.get("/api/dashboard/stats", headers=admin_headers).status_code == 200
        assert client.get("/api/dashboard/chart?period=week", headers=admin_headers).status_code == 200
        assert client.get("/api/dashboard/chart?period=year", headers=admin_headers).status_code == 400
        assert client.get("/api/dashboard/top-products", headers=admin_headers).status_code == 200
