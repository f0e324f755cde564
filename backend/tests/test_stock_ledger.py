"""
Stock ledger tests.

Verifies:
- Every quantity change logs exactly one movement
- Rejected exits leave quantity and the log untouched
- Sale deletion and movement deletion apply compensating changes
- Stored quantity always equals the fold of the movement log
"""

import pytest

from orion_pos.extensions import db
from orion_pos.models import Sale, SaleItem, StockMovement
from orion_pos.services import inventory_service, sales_service
from orion_pos.validation import InsufficientStockError, NotFoundError, ValidationError

from conftest import stored_quantity


def _movements(product_id):
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def _assert_ledger_balanced(product_id):
    assert stored_quantity(product_id) == inventory_service.ledger_quantity(product_id)


# =============================================================================
# LIFECYCLE SCENARIO
# =============================================================================


class TestLedgerLifecycle:
    """Create 10, sell 3, reject a 20-unit exit, delete the sale."""

    def test_full_scenario(self, make_product, admin_user):
        product = make_product(quantity=10)
        pid = product.id

        movements = _movements(pid)
        assert len(movements) == 1
        assert movements[0].movement_type == "entry"
        assert movements[0].quantity == 10
        assert movements[0].reason == "initial stock"
        assert movements[0].user_id == admin_user.id
        assert stored_quantity(pid) == 10

        sale = sales_service.checkout(
            {"items": [{"product_id": pid, "quantity": 3}]}, admin_user.id
        )
        sale_id = sale.id
        invoice = sale.invoice_number
        assert stored_quantity(pid) == 7
        movements = _movements(pid)
        assert len(movements) == 2
        assert movements[1].movement_type == "exit"
        assert movements[1].quantity == 3
        assert movements[1].reason == f"sale {invoice}"

        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.record_manual_movement(pid, "exit", 20, None, admin_user.id)
        assert exc_info.value.details["on_hand"] == 7
        assert exc_info.value.details["requested"] == 20
        assert stored_quantity(pid) == 7
        assert len(_movements(pid)) == 2

        result = inventory_service.reverse_sale(sale_id, admin_user.id)
        assert result["invoice_number"] == invoice
        assert result["restored_lines"] == 1
        assert stored_quantity(pid) == 10
        movements = _movements(pid)
        assert len(movements) == 3
        assert movements[2].movement_type == "entry"
        assert movements[2].quantity == 3
        assert movements[2].reason == f"sale cancellation {invoice}"

        assert db.session.get(Sale, sale_id) is None
        assert db.session.query(SaleItem).filter_by(sale_id=sale_id).count() == 0
        _assert_ledger_balanced(pid)


# =============================================================================
# CREATE / EDIT
# =============================================================================


class TestCreateProduct:

    def test_zero_initial_quantity_logs_nothing(self, make_product):
        product = make_product(quantity=0)
        assert _movements(product.id) == []
        assert stored_quantity(product.id) == 0

    def test_min_stock_defaults_from_config(self, make_product):
        product = make_product()
        assert product.min_stock == 5

    def test_requires_sale_price(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            inventory_service.create_product({"name": "No price"}, admin_user.id)

    def test_negative_quantity_rejected(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            inventory_service.create_product(
                {"name": "Bad", "sale_price_cents": 100, "quantity": -1}, admin_user.id
            )


class TestEditProduct:

    def test_increase_logs_admin_adjustment_entry(self, make_product, admin_user):
        product = make_product(quantity=10)
        inventory_service.edit_product(product.id, {"quantity": 15}, admin_user.id)

        last = _movements(product.id)[-1]
        assert last.movement_type == "entry"
        assert last.quantity == 5
        assert last.reason == "admin adjustment"
        assert stored_quantity(product.id) == 15
        _assert_ledger_balanced(product.id)

    def test_decrease_logs_admin_adjustment_exit(self, make_product, admin_user):
        product = make_product(quantity=10)
        inventory_service.edit_product(product.id, {"quantity": 4}, admin_user.id)

        last = _movements(product.id)[-1]
        assert last.movement_type == "exit"
        assert last.quantity == 6
        assert stored_quantity(product.id) == 4
        _assert_ledger_balanced(product.id)

    def test_unchanged_quantity_logs_nothing(self, make_product, admin_user):
        product = make_product(quantity=10)
        inventory_service.edit_product(product.id, {"quantity": 10, "category": "Epicerie"}, admin_user.id)
        assert len(_movements(product.id)) == 1

    def test_movement_uses_edited_name(self, make_product, admin_user):
        product = make_product(name="Old name", quantity=1)
        inventory_service.edit_product(product.id, {"name": "New name", "quantity": 2}, admin_user.id)
        assert _movements(product.id)[-1].product_name == "New name"

    def test_negative_quantity_rejected(self, make_product, admin_user):
        product = make_product(quantity=3)
        with pytest.raises(ValidationError):
            inventory_service.edit_product(product.id, {"quantity": -2}, admin_user.id)
        assert stored_quantity(product.id) == 3

    def test_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            inventory_service.edit_product(9999, {"quantity": 1}, admin_user.id)


# =============================================================================
# RESTOCK / MANUAL MOVEMENTS
# =============================================================================


class TestQuickRestock:

    def test_adds_stock_and_logs_replenishment(self, make_product, admin_user):
        product = make_product(quantity=2)
        new_quantity = inventory_service.quick_restock(product.id, 8, admin_user.id)

        assert new_quantity == 10
        last = _movements(product.id)[-1]
        assert (last.movement_type, last.quantity, last.reason) == ("entry", 8, "replenishment")
        _assert_ledger_balanced(product.id)

    @pytest.mark.parametrize("amount", [None, "", 0, -3, "abc", 1.5])
    def test_rejects_invalid_amount(self, make_product, admin_user, amount):
        product = make_product(quantity=2)
        with pytest.raises(ValidationError):
            inventory_service.quick_restock(product.id, amount, admin_user.id)
        assert stored_quantity(product.id) == 2
        assert len(_movements(product.id)) == 1

    def test_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            inventory_service.quick_restock(4242, 1, admin_user.id)


class TestManualMovement:

    def test_entry(self, make_product, admin_user):
        product = make_product(quantity=1)
        movement, new_quantity = inventory_service.record_manual_movement(
            product.id, "entry", 4, "  ", admin_user.id
        )
        assert new_quantity == 5
        assert movement.reason == "manual movement"

    def test_exit_to_exactly_zero_allowed(self, make_product, admin_user):
        product = make_product(quantity=5)
        movement, new_quantity = inventory_service.record_manual_movement(
            product.id, "exit", 5, "casse", admin_user.id
        )
        assert new_quantity == 0
        assert movement.reason == "casse"
        _assert_ledger_balanced(product.id)

    def test_invalid_direction(self, make_product, admin_user):
        product = make_product(quantity=5)
        with pytest.raises(ValidationError):
            inventory_service.record_manual_movement(product.id, "transfer", 1, None, admin_user.id)

    def test_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            inventory_service.record_manual_movement(777, "entry", 1, None, admin_user.id)


# =============================================================================
# MOVEMENT DELETION
# =============================================================================


class TestDeleteMovement:

    def test_deleting_exit_adds_back(self, make_product, admin_user):
        product = make_product(quantity=10)
        movement, _ = inventory_service.record_manual_movement(product.id, "exit", 4, None, admin_user.id)

        result = inventory_service.delete_movement(movement.id)
        assert result["quantity"] == 10
        assert db.session.get(StockMovement, movement.id) is None
        _assert_ledger_balanced(product.id)

    def test_deleting_entry_subtracts(self, make_product, admin_user):
        product = make_product(quantity=10)
        movement, _ = inventory_service.record_manual_movement(product.id, "entry", 5, None, admin_user.id)

        inventory_service.delete_movement(movement.id)
        assert stored_quantity(product.id) == 10
        _assert_ledger_balanced(product.id)

    def test_deleting_entry_floors_at_zero(self, make_product, admin_user):
        product = make_product(quantity=10)
        initial = _movements(product.id)[0]
        inventory_service.record_manual_movement(product.id, "exit", 8, None, admin_user.id)

        inventory_service.delete_movement(initial.id)
        assert stored_quantity(product.id) == 0

    def test_deleting_entry_on_oversold_product_keeps_going_down(self, app, make_product, admin_user, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_OVERSELL", True)
        product = make_product(quantity=1)
        initial = _movements(product.id)[0]
        sales_service.checkout({"items": [{"product_id": product.id, "quantity": 3}]}, admin_user.id)
        assert stored_quantity(product.id) == -2

        result = inventory_service.delete_movement(initial.id)
        assert result["quantity"] == -3
        _assert_ledger_balanced(product.id)

    def test_orphan_movement_is_just_removed(self, make_product, admin_user):
        from orion_pos.services import products_service

        product = make_product(quantity=3)
        movement_id = _movements(product.id)[0].id
        products_service.delete_product(product.id)

        result = inventory_service.delete_movement(movement_id)
        assert result["product_id"] is None
        assert result["quantity"] is None

    def test_unknown_movement(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.delete_movement(123456)


# =============================================================================
# READS AND RECONCILIATION
# =============================================================================


class TestReadsAndReconcile:

    def test_list_movements_newest_first_with_user(self, make_product, admin_user):
        product = make_product(quantity=1)
        inventory_service.quick_restock(product.id, 2, admin_user.id)

        movements = inventory_service.list_movements(period="today", product_id=product.id)
        assert [m.reason for m in movements] == ["replenishment", "initial stock"]
        assert movements[0].to_dict()["username"] == "admin"

    def test_list_movements_rejects_unknown_period(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.list_movements(period="year")

    def test_reconcile_detects_direct_writes(self, make_product, admin_user):
        good = make_product(name="Good", quantity=4)
        bad = make_product(name="Bad", quantity=4)
        bad.quantity = 9
        db.session.commit()

        rows = {row.product_id: row for row in inventory_service.reconcile_products()}
        assert rows[good.id].matches
        assert not rows[bad.id].matches
        assert rows[bad.id].ledger_quantity == 4
