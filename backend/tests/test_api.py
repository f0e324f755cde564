"""
HTTP API tests for the catalog, stock movements, sales, clients and users.

Error bodies carry {"error", "kind"} with the status mapped from the
service-layer exception.
"""

from orion_pos.extensions import db
from orion_pos.models import Sale, SessionToken, StockMovement, User

from conftest import TEST_PASSWORD, auth_headers, get_auth_token, stored_quantity


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductsApi:

    def test_create_logs_initial_stock(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Savony", "category": "Hygiene", "sale_price_cents": 1500, "quantity": 12},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        product = resp.get_json()
        assert product["quantity"] == 12
        assert product["min_stock"] == 5
        assert product["is_low_stock"] is False

        movements = client.get(
            f"/api/stock-movements?product_id={product['id']}", headers=admin_headers
        ).get_json()
        assert movements["count"] == 1
        assert movements["items"][0]["reason"] == "initial stock"
        assert movements["items"][0]["username"] == "admin"

    def test_create_validation_errors(self, client, admin_headers):
        resp = client.post("/api/products", json={"name": "No price"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "validation_error"

        resp = client.post(
            "/api/products", json={"name": "X", "sale_price_cents": 10, "unknown": 1}, headers=admin_headers
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/products", json={"name": "X", "sale_price_cents": "12.50"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_update_ignores_read_only_keys(self, client, admin_headers, make_product):
        product = make_product(quantity=4)
        body = client.get(f"/api/products/{product.id}", headers=admin_headers).get_json()
        body["quantity"] = 6

        resp = client.put(f"/api/products/{product.id}", json=body, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["quantity"] == 6

        reasons = [
            m["reason"]
            for m in client.get(f"/api/stock-movements?product_id={product.id}", headers=admin_headers).get_json()["items"]
        ]
        assert reasons == ["admin adjustment", "initial stock"]

    def test_update_unknown_product(self, client, admin_headers):
        resp = client.put("/api/products/999", json={"quantity": 1}, headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "not_found"

    def test_list_search_paginate_and_categories(self, client, admin_headers, make_product):
        make_product(name="Vary gasy", category="Epicerie")
        make_product(name="Vary stock", category="Epicerie")
        make_product(name="Savony", category="Hygiene", barcode="123456")

        data = client.get("/api/products?search=vary", headers=admin_headers).get_json()
        assert data["count"] == 2

        data = client.get("/api/products?search=123456", headers=admin_headers).get_json()
        assert [p["name"] for p in data["items"]] == ["Savony"]

        data = client.get("/api/products?page=1&per_page=2", headers=admin_headers).get_json()
        assert data["count"] == 2
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["has_next"] is True

        data = client.get("/api/categories", headers=admin_headers).get_json()
        assert data["categories"] == ["Epicerie", "Hygiene"]

    def test_low_stock(self, client, admin_headers, make_product):
        make_product(name="Plenty", quantity=50)
        make_product(name="Few", quantity=2)
        data = client.get("/api/products/low-stock", headers=admin_headers).get_json()
        assert [p["name"] for p in data["items"]] == ["Few"]

    def test_delete_keeps_history(self, client, admin_headers, make_product):
        product = make_product(name="Gone", quantity=3)
        client.post("/api/sales", json={"items": [{"product_id": product.id, "quantity": 1}]}, headers=admin_headers)

        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.status_code == 200

        movements = db.session.query(StockMovement).filter_by(product_name="Gone").all()
        assert len(movements) == 2
        assert all(m.product_id is None for m in movements)
        sale = db.session.query(Sale).one()
        assert sale.items[0].product_id is None
        assert sale.items[0].product_name == "Gone"

    def test_add_stock_rejects_non_positive(self, client, admin_headers, make_product):
        product = make_product(quantity=1)
        resp = client.post(f"/api/products/{product.id}/add-stock", json={"quantity": 0}, headers=admin_headers)
        assert resp.status_code == 400
        assert stored_quantity(product.id) == 1


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================


class TestStockMovementsApi:

    def test_manual_exit_insufficient_stock(self, client, admin_headers, make_product):
        product = make_product(quantity=7)
        resp = client.post(
            "/api/stock-movements",
            json={"product_id": product.id, "movement_type": "exit", "quantity": 20},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        data = resp.get_json()
        assert data["kind"] == "insufficient_stock"
        assert data["details"]["on_hand"] == 7
        assert stored_quantity(product.id) == 7

    def test_manual_entry_then_delete(self, client, admin_headers, make_product):
        product = make_product(quantity=7)
        resp = client.post(
            "/api/stock-movements",
            json={"product_id": product.id, "movement_type": "entry", "quantity": 3, "reason": "livraison"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["new_quantity"] == 10
        assert data["movement"]["reason"] == "livraison"

        resp = client.delete(f"/api/stock-movements/{data['movement']['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["quantity"] == 7

    def test_missing_product_id(self, client, admin_headers):
        resp = client.post(
            "/api/stock-movements", json={"movement_type": "entry", "quantity": 1}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_unknown_period(self, client, admin_headers):
        resp = client.get("/api/stock-movements?period=decade", headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# SALES
# =============================================================================


class TestSalesApi:

    def test_checkout_and_delete_round_trip(self, client, admin_headers, make_product):
        product = make_product(quantity=10)

        resp = client.post(
            "/api/sales",
            json={
                "items": [{"product_id": product.id, "quantity": 3}],
                "client_name": "Rakoto",
                "client_phone": "0340000000",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        sale = resp.get_json()
        assert sale["client_name"] == "Rakoto"
        assert sale["items"][0]["line_total_cents"] == 9000
        assert "unit_cost_cents" not in sale["items"][0]
        assert stored_quantity(product.id) == 7

        listing = client.get("/api/sales?period=today", headers=admin_headers).get_json()
        assert listing["count"] == 1

        resp = client.delete(f"/api/sales/{sale['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["restored_lines"] == 1
        assert stored_quantity(product.id) == 10

        assert client.get(f"/api/sales/{sale['id']}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/sales/{sale['id']}", headers=admin_headers).status_code == 404

    def test_duplicate_invoice_is_409(self, client, admin_headers, make_product):
        product = make_product(quantity=10)
        body = {"items": [{"product_id": product.id, "quantity": 1}], "invoice_number": "FAC-MANUAL-1"}
        assert client.post("/api/sales", json=body, headers=admin_headers).status_code == 201

        resp = client.post("/api/sales", json=body, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "conflict"

    def test_empty_cart(self, client, admin_headers):
        resp = client.post("/api/sales", json={"items": []}, headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# CLIENTS
# =============================================================================


class TestClientsApi:

    def test_crud_and_history(self, client, admin_headers, make_product):
        resp = client.post("/api/clients", json={"name": "Rasoa", "phone": "0331234567"}, headers=admin_headers)
        assert resp.status_code == 201
        client_id = resp.get_json()["id"]

        product = make_product(name="Siramamy", quantity=5)
        client.post(
            "/api/sales",
            json={"items": [{"product_id": product.id, "quantity": 2}], "client_id": client_id},
            headers=admin_headers,
        )

        card = client.get(f"/api/clients/{client_id}", headers=admin_headers).get_json()
        assert card["sales"][0]["items_summary"] == "Siramamy x2"

        resp = client.put(f"/api/clients/{client_id}", json={"email": "rasoa@example.mg", "id": 1}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["email"] == "rasoa@example.mg"

        found = client.get("/api/clients?search=0331", headers=admin_headers).get_json()
        assert found["count"] == 1

        assert client.delete(f"/api/clients/{client_id}", headers=admin_headers).status_code == 200
        assert db.session.query(Sale).one().client_id is None

    def test_name_required(self, client, admin_headers):
        resp = client.post("/api/clients", json={"phone": "1"}, headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# USERS
# =============================================================================


class TestUsersApi:

    def test_create_list_and_duplicate(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"username": "vendeur", "password": "secret1", "full_name": "Vendeur 1"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["user"]["role"] == "cashier"

        resp = client.post("/api/users", json={"username": "vendeur", "password": "secret1"}, headers=admin_headers)
        assert resp.status_code == 409

        data = client.get("/api/users", headers=admin_headers).get_json()
        assert {u["username"] for u in data["users"]} == {"admin", "vendeur"}

    def test_short_password(self, client, admin_headers):
        resp = client.post("/api/users", json={"username": "x", "password": "123"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_invalid_role(self, client, admin_headers):
        resp = client.post(
            "/api/users", json={"username": "x", "password": "secret1", "role": "owner"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_default_admin_protected(self, client, admin_headers, admin_user):
        resp = client.put(f"/api/users/{admin_user.id}", json={"role": "cashier"}, headers=admin_headers)
        assert resp.status_code == 403
        resp = client.put(f"/api/users/{admin_user.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 403

    def test_default_admin_cannot_be_deleted(self, client, second_admin, admin_user):
        headers = auth_headers(get_auth_token(client, second_admin.username, TEST_PASSWORD))
        resp = client.delete(f"/api/users/{admin_user.id}", headers=headers)
        assert resp.status_code == 403
        assert db.session.get(User, admin_user.id) is not None

    def test_cannot_delete_self(self, client, second_admin, admin_user):
        headers = auth_headers(get_auth_token(client, second_admin.username, TEST_PASSWORD))
        resp = client.delete(f"/api/users/{second_admin.id}", headers=headers)
        assert resp.status_code == 400

    def test_password_change_revokes_sessions(self, client, admin_headers, cashier_user):
        cashier_headers = auth_headers(get_auth_token(client, "cashier", TEST_PASSWORD))
        assert client.get("/api/auth/session", headers=cashier_headers).status_code == 200

        resp = client.put(f"/api/users/{cashier_user.id}", json={"password": "brand-new"}, headers=admin_headers)
        assert resp.status_code == 200

        assert client.get("/api/auth/session", headers=cashier_headers).status_code == 401
        assert get_auth_token(client, "cashier", "brand-new") is not None

    def test_deactivation_blocks_login(self, client, admin_headers, cashier_user):
        resp = client.put(f"/api/users/{cashier_user.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert get_auth_token(client, "cashier", TEST_PASSWORD) is None

    def test_delete_user_keeps_sales(self, client, admin_headers, cashier_user, make_product):
        cashier_id = cashier_user.id
        product = make_product(quantity=5)
        cashier_headers = auth_headers(get_auth_token(client, "cashier", TEST_PASSWORD))
        client.post("/api/sales", json={"items": [{"product_id": product.id, "quantity": 1}]}, headers=cashier_headers)

        resp = client.delete(f"/api/users/{cashier_id}", headers=admin_headers)
        assert resp.status_code == 200

        db.session.expire_all()
        assert db.session.query(Sale).one().user_id is None
        assert db.session.query(SessionToken).filter_by(user_id=cashier_id).count() == 0
