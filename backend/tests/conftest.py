"""
Pytest fixtures for Orion POS backend tests.

Provides test database setup, admin/cashier accounts, and test client.
"""

import pytest

from orion_pos import create_app
from orion_pos.extensions import db
from orion_pos.models import Product, User
from orion_pos.services.auth_service import hash_password


TEST_PASSWORD = "secret123"

# Hash once per run (bcrypt cost 12)
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BUSINESS_TIMEZONE': 'Indian/Antananarivo',
        'ALLOW_OVERSELL': False,
        'LOW_STOCK_DEFAULT': 5,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username, role, **kwargs):
    user = User(
        username=username,
        password_hash=_TEST_PASSWORD_HASH,
        role=role,
        full_name=kwargs.pop("full_name", username.title()),
        is_active=True,
        **kwargs,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Default admin (is_default=True), as created by `flask system init`."""
    return _make_user(db_session, "admin", "admin", is_default=True, full_name="Administrator")


@pytest.fixture(scope='function')
def second_admin(db_session):
    return _make_user(db_session, "manager", "admin")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return _make_user(db_session, "cashier", "cashier")


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username, TEST_PASSWORD))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.username, TEST_PASSWORD))


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """Factory creating products through the ledger (initial stock is logged)."""
    from orion_pos.services import inventory_service

    def _make(name="Vary 1kg", sale_price_cents=3000, purchase_price_cents=2000, quantity=10, **extra):
        patch = {
            "name": name,
            "sale_price_cents": sale_price_cents,
            "purchase_price_cents": purchase_price_cents,
            "quantity": quantity,
            **extra,
        }
        return inventory_service.create_product(patch, admin_user.id)

    return _make


def stored_quantity(product_id: int) -> int:
    """Fresh read of Product.quantity (bypasses the identity map)."""
    db.session.expire_all()
    return db.session.get(Product, product_id).quantity


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
