"""
Pytest fixtures for nursery backend tests.

Provides the application, a per-test clean database, staff users per role,
auth headers, product/customer factories and a recording payment gateway.
"""

import pytest

from nursery import create_app
from nursery.config import TestingConfig
from nursery.extensions import db
from nursery.models import User
from nursery.models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_INVENTORY
from nursery.services import customers_service, products_service, session_service
from nursery.services.auth_service import hash_password
from nursery.services.payment_gateways import MockGateway
from nursery.errors import UpstreamFailureError


TEST_PASSWORD = "Passw0rd!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    # bcrypt at cost 12 is slow; hash once per run
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    db.session.remove()
    # Clear all data but keep schema
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    def _make(role: str, email: str | None = None, is_active: bool = True) -> User:
        user = User(
            name=f"{role.title()} User",
            email=email or f"{role}@nursery.test",
            password_hash=password_hash,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user(ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager_user(make_user):
    return make_user(ROLE_MANAGER)


@pytest.fixture(scope='function')
def cashier_user(make_user):
    return make_user(ROLE_CASHIER)


@pytest.fixture(scope='function')
def inventory_user(make_user):
    return make_user(ROLE_INVENTORY)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return headers_for(manager_user)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    return headers_for(cashier_user)


@pytest.fixture(scope='function')
def inventory_headers(inventory_user):
    return headers_for(inventory_user)


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """Create products through the catalog service so opening stock is a movement."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        payload = {
            "barcode": f"TEST{counter['n']:07d}",
            "name": f"Test Plant {counter['n']}",
            "category": "Shrubs",
            "cost_price_cents": 500,
            "selling_price_cents": 1000,
            "tax_rate": 15,
            "current_stock": 50,
            "minimum_stock": 10,
        }
        payload.update(overrides)
        return products_service.create_product(payload, performed_by_user_id=admin_user.id)
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def customer(db_session):
    return customers_service.create_customer({
        "name": "Mere Walker",
        "email": "mere@example.com",
        "address": {"city": "Auckland"},
    })


class RecordingGateway(MockGateway):
    """Mock gateway that records calls and can be told to decline."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.decline = False

    def _check(self, action):
        if self.decline:
            raise UpstreamFailureError(f"EFTPOS {action} failed: DECLINED")

    def process_payment(self, amount_cents, reference):
        self.calls.append(("payment", amount_cents, reference))
        self._check("payment")
        return super().process_payment(amount_cents, reference)

    def void_transaction(self, transaction_id):
        self.calls.append(("void", transaction_id))
        self._check("void")
        return super().void_transaction(transaction_id)

    def refund_transaction(self, transaction_id, amount_cents, reference):
        self.calls.append(("refund", transaction_id, amount_cents))
        self._check("refund")
        return super().refund_transaction(transaction_id, amount_cents, reference)


@pytest.fixture(scope='function')
def gateway(app, monkeypatch):
    fake = RecordingGateway()
    monkeypatch.setitem(app.extensions, "payment_gateway", fake)
    return fake


def sale_payload(*lines, **extra) -> dict:
    """Build a POST /api/sales body from (product, quantity) pairs."""
    body = {"items": [{"product_id": p.id, "quantity": q} for p, q in lines]}
    body.update(extra)
    return body
