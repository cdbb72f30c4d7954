"""
Pytest fixtures for retailpos backend tests.

Provides a fresh in-memory database per test, users for each role,
authenticated headers and a small seeded catalog.
"""

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import Product, ProductCategory, ProductUnit, Customer
from retailpos.services.auth_service import create_user

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def admin_user(app):
    return create_user(username="admin", password=TEST_PASSWORD, name="Admin User", role="admin")


@pytest.fixture(scope='function')
def sub_admin_user(app):
    return create_user(username="manager", password=TEST_PASSWORD, name="Store Manager", role="sub_admin")


@pytest.fixture(scope='function')
def cashier_user(app):
    return create_user(username="cashier", password=TEST_PASSWORD, name="Cashier One", role="cashier")


@pytest.fixture(scope='function')
def other_cashier(app):
    return create_user(username="cashier2", password=TEST_PASSWORD, name="Cashier Two", role="cashier")


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def sub_admin_headers(client, sub_admin_user):
    return auth_headers(get_auth_token(client, sub_admin_user.username))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.username))


@pytest.fixture(scope='function')
def other_cashier_headers(client, other_cashier):
    return auth_headers(get_auth_token(client, other_cashier.username))


@pytest.fixture(scope='function')
def category(app):
    c = ProductCategory(name="Beverages", description="Drinks")
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture(scope='function')
def unit(app):
    u = ProductUnit(name="Piece", short_code="pc")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture(scope='function')
def kg_unit(app):
    u = ProductUnit(name="Kilogram", short_code="kg")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture(scope='function')
def product(app, category, unit):
    """Cola: sells at 2.50, costs 1.50, 100 in stock."""
    p = Product(
        barcode="5000000000017",
        sku="COLA-330",
        name="Cola 330ml",
        category_id=category.id,
        unit_id=unit.id,
        stock_quantity=100,
        cost_price_cents=150,
        sale_price_cents=250,
        is_active=True,
    )
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture(scope='function')
def second_product(app, unit):
    """Bread: no category, sells at 1.20, costs 0.80, 10 in stock."""
    p = Product(
        barcode="5000000000024",
        name="Bread Loaf",
        unit_id=unit.id,
        stock_quantity=10,
        cost_price_cents=80,
        sale_price_cents=120,
        is_active=True,
    )
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture(scope='function')
def weighed_product(app, kg_unit):
    """Apples sold by the kilogram: 3.00/kg, cost 2.00/kg, 20kg in stock."""
    p = Product(
        barcode="2000000000015",
        name="Apples",
        unit_id=kg_unit.id,
        stock_quantity=20,
        cost_price_cents=200,
        sale_price_cents=300,
        is_active=True,
    )
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture(scope='function')
def customer(app):
    c = Customer(name="Jane Buyer", phone="555-0100", email="jane@example.com")
    db.session.add(c)
    db.session.commit()
    return c


def cash_sale_payload(product_id: int, qty=1, amount_cents: int = 250, **line_overrides) -> dict:
    """One-line cash sale body for POST /api/sales."""
    line = {"product_id": product_id, "qty": qty}
    line.update(line_overrides)
    return {
        "sale": {"type": "pos_receipt"},
        "lines": [line],
        "payments": [{"method": "cash", "amount_cents": amount_cents}],
    }
