"""
Pytest fixtures for shopledger backend tests.

Provides a fresh in-memory database per test, operator accounts with bearer
tokens, and small builders for products, customers and bills.
"""

from datetime import datetime

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Customer, Product, User
from shopledger.models.auth import ROLE_SUPER_ADMIN, ROLE_USER
from shopledger.services import bill_service, session_service
from shopledger.services.auth_service import hash_password


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt at cost 12 is slow; hash once and share it."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def db_session(app):
    return db.session


@pytest.fixture(scope='function')
def super_admin(db_session, password_hash):
    user = User(
        name="Owner",
        email="owner@shop.test",
        password_hash=password_hash,
        role=ROLE_SUPER_ADMIN,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def operator(db_session, password_hash):
    user = User(
        name="Counter Staff",
        email="staff@shop.test",
        password_hash=password_hash,
        role=ROLE_USER,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_headers(super_admin):
    _, token = session_service.create_session(super_admin.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def operator_headers(operator):
    _, token = session_service.create_session(operator.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def customer(db_session):
    return make_customer(db_session, name="Ravi Kumar", phone="9000000001")


@pytest.fixture(scope='function')
def bulb(db_session):
    return make_product(db_session, sku="LED-9W", name="LED Bulb 9W", category="lighting",
                        price_cents=100_00, cost_price_cents=60_00, quantity=50)


@pytest.fixture(scope='function')
def switch(db_session):
    return make_product(db_session, sku="SW-1WAY", name="One-way Switch", category="switches",
                        price_cents=50_00, cost_price_cents=20_00, quantity=10)


def make_customer(session, *, name, phone):
    customer = Customer(name=name, phone=phone)
    session.add(customer)
    session.commit()
    return customer


def make_product(session, *, sku, name, category, price_cents, cost_price_cents=0, quantity=0, low_stock_alert=5):
    product = Product(
        sku=sku,
        name=name,
        category=category,
        price_cents=price_cents,
        cost_price_cents=cost_price_cents,
        quantity=quantity,
        low_stock_alert=low_stock_alert,
    )
    session.add(product)
    session.commit()
    return product


def make_bill(customer, product, *, quantity=1, payment_status="pending", paid_amount_cents=None,
              bill_date=None, payment_method="cash", actor_user_id=None):
    """Bill for `quantity` units of `product` at list price, no tax or discount."""
    total = product.price_cents * quantity
    payload = {
        "customer_id": customer.id,
        "items": [{"product_id": product.id, "quantity": quantity, "price_cents": product.price_cents}],
        "subtotal_cents": total,
        "total_cents": total,
        "payment_method": payment_method,
        "payment_status": payment_status,
    }
    if paid_amount_cents is not None:
        payload["paid_amount_cents"] = paid_amount_cents
    if bill_date is not None:
        payload["bill_date"] = bill_date.isoformat() if isinstance(bill_date, datetime) else bill_date
    return bill_service.create_bill(payload, actor_user_id=actor_user_id)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
