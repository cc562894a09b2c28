"""
Pytest fixtures for the back-office ledger tests.

Provides an in-memory app, per-test table wipes, catalog/location fixtures,
and bearer-token helpers for route tests.
"""

from datetime import datetime

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    Location,
    Product,
    ProductStock,
    ProductTransaction,
    Service,
    ServiceTransaction,
    User,
    UserProfile,
)
from backoffice.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_LOCATION_CODES': ('01', '02', '03'),
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


def _make_user(db_session, *, email: str, role: str = "customer", balance: int = 0,
               preferred_location_id: int | None = None) -> User:
    user = User(email=email, password_hash="x", role=role, is_active=True)
    db_session.add(user)
    db_session.flush()
    db_session.add(UserProfile(
        user_id=user.id,
        first_name=email.split("@")[0].title(),
        last_name="Test",
        email=email,
        available_balance=balance,
        total_spend=0,
        preferred_location_id=preferred_location_id,
    ))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: insert a user + profile directly (no bcrypt round-trip)."""
    def _factory(**kwargs) -> User:
        return _make_user(db_session, **kwargs)
    return _factory


@pytest.fixture(scope='function')
def add_service_entry(db_session):
    """Factory: insert a raw service ledger row (no balance side effects) at a chosen time."""
    def _factory(*, user_id: int, type: str, quantity: int, service_id: int | None = None,
                 location_id: int | None = None, created_at: datetime | None = None) -> ServiceTransaction:
        tx = ServiceTransaction(
            user_id=user_id,
            service_id=service_id,
            type=type,
            quantity=quantity,
            location_id=location_id,
        )
        if created_at is not None:
            tx.created_at = created_at
        db_session.add(tx)
        db_session.commit()
        return tx
    return _factory


@pytest.fixture(scope='function')
def add_product_entry(db_session):
    """Factory: insert a raw product ledger row (no stock side effects) at a chosen time."""
    def _factory(*, user_id: int, product_id: int, quantity: int, location_id: int | None = None,
                 created_at: datetime | None = None) -> ProductTransaction:
        tx = ProductTransaction(
            user_id=user_id,
            product_id=product_id,
            location_id=location_id,
            quantity=quantity,
        )
        if created_at is not None:
            tx.created_at = created_at
        db_session.add(tx)
        db_session.commit()
        return tx
    return _factory


@pytest.fixture(scope='function')
def balance_of(db_session):
    """Reads a customer's available balance straight from the database."""
    def _read(user_id: int) -> int:
        db_session.expire_all()
        return db_session.query(UserProfile).filter_by(user_id=user_id).one().available_balance
    return _read


@pytest.fixture(scope='function')
def locations(db_session):
    """Three stock-bearing branches plus a pop-up with an unknown legacy code."""
    rows = {
        "01": Location(name="City Centre", location_code="01", city="Leeds"),
        "02": Location(name="Riverside", location_code="02", city="Leeds"),
        "03": Location(name="Northgate", location_code="03", city="York"),
        "09": Location(name="Pop-up", location_code="09", city="York"),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def session_30(db_session):
    service = Service(name="30 Minute Session", minutes_available=30, price_cents=2500)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def session_15(db_session):
    service = Service(name="15 Minute Top-up", minutes_available=15, price_cents=1500)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def lotion(db_session):
    """Product with 10 units stocked at each of 01/02/03."""
    product = Product(name="Accelerator Lotion", brand="SunCo", price_cents=1999)
    db_session.add(product)
    db_session.flush()
    for code in ("01", "02", "03"):
        db_session.add(ProductStock(product_id=product.id, location_code=code, quantity=10))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    return _make_user(db_session, email="jane@example.com")


@pytest.fixture(scope='function')
def operator(db_session):
    return _make_user(db_session, email="operator@example.com", role="operator")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def operator_headers(db_session, operator):
    _, token = session_service.create_session(operator.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def customer_headers(db_session, customer):
    _, token = session_service.create_session(customer.id)
    return auth_headers(token)
