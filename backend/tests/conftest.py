"""
Pytest fixtures for Estimate Desk backend tests.

Provides test database setup, approved admin/trader accounts, a registered
customer account, a small catalog per trader, and bearer-token helpers.
"""

from decimal import Decimal

import pytest
from estimate_desk import create_app
from estimate_desk.config import TestingConfig
from estimate_desk.extensions import db
from estimate_desk.models import Brand, Customer, Item
from estimate_desk.services import session_service
from estimate_desk.services.auth_service import create_user


PASSWORD = "secret123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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


def make_user(role, name, email, phone, approver=None, **extra):
    return create_user(
        name=name,
        email=email,
        password=PASSWORD,
        phone=phone,
        role=role,
        approved_by=approver,
        **extra,
    )


@pytest.fixture(scope='function')
def admin(db_session):
    """Approved admin (self-approved bootstrap account)."""
    user = make_user("admin", "Admin User", "admin@example.com", "9000000001", commit=False)
    db_session.flush()
    user.approval_status = "approved"
    user.approved_by_user_id = user.id
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def trader_a(db_session, admin):
    return make_user(
        "trader", "Trader A", "trader_a@example.com", "9000000002", approver=admin,
        trader_profile={"business_name": "A Building Supplies"},
    )


@pytest.fixture(scope='function')
def trader_b(db_session, admin):
    return make_user(
        "trader", "Trader B", "trader_b@example.com", "9000000003", approver=admin,
        trader_profile={"business_name": "B Hardware"},
    )


@pytest.fixture(scope='function')
def customer_account(db_session):
    """Registered customer account (no approval needed)."""
    return make_user(
        "customer", "Jane Customer", "jane@example.com", "9000000004",
        customer_profile={"address": {"city": "Pune"}, "company_name": "Jane Homes"},
    )


def _catalog(db_session, trader, prefix):
    brand = Brand(trader_id=trader.id, name=f"{prefix} Cement Co")
    db_session.add(brand)
    db_session.flush()
    cement = Item(
        trader_id=trader.id, brand_id=brand.id, name=f"{prefix} OPC Cement 50kg",
        category="Cement", uom="bag", current_rate=Decimal("30.00"),
    )
    steel = Item(
        trader_id=trader.id, brand_id=brand.id, name=f"{prefix} TMT Bar 12mm",
        category="Steel", uom="kg", current_rate=Decimal("65.00"),
    )
    customer = Customer(trader_id=trader.id, name=f"{prefix} Builder", phone=f"98{trader.id:08d}")
    db_session.add_all([cement, steel, customer])
    db_session.commit()
    return {"brand": brand, "cement": cement, "steel": steel, "customer": customer}


@pytest.fixture(scope='function')
def catalog_a(db_session, trader_a):
    """Trader A's brand, two items (cement at 30.00, steel at 65.00) and one directory customer."""
    return _catalog(db_session, trader_a, "A")


@pytest.fixture(scope='function')
def catalog_b(db_session, trader_b):
    return _catalog(db_session, trader_b, "B")


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: bearer headers for a user, using a fresh session token."""
    def _headers(user):
        _, token = session_service.create_session(user)
        return {"Authorization": f"Bearer {token}"}
    return _headers
