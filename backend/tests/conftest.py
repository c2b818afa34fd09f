"""
Pytest fixtures for tierstock backend tests.

Provides test database setup, a small account hierarchy, products with tier
prices, and in-memory courier/POS adapters.
"""

import pytest

from tierstock import create_app
from tierstock.extensions import db, get_courier, get_pos
from tierstock.models import Account, AccountRole, BranchTier, PriceTier, Product, ProductPrice, Customer
from tierstock.services import transfer_service

from fakes import FakeCourier, FakePos


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_ATTEMPTS': 3,
        'COURIER_ADAPTER': FakeCourier(),
        'POS_ADAPTER': FakePos(),
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


@pytest.fixture(scope='function')
def courier(app):
    courier = get_courier()
    courier.reset()
    return courier


@pytest.fixture(scope='function')
def pos(app):
    pos = get_pos()
    pos.reset()
    return pos


def _account(session, code, role, parent=None, sub_role=None):
    account = Account(
        code=code,
        name=f"{code} account",
        role=role,
        sub_role=sub_role,
        parent_account_id=parent.id if parent else None,
    )
    session.add(account)
    session.commit()
    return account


@pytest.fixture(scope='function')
def hq(db_session):
    return _account(db_session, "HQ", AccountRole.HQ)


@pytest.fixture(scope='function')
def master_agent(db_session, hq):
    return _account(db_session, "MA1", AccountRole.MASTER_AGENT, parent=hq)


@pytest.fixture(scope='function')
def agent(db_session, master_agent):
    return _account(db_session, "AG1", AccountRole.AGENT, parent=master_agent)


@pytest.fixture(scope='function')
def branch(db_session, hq):
    return _account(db_session, "BR1", AccountRole.BRANCH, parent=hq, sub_role=BranchTier.PREMIUM)


@pytest.fixture(scope='function')
def marketer(db_session, branch):
    return _account(db_session, "MK1", AccountRole.MARKETER, parent=branch)


@pytest.fixture(scope='function')
def product(db_session):
    """Product with a price for every tier."""
    product = Product(sku="ZP250", name="Zaitun 250ml")
    db_session.add(product)
    db_session.flush()
    prices = {
        PriceTier.HQ: 1000,
        PriceTier.MASTER_AGENT: 2100,
        PriceTier.AGENT: 2500,
        PriceTier.BRANCH_STANDARD: 2600,
        PriceTier.BRANCH_PREMIUM: 2400,
        PriceTier.MARKETER: 3000,
        PriceTier.CUSTOMER: 3900,
    }
    for tier, cents in prices.items():
        db_session.add(ProductPrice(product_id=product.id, tier=tier, price_cents=cents))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session):
    product = Product(sku="ZP500", name="Zaitun 500ml")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session, agent):
    customer = Customer(
        owner_account_id=agent.id,
        name="Siti Aminah",
        phone="0123456789",
        address="12 Jalan Mawar",
        state="Selangor",
        postcode="40000",
        city="Shah Alam",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def seed_stock(db_session):
    """Seed a balance through the transfer engine (RECEIVE movement)."""
    def _seed(account, product, quantity):
        return transfer_service.receive_stock(account.id, product.id, quantity, note="test seed")
    return _seed
