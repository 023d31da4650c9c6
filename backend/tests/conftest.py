"""
Pytest fixtures for back-office tests.

Provides an in-memory database, a test client, and fake Stripe / ShipStation
collaborators swapped into the app's collaborator registry.
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.config import TestingConfig
from backoffice.extensions import EXTENSION_KEY, db
from backoffice.models import Product

from fakes import FakeShipStationClient, FakeStripeGateway


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


@pytest.fixture(scope='function')
def settings(app):
    return app.extensions[EXTENSION_KEY].settings


@pytest.fixture(scope='function')
def collaborators(app, db_session):
    """Swap fake clients into the registry for the duration of one test."""
    registry = app.extensions[EXTENSION_KEY]
    original = (registry.gateway, registry.shipstation)
    registry.gateway = FakeStripeGateway()
    registry.shipstation = FakeShipStationClient()

    yield registry

    registry.gateway, registry.shipstation = original


@pytest.fixture(scope='function')
def gateway(collaborators):
    return collaborators.gateway


@pytest.fixture(scope='function')
def shipstation(collaborators):
    return collaborators.shipstation


@pytest.fixture(scope='function')
def brake_kit(db_session):
    """Catalog product BRK-001: 4 lb, 10 x 6 x 3 in."""
    product = Product(
        id="product-brk-001",
        title="Brake Kit",
        sku="BRK-001",
        slug="brake-kit",
        price=Decimal("25.01"),
        stripe_price_id="price_brk",
        product_type="physical",
        shipping_weight=4.0,
        shipping_length=10.0,
        shipping_width=6.0,
        shipping_height=3.0,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def sized_tee(db_session):
    """Catalog product that requires a size and back-print text."""
    product = Product(
        id="product-tee",
        title="Shop Tee",
        sku="TEE-1",
        slug="shop-tee",
        price=Decimal("20.00"),
        option_requirements=[{"name": "Size", "required": True}],
        customization_requirements=[{"name": "Name on back", "required": True}],
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product
