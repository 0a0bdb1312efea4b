"""
Pytest fixtures for stock engine tests.

Provides the application, a wiped database per test, and two tenants with
locations, products and a case unit of measure.
"""

from decimal import Decimal

import pytest

from stockengine import create_app
from stockengine.extensions import db
from stockengine.models import Location, Product, Tenant, UnitOfMeasure


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'INVENTORY_RETRY_BACKOFF': 0,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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
def tenant(db_session):
    """Create the primary tenant."""
    tenant = Tenant(name="Acme Retail", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    """Create a second tenant for isolation checks."""
    tenant = Tenant(name="Beta Goods", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def location(db_session, tenant):
    """Main store of the primary tenant."""
    location = Location(tenant_id=tenant.id, name="Main Store", code="MAIN", location_type="STORE")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def warehouse(db_session, tenant):
    """Second location of the primary tenant."""
    location = Location(tenant_id=tenant.id, name="Warehouse", code="WH", location_type="WAREHOUSE")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def product(db_session, tenant):
    """Stock-tracked product of the primary tenant."""
    product = Product(tenant_id=tenant.id, sku="SKU-001", name="Widget")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(db_session, tenant):
    product = Product(tenant_id=tenant.id, sku="SKU-002", name="Gadget")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def case_uom(db_session, tenant, product):
    """A case of 10 base units of the main product."""
    uom = UnitOfMeasure(tenant_id=tenant.id, product_id=product.id, code="CASE", name="Case of 10", conversion_factor=Decimal("10"))
    db_session.add(uom)
    db_session.commit()
    return uom


@pytest.fixture(scope='function')
def other_location(db_session, other_tenant):
    location = Location(tenant_id=other_tenant.id, name="Beta Store", code="B1")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def other_product(db_session, other_tenant):
    product = Product(tenant_id=other_tenant.id, sku="SKU-001", name="Beta Widget")
    db_session.add(product)
    db_session.commit()
    return product


def stock_up(tenant, location, product, quantity, unit_cost="2.00", user_id=1):
    """Helper to put stock on hand through a posted adjustment."""
    from stockengine.services import adjustment_service

    return adjustment_service.post_adjustment(
        tenant_id=tenant.id,
        location_id=location.id,
        user_id=user_id,
        items=[{"product_id": product.id, "quantity_change": quantity, "unit_cost": unit_cost}],
        reason_code="OPENING",
    )
