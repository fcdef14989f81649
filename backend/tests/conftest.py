"""
Pytest fixtures for NovaPOS backend tests.

Provides an in-memory database, a seeded branch/roster/catalog, attribution
contexts and a test client.
"""

import pytest

from novapos import create_app
from novapos.extensions import db
from novapos.models import Employee
from novapos.services import branch_service, catalog_service, staff_service
from novapos.services.session_service import context_for


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_TAX_RATE_PERCENT': 8.0,
        'AUDIT_LOG_CAP': 1000,
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
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    """Head-office branch."""
    return branch_service.ensure_default_branch()


@pytest.fixture(scope='function')
def roster(db_session, branch):
    """EMP-1 Store Manager, EMP-2 Head Barista, EMP-3 Cashier; PIN 1234."""
    staff_service.seed_roster(branch.id)
    return {e.id: e for e in db_session.query(Employee).all()}


@pytest.fixture(scope='function')
def products(db_session, roster):
    """Default cafe catalog: ids 1-4, stock 50/12/5/20."""
    catalog_service.seed_catalog()
    return {p.id: p for p in catalog_service.list_products()}


@pytest.fixture(scope='function')
def admin_ctx(roster, branch):
    return context_for(roster["EMP-1"], branch)


@pytest.fixture(scope='function')
def manager_ctx(roster, branch):
    return context_for(roster["EMP-2"], branch)


@pytest.fixture(scope='function')
def cashier_ctx(roster, branch):
    return context_for(roster["EMP-3"], branch)


def _headers(employee_id, branch_id):
    return {"X-Employee-Id": employee_id, "X-Branch-Id": branch_id}


@pytest.fixture(scope='function')
def admin_headers(roster, branch):
    return _headers("EMP-1", branch.id)


@pytest.fixture(scope='function')
def manager_headers(roster, branch):
    return _headers("EMP-2", branch.id)


@pytest.fixture(scope='function')
def cashier_headers(roster, branch):
    return _headers("EMP-3", branch.id)
