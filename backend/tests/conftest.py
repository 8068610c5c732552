"""
Pytest fixtures for gym back office tests.

Provides test database setup, seeded branch/users/catalogue, and test client.
"""

from datetime import timedelta

import pytest
from gymoffice import create_app
from gymoffice.extensions import db
from gymoffice.models import Branch, User, Supplier, InventoryItem, SubscriptionPlan
from gymoffice.services import session_service, inventory_service


@pytest.fixture(scope='session')
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
def branch(db_session):
    branch = Branch(name="Downtown Gym", code="DT")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    branch = Branch(name="Uptown Gym", code="UT")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def staff(db_session, branch):
    """Front-desk staff account that processes sales and orders."""
    user = User(branch_id=branch.id, username="desk", email="desk@gym.test", full_name="Front Desk", role="staff")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def member(db_session, branch):
    user = User(branch_id=branch.id, username="alice", email="alice@gym.test", full_name="Alice Member")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def second_member(db_session, branch):
    user = User(branch_id=branch.id, username="bob", email="bob@gym.test", full_name="Bob Member")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def token(staff):
    return session_service.issue_token(staff.id)


@pytest.fixture(scope='function')
def headers(token):
    return auth_headers(token)


@pytest.fixture(scope='function')
def supplier(db_session, branch):
    supplier = Supplier(
        branch_id=branch.id,
        name="Protein Wholesale",
        email="orders@protein.test",
        phone="555-0100",
        status="active",
    )
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def item(db_session, branch, staff):
    """Whey protein with 5 on hand and reorder level 10."""
    return inventory_service.create_item(
        branch_id=branch.id,
        sku="WHEY-1KG",
        name="Whey Protein 1kg",
        category="Supplements",
        unit_price_cents=20,
        quantity=5,
        reorder_level=10,
        created_by_user_id=staff.id,
    )


@pytest.fixture(scope='function')
def second_item(db_session, branch, staff):
    return inventory_service.create_item(
        branch_id=branch.id,
        sku="SHAKER-700",
        name="Shaker Bottle",
        category="Accessories",
        unit_price_cents=800,
        quantity=3,
        reorder_level=2,
        created_by_user_id=staff.id,
    )


@pytest.fixture(scope='function')
def plan(db_session):
    """30-day plan priced at 1000 cents."""
    plan = SubscriptionPlan(
        name="Gold Monthly",
        price_cents=1000,
        duration_days=30,
        features=["Gym floor", "Classes"],
        plan_type="Monthly",
    )
    db_session.add(plan)
    db_session.commit()
    return plan


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def days(n: int) -> timedelta:
    return timedelta(days=n)
