"""
Pytest fixtures for YouFin backend tests.

Provides the test app (in-memory SQLite), a per-test clean database,
parent/child/business accounts, a business with an offer, and auth helpers.
"""

from datetime import date

import pytest
from youfin import create_app
from youfin.config import TestingConfig
from youfin.extensions import db
from youfin.models import Business, Offer
from youfin.services import auth_service


PASSWORD = "Password123!"


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


def child_birth_date(age: int = 10) -> str:
    # January 1st: the child has already had this year's birthday
    return date(date.today().year - age, 1, 1).isoformat()


def make_user(role: str, email: str, **extra):
    payload = {
        "firstName": extra.pop("firstName", role.title()),
        "lastName": extra.pop("lastName", "Tester"),
        "email": email,
        "password": PASSWORD,
        "role": role,
        **extra,
    }
    user, _ = auth_service.register_user(payload)
    return user


def business_payload(**overrides) -> dict:
    payload = {
        "businessName": "Corner Shop",
        "businessType": "retail",
        "address": {
            "street": "Rruga Myslym Shyri 1",
            "city": "Tirana",
            "state": "Tirana",
            "zipCode": "1001",
            "country": "Albania",
        },
        "description": "Neighbourhood shop",
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
def parent(db_session):
    return make_user("parent", "parent@youfin.test", firstName="Pat")


@pytest.fixture(scope='function')
def child(db_session, parent):
    return make_user(
        "child", "child@youfin.test",
        firstName="Kim",
        parentId=parent.id,
        dateOfBirth=child_birth_date(10),
    )


@pytest.fixture(scope='function')
def other_parent(db_session):
    return make_user("parent", "other.parent@youfin.test", firstName="Sam")


@pytest.fixture(scope='function')
def business_user(db_session):
    return make_user("business", "owner@youfin.test", **business_payload())


@pytest.fixture(scope='function')
def cafe(db_session):
    """A food business in central Tirana with one open-ended active offer."""
    business = Business(
        name="Tirana Coffee Shop",
        type="food",
        latitude=41.3275,
        longitude=19.8187,
        street="Rruga Myslym Shyri",
        city="Tirana",
        price_level=2,
    )
    business.offers.append(Offer(title="2x1 Espresso", discount="50%", is_active=True))
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def bank(db_session):
    business = Business(
        name="Raiffeisen Bank - Tirana Main",
        type="bank",
        latitude=41.3280,
        longitude=19.8195,
    )
    db_session.add(business)
    db_session.commit()
    return business


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def parent_headers(client, parent):
    return auth_headers(get_auth_token(client, parent.email))


@pytest.fixture(scope='function')
def child_headers(client, child):
    return auth_headers(get_auth_token(client, child.email))


@pytest.fixture(scope='function')
def other_parent_headers(client, other_parent):
    return auth_headers(get_auth_token(client, other_parent.email))


@pytest.fixture(scope='function')
def business_headers(client, business_user):
    return auth_headers(get_auth_token(client, business_user.email))
