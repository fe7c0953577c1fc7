"""Shared fixtures: a fresh in-memory MongoDB and app per test."""
import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import hash_password
from database import create_document
from enums import AccountStatus, UserType
from main import create_app
from services.catalog import ServiceCatalog
from services.mechanics import MechanicService

PASSWORD = "s3cret-pass"


@pytest.fixture
def db():
    return mongomock.MongoClient().carmedic_test


@pytest.fixture
def app(db):
    return create_app(database=db, run_jobs=False)


@pytest.fixture
def client(app):
    """Create FastAPI test client (lifespan not entered)."""
    return TestClient(app)


@pytest.fixture
def token_service(app):
    return app.state.token_service


@pytest.fixture
def catalog(app, db):
    return ServiceCatalog(db, app.state.service_cache)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(user_type=UserType.CUSTOMER, email=None, status=AccountStatus.ACTIVE):
        counter["n"] += 1
        return create_document(
            db,
            "users",
            {
                "firstName": "User",
                "lastName": str(counter["n"]),
                "email": email or f"user{counter['n']}@example.com",
                "password": hash_password(PASSWORD),
                "type": user_type.value,
                "status": status.value,
                "verified": False,
                "emailVerified": False,
                "garage": [],
                "appointmentHistory": [],
            },
        )

    return _make


@pytest.fixture
def auth_headers(token_service):
    def _headers(user):
        return {"Authorization": f"Bearer {token_service.issue_token(user['_id'])}"}

    return _headers


@pytest.fixture
def oil_change(catalog):
    return catalog.create_service(
        {"name": "Oil Change", "category": "maintenance", "description": "Engine oil and filter replacement"}
    )


@pytest.fixture
def owner(make_user):
    return make_user(UserType.MECHANIC)


@pytest.fixture
def shop(db, catalog, owner, oil_change):
    """A mechanic shop offering a one hour oil change for 50."""
    mechanics = MechanicService(db, catalog)
    mechanic = mechanics.create_mechanic(
        owner["_id"], "Quick Fix Garage", 40, location={"type": "Point", "coordinates": [-73.98, 40.75]}
    )
    mechanics.add_service(mechanic["_id"], oil_change["id"], 50, 1)
    return mechanics.get_mechanic(mechanic["_id"])


@pytest.fixture
def customer(make_user):
    return make_user(UserType.CUSTOMER)
