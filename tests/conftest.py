from datetime import date, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import get_db
from directory import NgoDirectory
from donations import DonationStore
from identity import IdentityStore
from main import app


@pytest.fixture
def db():
    return mongomock.MongoClient()["feedthefuture_test"]


@pytest.fixture
def store(db):
    return DonationStore(db)


@pytest.fixture
def directory(db):
    return NgoDirectory(db)


@pytest.fixture
def identity(db):
    return IdentityStore(db)


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def future():
    return (date.today() + timedelta(days=30)).isoformat()


@pytest.fixture
def rice(future):
    return {
        "foodItem": "Rice",
        "quantity": 25,
        "unit": "kg",
        "expiryDate": future,
        "address": "456 Oak St",
    }


def register(client, name, email, role, **profile):
    res = client.post(
        "/auth/register",
        json={"name": name, "email": email, "password": "secret123", "role": role, **profile},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]


@pytest.fixture
def donor(client):
    return register(client, "Jane Smith", "jane@example.com", "donor", address="456 Oak St")


@pytest.fixture
def make_ngo(client, directory):
    def _make(name, email, verified=True, **profile):
        headers, user = register(client, name, email, "ngo", **profile)
        if verified:
            directory.set_verification(user["id"], "verified")
        return headers, user

    return _make
