import os

# Tests always run against the in-memory Mongita backend
os.environ["DATABASE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = ""
os.environ["DATABASE_NAME"] = ""

import pytest
from fastapi.testclient import TestClient

import catalog
import database
from database import CHALLENGES, USERS
from main import app


@pytest.fixture(autouse=True)
def clean_db():
    for name in (USERS, CHALLENGES):
        database.collection(name).delete_many({})
    yield


@pytest.fixture
def client(clean_db):
    # Entering the client runs the lifespan, which seeds the catalog
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seeded(clean_db):
    catalog.seed_if_empty()


@pytest.fixture
def login(client):
    def _login(nickname="alice"):
        resp = client.post("/api/auth/simple-login", json={"nickname": nickname})
        assert resp.status_code == 200
        return resp.json()["user"]
    return _login


@pytest.fixture
def challenge_of():
    """First seeded challenge of a difficulty tier."""
    def _challenge(difficulty):
        return catalog.list_challenges(difficulty=difficulty, limit=1)[0]
    return _challenge
