from concurrent.futures import ThreadPoolExecutor

import mongomock
import pytest
from pymongo.errors import DuplicateKeyError

import auth
import database
from database import USERS
from errors import ValidationError


def test_simple_login_is_idempotent(login):
    first = login("alice")
    second = login("alice")
    assert first["id"] == second["id"]
    assert first["email"] == "alice@techmastery.local"
    assert database.count_documents(USERS) == 1


def test_simple_login_strips_nickname(login):
    assert login("  bob ")["nickname"] == "bob"


def test_simple_login_requires_nickname(client):
    resp = client.post("/api/auth/simple-login", json={"nickname": "   "})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Nickname required"}


def test_session_user(client, login):
    assert client.get("/auth/user").status_code == 401

    user = login("carol")
    resp = client.get("/auth/user")
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == user["id"]


def test_logout_clears_session(client, login):
    login("dave")
    resp = client.get("/auth/logout", follow_redirects=False)
    assert resp.status_code in (302, 307)
    assert client.get("/auth/user").status_code == 401


def test_session_for_deleted_user_is_rejected(client, login):
    login("erin")
    database.collection(USERS).delete_many({})
    assert client.get("/auth/user").status_code == 401


def test_resolve_oauth_user_creates_once():
    profile = {"sub": "g-123", "email": "f@example.com", "name": "Frank", "picture": "http://img/f.png"}
    first = auth.resolve_oauth_user(profile)
    second = auth.resolve_oauth_user(dict(profile, name="Frank Renamed"))
    assert first["id"] == second["id"]
    assert first["googleId"] == "g-123"
    assert first["nickname"] == "Frank"
    assert first["avatar"] == "http://img/f.png"
    assert first["progress"]["totalPoints"] == 0


def test_resolve_oauth_user_requires_subject():
    with pytest.raises(ValidationError):
        auth.resolve_oauth_user({"email": "x@example.com"})


def test_google_login_unconfigured(client, monkeypatch):
    monkeypatch.setattr(auth.settings, "GOOGLE_CLIENT_ID", None)
    assert client.get("/auth/google", follow_redirects=False).status_code == 503


def test_google_login_and_callback(client, monkeypatch):
    monkeypatch.setattr(auth.settings, "GOOGLE_CLIENT_ID", "client-id")
    resp = client.get("/auth/google", follow_redirects=False)
    assert resp.status_code == 307
    location = resp.headers["location"]
    assert location.startswith(auth.GOOGLE_AUTH_URL)
    state = location.split("state=")[1].split("&")[0]

    monkeypatch.setattr(
        auth, "fetch_google_profile",
        lambda code, redirect_uri: {"sub": "g-9", "email": "g@example.com", "name": "Grace"},
    )
    resp = client.get("/auth/google/callback", params={"code": "abc", "state": state}, follow_redirects=False)
    assert resp.status_code == 307
    assert resp.headers["location"].endswith("/dashboard")
    assert client.get("/auth/user").json()["user"]["nickname"] == "Grace"


def test_google_callback_rejects_bad_state(client, monkeypatch):
    monkeypatch.setattr(auth.settings, "GOOGLE_CLIENT_ID", "client-id")
    client.get("/auth/google", follow_redirects=False)
    resp = client.get("/auth/google/callback", params={"code": "abc", "state": "forged"}, follow_redirects=False)
    assert resp.headers["location"].endswith("/")
    assert client.get("/auth/user").status_code == 401


def test_concurrent_first_logins_create_one_user():
    with ThreadPoolExecutor(max_workers=8) as pool:
        users = list(pool.map(lambda _: auth.resolve_nickname_user("rush"), range(16)))
    assert len({u["id"] for u in users}) == 1
    assert database.count_documents(USERS) == 1


# ---------- MongoDB unique indexes ----------

class LookupMisses:
    """Users collection whose first ``misses`` lookups find nothing, as when
    another process inserts between our lookup and our insert."""

    def __init__(self, collection, misses=1):
        self._collection = collection
        self._misses = misses

    def find_one(self, *args, **kwargs):
        if self._misses:
            self._misses -= 1
            return None
        return self._collection.find_one(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._collection, name)


@pytest.fixture
def mongo_users(monkeypatch):
    mock_db = mongomock.MongoClient()["tech_mastery_test"]
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(database, "backend", "mongodb")
    database.ensure_indexes()
    return mock_db[USERS]


def test_indexes_allow_many_nickname_users(mongo_users):
    alice = auth.resolve_nickname_user("alice")
    bob = auth.resolve_nickname_user("bob")
    assert alice["id"] != bob["id"]
    assert mongo_users.count_documents({}) == 2
    assert mongo_users.count_documents({"google_id": {"$exists": True}}) == 0


def test_indexes_allow_google_users_sharing_a_name(mongo_users):
    first = auth.resolve_oauth_user({"sub": "g-1", "name": "John Smith"})
    second = auth.resolve_oauth_user({"sub": "g-2", "name": "John Smith"})
    assert first["id"] != second["id"]
    assert second["nickname"] == "John Smith"


def test_indexes_reject_duplicate_login_keys(mongo_users):
    auth.resolve_nickname_user("carol")
    with pytest.raises(DuplicateKeyError):
        database.create_document(USERS, {"nickname": "carol", "login_nickname": "carol"})
    auth.resolve_oauth_user({"sub": "g-7", "name": "Dan"})
    with pytest.raises(DuplicateKeyError):
        database.create_document(USERS, {"nickname": "Dan", "google_id": "g-7"})


def test_lost_insert_race_returns_existing_user(mongo_users, monkeypatch):
    existing = auth.resolve_nickname_user("erin")
    racing = LookupMisses(mongo_users)
    monkeypatch.setattr(database, "collection", lambda name: racing)

    assert auth.resolve_nickname_user("erin")["id"] == existing["id"]
    assert mongo_users.count_documents({}) == 1


def test_lost_insert_race_without_winner_raises(mongo_users, monkeypatch):
    auth.resolve_nickname_user("frank")
    racing = LookupMisses(mongo_users, misses=2)
    monkeypatch.setattr(database, "collection", lambda name: racing)

    with pytest.raises(DuplicateKeyError):
        auth.resolve_nickname_user("frank")
