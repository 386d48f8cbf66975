import logging

from fastapi.testclient import TestClient

import database
from database import CHALLENGES
from main import app


def test_startup_seeds_catalog(client):
    assert database.count_documents(CHALLENGES) == 500


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "OK"
    assert resp.json()["mongodb"] == "Connected"


def test_database_diagnostics(client):
    body = client.get("/test").json()
    assert body["database_backend"] == "mongita-memory"
    assert body["connection_status"] == "Connected"


def test_startup_logs_backend(clean_db, caplog):
    with caplog.at_level(logging.INFO, logger="tech_mastery"):
        with TestClient(app):
            pass
    assert "Database backend: mongita-memory" in caplog.text
