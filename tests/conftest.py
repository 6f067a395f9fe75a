from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_clock, get_database
from main import app

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mongo_db():
    client = mongomock.MongoClient()
    database = client["customer_api_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture
def client(mongo_db):
    app.dependency_overrides[get_database] = lambda: mongo_db
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_customer(client):
    def _make(**overrides):
        payload = {
            "customerName": "Jane Smith",
            "email": "jane.smith@example.com",
            "phone": "9876543210",
        }
        payload.update(overrides)
        resp = client.post("/api/customers", json=payload)
        assert resp.status_code == 201, resp.json()
        return resp.json()["data"]
    return _make
