import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app


@pytest.fixture
def db():
    test_db = mongomock.MongoClient()["parking_test"]
    database.ensure_indexes(test_db)
    return test_db


@pytest.fixture
def client(db):
    app.dependency_overrides[database.get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_slot(client):
    def _make(number="1", **overrides):
        payload = {
            "number": number,
            "section": "A",
            "type": "regular",
            "hourly_rate": 4,
            "max_time_limit": 8,
        }
        payload.update(overrides)
        res = client.post("/api/slots", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def booking_payload():
    return {
        "user_id": "user-1",
        "vehicle_number": " ab 123 ",
        "vehicle_type": "car",
        "duration": 2,
        "user_details": {"name": "Dana", "email": "dana@example.com", "phone": "555-0101"},
    }
