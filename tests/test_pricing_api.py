import pytest
from bson import ObjectId


def tier_payload(**overrides):
    payload = {
        "name": "Standard",
        "vehicle_type": "car",
        "base_price": 5,
        "pricing_type": "hourly",
        "valid_from": "2020-01-01T00:00:00",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_tier(client):
    def _create(**overrides):
        res = client.post("/api/pricing", json=tier_payload(**overrides))
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _create


QUOTE = {
    "vehicle_type": "car",
    "duration": 2,
    "start_time": "2025-06-04T10:00:00",
    "end_time": "2025-06-04T12:00:00",
}


def test_create_tier_defaults(create_tier):
    tier = create_tier(currency="eur")
    assert tier["currency"] == "EUR"
    assert tier["is_active"] is True
    assert tier["priority"] == 0
    assert tier["duration_range"] == {"min": 1, "max": 24}
    assert tier["discounts"] == []


def test_create_tier_requires_fields(client):
    res = client.post("/api/pricing", json={"name": "Broken"})
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_list_tiers_sorted_and_paginated(client, create_tier):
    create_tier(name="low", priority=1)
    create_tier(name="high", priority=9)
    create_tier(name="mid", priority=5)

    res = client.get("/api/pricing", params={"page": 1, "limit": 2})
    body = res.json()
    assert [t["name"] for t in body["data"]] == ["high", "mid"]
    assert body["pagination"]["total_count"] == 3
    assert body["pagination"]["total_pages"] == 2
    assert body["pagination"]["has_next"] is True
    assert body["pagination"]["has_prev"] is False


def test_list_tiers_filters(client, create_tier):
    create_tier(name="cars")
    create_tier(name="bikes", vehicle_type="motorcycle")
    res = client.get("/api/pricing", params={"vehicle_type": "motorcycle"})
    assert [t["name"] for t in res.json()["data"]] == ["bikes"]


def test_update_and_delete_tier(client, create_tier):
    tier = create_tier()
    res = client.patch("/api/pricing", json={"id": tier["id"], "base_price": 7, "is_active": False})
    assert res.status_code == 200
    assert res.json()["data"]["base_price"] == 7
    assert res.json()["data"]["is_active"] is False

    assert client.patch("/api/pricing", json={"base_price": 7}).status_code == 400
    assert client.patch("/api/pricing", json={"id": str(ObjectId()), "base_price": 7}).status_code == 404

    assert client.delete("/api/pricing", params={"id": tier["id"]}).status_code == 200
    assert client.delete("/api/pricing", params={"id": tier["id"]}).status_code == 404


def test_calculate_orders_by_priority(client, create_tier):
    create_tier(name="cheap", priority=1, base_price=3)
    create_tier(name="premium", priority=10, base_price=9)
    create_tier(name="anything", priority=5, vehicle_type="all", base_price=4)
    create_tier(name="trucks", priority=20, vehicle_type="truck")

    res = client.post("/api/pricing/calculate", json=QUOTE)
    assert res.status_code == 200
    data = res.json()["data"]
    assert [o["tier_name"] for o in data["all_options"]] == ["premium", "anything", "cheap"]
    assert data["recommended_pricing"] == data["all_options"][0]
    assert data["recommended_pricing"]["final_amount"] == 18
    assert data["calculation_details"]["vehicle_type"] == "car"


def test_calculate_excludes_expired_tiers(client, create_tier):
    create_tier(name="old promo", priority=10, valid_until="2025-01-01T00:00:00")
    create_tier(name="regular", priority=1)

    data = client.post("/api/pricing/calculate", json=QUOTE).json()["data"]
    assert [o["tier_name"] for o in data["all_options"]] == ["regular"]

    earlier = dict(QUOTE, start_time="2024-06-04T10:00:00", end_time="2024-06-04T12:00:00")
    data = client.post("/api/pricing/calculate", json=earlier).json()["data"]
    assert [o["tier_name"] for o in data["all_options"]] == ["old promo", "regular"]


def test_calculate_without_tiers(client):
    res = client.post("/api/pricing/calculate", json=QUOTE)
    assert res.status_code == 404
    assert res.json()["error"] == "No pricing tiers available for this vehicle type"


def test_calculate_without_applicable_pricing(client, create_tier):
    create_tier(duration_range={"min": 5, "max": 10})
    res = client.post("/api/pricing/calculate", json=QUOTE)
    assert res.status_code == 404
    assert res.json()["error"] == "No applicable pricing found for the given parameters"


def test_calculate_missing_fields(client):
    res = client.post("/api/pricing/calculate", json={"vehicle_type": "car"})
    assert res.status_code == 400


def test_estimate_via_query(client, create_tier):
    create_tier(base_price=6)
    res = client.get("/api/pricing/calculate", params=QUOTE)
    assert res.status_code == 200
    assert res.json()["data"]["recommended_pricing"]["final_amount"] == 12


def test_free_tier_can_be_created(client, create_tier):
    tier = create_tier(name="Free", base_price=0)
    assert tier["base_price"] == 0
    assert client.post("/api/pricing", json=tier_payload(base_price=-1)).status_code == 400
