from datetime import timedelta

from bson import ObjectId

from database import utcnow


def direct_booking(slot_id, start_time, **overrides):
    payload = {
        "user_id": "user-1",
        "slot_id": slot_id,
        "vehicle_number": "xy 99",
        "vehicle_type": "suv",
        "start_time": start_time,
        "duration": 2,
        "user_details": {"name": "Dana", "email": "dana@example.com", "phone": "555-0101"},
    }
    payload.update(overrides)
    return payload


def test_immediate_booking_occupies_slot(client, make_slot, db):
    slot = make_slot(hourly_rate=3)
    start = (utcnow() - timedelta(minutes=1)).isoformat()
    res = client.post("/api/bookings", json=direct_booking(slot["id"], start))
    assert res.status_code == 201
    booking = res.json()["data"]
    assert booking["status"] == "confirmed"
    assert booking["total_amount"] == 6
    assert booking["vehicle_number"] == "XY 99"

    stored = db["parkingslot"].find_one({"_id": ObjectId(slot["id"])})
    assert stored["status"] == "occupied"
    assert stored["vehicle_type"] == "suv"


def test_future_booking_leaves_slot_free(client, make_slot, db):
    slot = make_slot()
    start = (utcnow() + timedelta(days=2)).isoformat()
    assert client.post("/api/bookings", json=direct_booking(slot["id"], start)).status_code == 201
    assert db["parkingslot"].find_one({"_id": ObjectId(slot["id"])})["status"] == "available"


def test_booking_requires_available_slot(client, make_slot, db):
    slot = make_slot(status="reserved")
    res = client.post("/api/bookings", json=direct_booking(slot["id"], "2030-01-01T09:00:00"))
    assert res.status_code == 400
    missing = client.post("/api/bookings", json=direct_booking(str(ObjectId()), "2030-01-01T09:00:00"))
    assert missing.status_code == 400
    assert missing.json()["error"] == "Parking slot not found"
    assert db["booking"].count_documents({}) == 0


def test_booking_requires_user_details(client, make_slot):
    slot = make_slot()
    payload = direct_booking(slot["id"], "2030-01-01T09:00:00")
    payload["user_details"] = {"name": "Dana"}
    assert client.post("/api/bookings", json=payload).status_code == 400


def test_list_bookings_embeds_slot(client, make_slot):
    first = make_slot(number="1")
    second = make_slot(number="2")
    client.post("/api/bookings", json=direct_booking(first["id"], "2030-01-01T09:00:00"))
    client.post("/api/bookings", json=direct_booking(second["id"], "2030-01-01T09:00:00", user_id="user-2"))

    res = client.get("/api/bookings", params={"user_id": "user-2"})
    data = res.json()["data"]
    assert len(data) == 1
    assert data[0]["slot"]["number"] == "2"

    assert len(client.get("/api/bookings/user").json()["data"]) == 2


def test_update_booking(client, make_slot):
    slot = make_slot()
    booking = client.post("/api/bookings", json=direct_booking(slot["id"], "2030-01-01T09:00:00")).json()["data"]
    res = client.patch("/api/bookings", json={"booking_id": booking["id"], "payment_status": "paid", "paid_amount": 8})
    assert res.status_code == 200
    assert res.json()["data"]["payment_status"] == "paid"

    assert client.patch("/api/bookings", json={"status": "active"}).status_code == 400
    assert client.patch("/api/bookings", json={"booking_id": str(ObjectId())}).status_code == 404


def test_cancel_booking_frees_slot(client, make_slot, booking_payload, db):
    slot = make_slot()
    booking = client.post(f"/api/slots/{slot['id']}/book", json=booking_payload).json()["data"]["booking"]

    res = client.delete("/api/bookings", params={"booking_id": booking["id"]})
    assert res.status_code == 200
    assert res.json()["data"]["status"] == "cancelled"

    stored = db["parkingslot"].find_one({"_id": ObjectId(slot["id"])})
    assert stored["status"] == "available"
    assert stored["booked_by_user_id"] is None

    assert client.delete("/api/bookings", params={"booking_id": str(ObjectId())}).status_code == 404


def test_cancel_closed_booking_keeps_current_occupant(client, make_slot, booking_payload, db):
    slot = make_slot()
    first = client.post(f"/api/slots/{slot['id']}/book", json=booking_payload).json()["data"]["booking"]
    assert client.post(f"/api/slots/{slot['id']}/checkout", json={"user_id": "user-1"}).status_code == 200

    booking_payload["user_id"] = "user-2"
    assert client.post(f"/api/slots/{slot['id']}/book", json=booking_payload).status_code == 201

    res = client.delete("/api/bookings", params={"booking_id": first["id"]})
    assert res.status_code == 400
    assert res.json()["error"] == "Booking is already completed"

    stored = db["parkingslot"].find_one({"_id": ObjectId(slot["id"])})
    assert stored["status"] == "occupied"
    assert stored["booked_by_user_id"] == "user-2"


def test_cancel_leaves_slot_held_by_another_user(client, make_slot, db):
    slot = make_slot()
    future = client.post("/api/bookings", json=direct_booking(slot["id"], "2030-01-01T09:00:00")).json()["data"]
    now = (utcnow() - timedelta(minutes=1)).isoformat()
    client.post("/api/bookings", json=direct_booking(slot["id"], now, user_id="user-2"))

    assert client.delete("/api/bookings", params={"booking_id": future["id"]}).status_code == 200
    stored = db["parkingslot"].find_one({"_id": ObjectId(slot["id"])})
    assert stored["status"] == "occupied"
    assert stored["booked_by_user_id"] == "user-2"


def test_cancel_immediate_direct_booking_frees_slot(client, make_slot, db):
    slot = make_slot()
    now = (utcnow() - timedelta(minutes=1)).isoformat()
    booking = client.post("/api/bookings", json=direct_booking(slot["id"], now)).json()["data"]

    assert client.delete("/api/bookings", params={"booking_id": booking["id"]}).status_code == 200
    assert db["parkingslot"].find_one({"_id": ObjectId(slot["id"])})["status"] == "available"
