from datetime import timedelta

from bson import ObjectId

from database import utcnow
from routes.slots import OCCUPANT_FIELDS


def book(client, slot_id, payload):
    return client.post(f"/api/slots/{slot_id}/book", json=payload)


def test_book_slot(client, make_slot, booking_payload):
    slot = make_slot(hourly_rate=4)
    res = book(client, slot["id"], booking_payload)
    assert res.status_code == 201

    data = res.json()["data"]
    booking, booked_slot = data["booking"], data["slot"]
    assert booking["status"] == "confirmed"
    assert booking["total_amount"] == 8
    assert booking["vehicle_number"] == "AB 123"
    assert booking["slot_id"] == slot["id"]
    assert booked_slot["status"] == "occupied"
    assert booked_slot["booked_by"] == "Dana"
    assert booked_slot["booked_by_user_id"] == "user-1"


def test_book_end_time_follows_duration(client, make_slot, booking_payload):
    slot = make_slot()
    booking_payload["start_time"] = "2030-01-01T08:00:00"
    booking_payload["duration"] = 3
    booking = book(client, slot["id"], booking_payload).json()["data"]["booking"]
    assert booking["start_time"].startswith("2030-01-01T08:00:00")
    assert booking["end_time"].startswith("2030-01-01T11:00:00")


def test_book_unavailable_slot_creates_nothing(client, make_slot, booking_payload, db):
    slot = make_slot(status="blocked")
    res = book(client, slot["id"], booking_payload)
    assert res.status_code == 400
    assert res.json() == {"success": False, "error": "Slot is not available"}
    assert db["booking"].count_documents({}) == 0


def test_book_occupied_slot_twice(client, make_slot, booking_payload, db):
    slot = make_slot()
    assert book(client, slot["id"], booking_payload).status_code == 201
    assert book(client, slot["id"], booking_payload).status_code == 400
    assert db["booking"].count_documents({}) == 1


def test_book_missing_slot_and_fields(client, make_slot, booking_payload):
    assert book(client, str(ObjectId()), booking_payload).status_code == 404
    slot = make_slot()
    del booking_payload["user_details"]
    assert book(client, slot["id"], booking_payload).status_code == 400


def test_check_in(client, make_slot, booking_payload):
    slot = make_slot()
    book(client, slot["id"], booking_payload)

    res = client.post(f"/api/slots/{slot['id']}/checkin", json={"user_id": "user-1"})
    assert res.status_code == 200
    booking = res.json()["data"]["booking"]
    assert booking["status"] == "active"
    assert booking["actual_start_time"] is not None

    again = client.post(f"/api/slots/{slot['id']}/checkin", json={"user_id": "user-1"})
    assert again.status_code == 400


def test_check_in_wrong_user(client, make_slot, booking_payload):
    slot = make_slot()
    book(client, slot["id"], booking_payload)
    res = client.post(f"/api/slots/{slot['id']}/checkin", json={"user_id": "someone-else"})
    assert res.status_code == 400


def test_check_out_bills_whole_hours_and_frees_slot(client, make_slot, booking_payload, db):
    slot = make_slot(hourly_rate=4)
    booking = book(client, slot["id"], booking_payload).json()["data"]["booking"]
    db["booking"].update_one(
        {"_id": ObjectId(booking["id"])},
        {"$set": {"status": "active", "actual_start_time": utcnow() - timedelta(hours=2, minutes=30)}},
    )

    res = client.post(f"/api/slots/{slot['id']}/checkout", json={"user_id": "user-1"})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["checkout"]["actual_duration"] == 3
    assert data["checkout"]["final_amount"] == 12
    assert data["booking"]["status"] == "completed"
    assert data["booking"]["final_amount"] == 12
    assert data["slot"]["status"] == "available"
    for field in OCCUPANT_FIELDS:
        assert data["slot"][field] is None

    assert db["booking"].count_documents({"status": "completed"}) == 1
    second = client.post(f"/api/slots/{slot['id']}/checkout", json={"user_id": "user-1"})
    assert second.status_code == 400
    assert db["booking"].count_documents({"status": "completed"}) == 1


def test_check_out_falls_back_to_slot_occupant(client, make_slot, booking_payload):
    slot = make_slot()
    book(client, slot["id"], booking_payload)

    res = client.post(f"/api/slots/{slot['id']}/checkout", json={"user_id": "temp-user-id"})
    assert res.status_code == 200
    booking = res.json()["data"]["booking"]
    assert booking["user_id"] == "user-1"
    assert booking["status"] == "completed"
    assert booking["actual_start_time"] is not None


def test_check_out_without_booking(client, make_slot):
    slot = make_slot()
    res = client.post(f"/api/slots/{slot['id']}/checkout", json={})
    assert res.status_code == 400
    assert res.json()["error"] == "No active or confirmed booking found for this slot"
