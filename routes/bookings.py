import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from database import (
    BOOKINGS,
    SLOTS,
    as_utc,
    create_document,
    get_db,
    is_valid_id,
    serialize,
    to_object_id,
    utcnow,
)
from routes.slots import OCCUPANT_FIELDS
from schemas import Booking, BookingCreate, BookingUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

CLOSED_STATUSES = ("completed", "cancelled", "expired")


def with_slot(db: Database, booking: dict) -> dict:
    """Serialize a booking with its slot document embedded under ``slot``."""
    out = serialize(booking)
    slot_id = booking.get("slot_id")
    slot = db[SLOTS].find_one({"_id": to_object_id(slot_id)}) if is_valid_id(slot_id) else None
    out["slot"] = serialize(slot)
    return out


@router.post("", status_code=201)
def create_booking(req: BookingCreate, db: Database = Depends(get_db)):
    slot = db[SLOTS].find_one({"_id": to_object_id(req.slot_id, "slot")})
    if not slot:
        raise HTTPException(status_code=400, detail="Parking slot not found")
    if slot.get("status") != "available":
        raise HTTPException(status_code=400, detail="Slot is not available")

    start = as_utc(req.start_time)
    end = start + timedelta(hours=req.duration)

    booking_id = create_document(
        db,
        BOOKINGS,
        Booking(
            user_id=req.user_id,
            slot_id=str(slot["_id"]),
            slot_number=slot["number"],
            vehicle_number=req.vehicle_number,
            vehicle_type=req.vehicle_type,
            start_time=start,
            end_time=end,
            duration=req.duration,
            status="confirmed",
            total_amount=req.duration * slot["hourly_rate"],
            user_details=req.user_details,
            notes=req.notes,
        ),
    )

    # future reservations leave the slot free until the driver arrives
    if start <= utcnow():
        db[SLOTS].update_one(
            {"_id": slot["_id"]},
            {"$set": {
                "status": "occupied",
                "booked_by": req.user_details.name,
                "booked_by_user_id": req.user_id,
                "vehicle_number": req.vehicle_number.strip().upper(),
                "vehicle_type": req.vehicle_type,
                "booked_at": start,
                "expected_checkout": end,
                "updated_at": utcnow(),
            }},
        )
    logger.info("Created booking %s for slot %s", booking_id, slot["number"])

    booking = db[BOOKINGS].find_one({"_id": to_object_id(booking_id)})
    return {"success": True, "data": serialize(booking)}


@router.get("")
def list_bookings(
    user_id: Optional[str] = None,
    slot_id: Optional[str] = None,
    status: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query = {}
    if user_id:
        query["user_id"] = user_id
    if slot_id:
        query["slot_id"] = slot_id
    if status:
        query["status"] = status

    bookings = db[BOOKINGS].find(query).sort("created_at", -1).limit(50)
    return {"success": True, "data": [with_slot(db, b) for b in bookings]}


@router.get("/user")
def user_bookings(db: Database = Depends(get_db)):
    # TODO: filter by the caller once check_auth returns real users
    bookings = db[BOOKINGS].find({}).sort("created_at", -1)
    return {"success": True, "data": [with_slot(db, b) for b in bookings]}


@router.patch("")
def update_booking(req: BookingUpdate, db: Database = Depends(get_db)):
    if not req.booking_id:
        raise HTTPException(status_code=400, detail="Booking ID is required")

    fields = req.model_dump(exclude_unset=True, exclude={"booking_id"})
    fields["updated_at"] = utcnow()
    oid = to_object_id(req.booking_id, "booking")
    result = db[BOOKINGS].update_one({"_id": oid}, {"$set": fields})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Booking not found")

    return {"success": True, "data": with_slot(db, db[BOOKINGS].find_one({"_id": oid}))}


@router.delete("")
def cancel_booking(booking_id: str = Query(None), db: Database = Depends(get_db)):
    if not booking_id:
        raise HTTPException(status_code=400, detail="Booking ID is required")

    oid = to_object_id(booking_id, "booking")
    booking = db[BOOKINGS].find_one({"_id": oid})
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.get("status") in CLOSED_STATUSES:
        raise HTTPException(status_code=400, detail=f"Booking is already {booking['status']}")

    now = utcnow()
    db[BOOKINGS].update_one({"_id": oid}, {"$set": {"status": "cancelled", "updated_at": now}})

    slot_id = booking.get("slot_id")
    if is_valid_id(slot_id):
        freed = {field: None for field in OCCUPANT_FIELDS}
        freed.update({"status": "available", "updated_at": now})
        db[SLOTS].update_one(
            {"_id": to_object_id(slot_id), "status": "occupied", "booked_by_user_id": booking.get("user_id")},
            {"$set": freed},
        )
    logger.info("Cancelled booking %s", booking_id)

    return {
        "success": True,
        "data": with_slot(db, db[BOOKINGS].find_one({"_id": oid})),
        "message": "Booking cancelled successfully",
    }
