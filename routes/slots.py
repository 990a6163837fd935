import logging
import math
import os
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import (
    BOOKINGS,
    SLOTS,
    as_utc,
    create_document,
    get_db,
    serialize,
    to_object_id,
    utcnow,
)
from schemas import (
    BookSlotRequest,
    Booking,
    CheckInRequest,
    CheckOutRequest,
    ParkingSlot,
    SlotUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_HOURLY_RATE = float(os.getenv("DEFAULT_HOURLY_RATE", "5"))

OCCUPANT_FIELDS = (
    "booked_by",
    "booked_by_user_id",
    "vehicle_number",
    "vehicle_type",
    "booked_at",
    "expected_checkout",
)

router = APIRouter(prefix="/api/slots", tags=["Slots"])


def get_slot_or_404(db: Database, slot_id: str) -> dict:
    slot = db[SLOTS].find_one({"_id": to_object_id(slot_id, "slot")})
    if not slot:
        raise HTTPException(status_code=404, detail="Slot not found")
    return slot


def default_slot_name(section: str, number: str) -> str:
    return f"{section.upper()}{number.zfill(2)}"


# -------------------- CRUD --------------------
@router.get("")
def list_slots(db: Database = Depends(get_db)):
    slots = db[SLOTS].find().sort("number", 1)
    return {"success": True, "data": [serialize(s) for s in slots]}


@router.post("", status_code=201)
def create_slot(slot: ParkingSlot, db: Database = Depends(get_db)):
    if not slot.slot_name:
        slot.slot_name = default_slot_name(slot.section, slot.number)

    try:
        slot_id = create_document(db, SLOTS, slot)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Slot number already exists")

    logger.info("Created slot %s (%s)", slot.number, slot_id)
    created = db[SLOTS].find_one({"_id": to_object_id(slot_id)})
    return {"success": True, "data": serialize(created)}


@router.patch("")
def update_slot(req: SlotUpdate, db: Database = Depends(get_db)):
    if not req.id:
        raise HTTPException(status_code=400, detail="Missing slot id")

    fields = req.model_dump(exclude_unset=True, exclude={"id"})
    fields["updated_at"] = utcnow()
    try:
        result = db[SLOTS].update_one({"_id": to_object_id(req.id, "slot")}, {"$set": fields})
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Slot number already exists")

    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Slot not found")
    return {"success": True, "modified_count": result.modified_count}


@router.delete("")
def delete_slot(id: str = Query(None), db: Database = Depends(get_db)):
    if not id:
        raise HTTPException(status_code=400, detail="Missing slot id")

    result = db[SLOTS].delete_one({"_id": to_object_id(id, "slot")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Slot not found")
    logger.info("Deleted slot %s", id)
    return {"success": True, "deleted_count": result.deleted_count}


# -------------------- LIFECYCLE --------------------
@router.post("/{slot_id}/book", status_code=201)
def book_slot(slot_id: str, req: BookSlotRequest, db: Database = Depends(get_db)):
    slot = get_slot_or_404(db, slot_id)
    if slot.get("status") != "available":
        raise HTTPException(status_code=400, detail="Slot is not available")

    start = as_utc(req.start_time) or utcnow()
    end = start + timedelta(hours=req.duration)
    total = req.duration * slot["hourly_rate"]

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
            total_amount=total,
            paid_amount=0,
            payment_status="pending",
            user_details=req.user_details,
            notes=req.notes or "",
        ),
    )

    # Not atomic with the insert above: a failure here leaves a confirmed
    # booking on a slot that still reads as available.
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
    logger.info("Slot %s booked by %s (booking %s)", slot["number"], req.user_id, booking_id)

    booking = db[BOOKINGS].find_one({"_id": to_object_id(booking_id)})
    slot = db[SLOTS].find_one({"_id": slot["_id"]})
    return {
        "success": True,
        "data": {"booking": serialize(booking), "slot": serialize(slot)},
        "message": "Slot booked successfully",
    }


@router.post("/{slot_id}/checkin")
def check_in(slot_id: str, req: CheckInRequest, db: Database = Depends(get_db)):
    slot = get_slot_or_404(db, slot_id)

    booking = db[BOOKINGS].find_one({
        "slot_id": str(slot["_id"]),
        "user_id": req.user_id,
        "status": "confirmed",
    })
    if not booking:
        raise HTTPException(status_code=400, detail="No confirmed booking found for this slot")

    now = utcnow()
    db[BOOKINGS].update_one(
        {"_id": booking["_id"]},
        {"$set": {"status": "active", "actual_start_time": now, "updated_at": now}},
    )
    db[SLOTS].update_one({"_id": slot["_id"]}, {"$set": {"status": "occupied", "updated_at": now}})
    logger.info("Checked in booking %s on slot %s", booking["_id"], slot["number"])

    booking = db[BOOKINGS].find_one({"_id": booking["_id"]})
    slot = db[SLOTS].find_one({"_id": slot["_id"]})
    return {
        "success": True,
        "data": {"booking": serialize(booking), "slot": serialize(slot)},
        "message": "Checked in successfully",
    }


def find_open_booking(db: Database, slot: dict, user_id) -> dict:
    open_statuses = {"$in": ["active", "confirmed"]}
    booking = None
    if user_id:
        booking = db[BOOKINGS].find_one({
            "slot_id": str(slot["_id"]),
            "user_id": user_id,
            "status": open_statuses,
        })
    # fall back to whoever the slot says is parked there
    if not booking and slot.get("booked_by_user_id"):
        booking = db[BOOKINGS].find_one({
            "slot_id": str(slot["_id"]),
            "user_id": str(slot["booked_by_user_id"]),
            "status": open_statuses,
        })
    return booking


@router.post("/{slot_id}/checkout")
def check_out(slot_id: str, req: CheckOutRequest, db: Database = Depends(get_db)):
    slot = get_slot_or_404(db, slot_id)

    booking = find_open_booking(db, slot, req.user_id)
    if not booking:
        raise HTTPException(status_code=400, detail="No active or confirmed booking found for this slot")

    if booking["status"] == "confirmed":
        started = utcnow()
        db[BOOKINGS].update_one(
            {"_id": booking["_id"]},
            {"$set": {"status": "active", "actual_start_time": started, "updated_at": started}},
        )
        booking["status"] = "active"
        booking["actual_start_time"] = started

    checkout_time = utcnow()
    start = booking.get("actual_start_time") or booking.get("start_time") or slot.get("booked_at")
    elapsed_hours = (checkout_time - start).total_seconds() / 3600 if start else 0
    actual_duration = math.ceil(elapsed_hours)
    final_amount = actual_duration * (slot.get("hourly_rate") or DEFAULT_HOURLY_RATE)

    db[BOOKINGS].update_one(
        {"_id": booking["_id"]},
        {"$set": {
            "status": "completed",
            "actual_end_time": checkout_time,
            "final_amount": final_amount,
            "total_amount": final_amount,
            "updated_at": checkout_time,
        }},
    )

    freed = {field: None for field in OCCUPANT_FIELDS}
    freed.update({"status": "available", "updated_at": checkout_time})
    db[SLOTS].update_one({"_id": slot["_id"]}, {"$set": freed})
    logger.info(
        "Checked out booking %s from slot %s: %s h, %.2f",
        booking["_id"], slot["number"], actual_duration, final_amount,
    )

    booking = db[BOOKINGS].find_one({"_id": booking["_id"]})
    slot = db[SLOTS].find_one({"_id": slot["_id"]})
    return {
        "success": True,
        "data": {
            "booking": serialize(booking),
            "slot": serialize(slot),
            "checkout": {
                "actual_duration": actual_duration,
                "final_amount": final_amount,
                "checkout_time": checkout_time,
            },
        },
        "message": "Checked out successfully",
    }
