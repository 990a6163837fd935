import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

from database import (
    PRICING_TIERS,
    as_utc,
    create_document,
    get_db,
    pagination,
    serialize,
    to_object_id,
    utcnow,
)
from pricing import quote_options
from schemas import PriceQuoteRequest, PricingTier, PricingTierUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])


@router.get("")
def list_tiers(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    is_active: Optional[bool] = None,
    vehicle_type: Optional[str] = None,
    pricing_type: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query = {}
    if is_active is not None:
        query["is_active"] = is_active
    if vehicle_type:
        query["vehicle_type"] = vehicle_type
    if pricing_type:
        query["pricing_type"] = pricing_type

    tiers = (
        db[PRICING_TIERS]
        .find(query)
        .sort([("priority", -1), ("vehicle_type", 1), ("pricing_type", 1)])
        .skip((page - 1) * limit)
        .limit(limit)
    )
    total_count = db[PRICING_TIERS].count_documents(query)

    return {
        "success": True,
        "data": [serialize(t) for t in tiers],
        "pagination": pagination(page, limit, total_count),
    }


@router.post("", status_code=201)
def create_tier(tier: PricingTier, db: Database = Depends(get_db)):
    tier.valid_from = as_utc(tier.valid_from) or utcnow()
    tier.valid_until = as_utc(tier.valid_until)
    tier.is_active = True

    tier_id = create_document(db, PRICING_TIERS, tier)
    logger.info("Created pricing tier %s (%s, priority %s)", tier.name, tier_id, tier.priority)

    created = db[PRICING_TIERS].find_one({"_id": to_object_id(tier_id)})
    return {"success": True, "data": serialize(created), "message": "Pricing tier created successfully"}


@router.patch("")
def update_tier(req: PricingTierUpdate, db: Database = Depends(get_db)):
    if not req.id:
        raise HTTPException(status_code=400, detail="Pricing tier ID required")

    fields = req.model_dump(exclude_unset=True, exclude={"id"})
    for key in ("valid_from", "valid_until"):
        if key in fields:
            fields[key] = as_utc(fields[key])
    if fields.get("currency"):
        fields["currency"] = fields["currency"].upper()
    fields["updated_at"] = utcnow()

    oid = to_object_id(req.id, "pricing tier")
    result = db[PRICING_TIERS].update_one({"_id": oid}, {"$set": fields})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Pricing tier not found")

    updated = db[PRICING_TIERS].find_one({"_id": oid})
    return {"success": True, "data": serialize(updated), "message": "Pricing tier updated successfully"}


@router.delete("")
def delete_tier(id: str = Query(None), db: Database = Depends(get_db)):
    if not id:
        raise HTTPException(status_code=400, detail="Pricing tier ID required")

    result = db[PRICING_TIERS].delete_one({"_id": to_object_id(id, "pricing tier")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Pricing tier not found")
    logger.info("Deleted pricing tier %s", id)
    return {"success": True, "message": "Pricing tier deleted successfully"}


# -------------------- CALCULATION --------------------
def candidate_tiers(db: Database, vehicle_type: str, start: datetime) -> list:
    """Active tiers covering ``start`` for the vehicle type, highest priority first."""
    return list(
        db[PRICING_TIERS]
        .find({
            "is_active": True,
            "valid_from": {"$lte": start},
            "$and": [
                {"$or": [
                    {"valid_until": {"$exists": False}},
                    {"valid_until": None},
                    {"valid_until": {"$gte": start}},
                ]},
                {"$or": [{"vehicle_type": vehicle_type}, {"vehicle_type": "all"}]},
            ],
        })
        .sort("priority", -1)
    )


def calculate(db: Database, req: PriceQuoteRequest) -> dict:
    start = as_utc(req.start_time)
    end = as_utc(req.end_time)

    tiers = candidate_tiers(db, req.vehicle_type, start)
    if not tiers:
        raise HTTPException(status_code=404, detail="No pricing tiers available for this vehicle type")

    options = quote_options(tiers, req.duration, start, end, req.vehicle_type, req.slot_id)
    if not options:
        raise HTTPException(status_code=404, detail="No applicable pricing found for the given parameters")

    return {
        "success": True,
        "data": {
            "recommended_pricing": options[0],
            "all_options": options,
            "calculation_details": {
                "vehicle_type": req.vehicle_type,
                "duration": req.duration,
                "start_time": start,
                "end_time": end,
                "slot_id": req.slot_id,
            },
        },
    }


@router.post("/calculate")
def calculate_price(req: PriceQuoteRequest, db: Database = Depends(get_db)):
    return calculate(db, req)


@router.get("/calculate")
def estimate_price(
    vehicle_type: str,
    duration: float = Query(..., gt=0),
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    slot_id: Optional[str] = None,
    db: Database = Depends(get_db),
):
    req = PriceQuoteRequest(
        vehicle_type=vehicle_type,
        duration=duration,
        start_time=start_time,
        end_time=end_time,
        slot_id=slot_id,
    )
    return calculate(db, req)
