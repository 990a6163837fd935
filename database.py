"""
Database Helper Functions

MongoDB helpers shared by the API routes. Collections are named after the
lowercased schema class (ParkingSlot -> "parkingslot").
"""
import logging
import math
import os
from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger(__name__)

SLOTS = "parkingslot"
BOOKINGS = "booking"
PRICING_TIERS = "pricingtier"
USERS = "user"

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def get_db() -> Database:
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def ensure_indexes(database: Database) -> None:
    database[SLOTS].create_index([("number", ASCENDING)], unique=True)
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    database[BOOKINGS].create_index([("slot_id", ASCENDING), ("status", ASCENDING)])
    database[PRICING_TIERS].create_index([("vehicle_type", ASCENDING), ("is_active", ASCENDING)])
    logger.info("Indexes ensured on %s", database.name)


def utcnow() -> datetime:
    # Mongo hands back naive datetimes, so everything is stored naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any, resource: str = "document") -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {resource} id")


def is_valid_id(value: Any) -> bool:
    return ObjectId.is_valid(str(value)) if value is not None else False


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a single document with timestamps and return its id"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def serialize(document: Optional[dict], hidden: tuple = ()) -> Optional[dict]:
    """Turn a raw Mongo document into a JSON-friendly dict with a string ``id``."""
    if document is None:
        return None
    out = {}
    for key, value in document.items():
        if key in hidden:
            continue
        if key == "_id":
            out["id"] = str(value)
        elif isinstance(value, ObjectId):
            out[key] = str(value)
        else:
            out[key] = value
    return out


def pagination(page: int, limit: int, total_count: int) -> dict:
    total_pages = math.ceil(total_count / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_count": total_count,
        "limit": limit,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
