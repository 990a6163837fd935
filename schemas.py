"""
Database Schemas for the Parking Lot Management API

Each Pydantic model corresponds to a MongoDB collection (collection name is the
lowercased class name). Request bodies for the routes live at the bottom.
"""
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

VehicleType = Literal["car", "motorcycle", "truck", "van", "suv", "bus"]
SlotType = Literal["regular", "compact", "large", "electric", "handicap", "vip"]
SlotStatus = Literal["available", "occupied", "blocked", "reserved"]
BookingStatus = Literal["pending", "confirmed", "active", "completed", "cancelled", "expired"]
PaymentStatus = Literal["pending", "paid", "refunded"]
PaymentMethod = Literal["cash", "card", "mobile", "online"]
PricingType = Literal["hourly", "daily", "weekly", "monthly", "flat"]
Role = Literal["user", "admin", "attendant"]
AdminLevel = Literal["manager", "super"]
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _as_str(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class ParkingSlot(BaseModel):
    number: str = Field(..., min_length=1, description="Unique slot number")
    slot_name: Optional[str] = Field(None, description="Human-readable name like A01")
    section: str = Field(..., min_length=1, description="Section of the lot")
    type: SlotType = Field(..., description="Slot category")
    status: SlotStatus = Field("available", description="Occupancy status")
    hourly_rate: float = Field(..., gt=0, description="Price per hour")
    max_time_limit: float = Field(..., gt=0, description="Maximum stay in hours")
    description: Optional[str] = None
    booked_by: Optional[str] = None
    booked_by_user_id: Optional[str] = None
    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    booked_at: Optional[datetime] = None
    expected_checkout: Optional[datetime] = None

    @field_validator("number", mode="before")
    @classmethod
    def number_as_str(cls, v: Any) -> Any:
        return _as_str(v)


class UserDetails(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class Booking(BaseModel):
    user_id: str = Field(..., description="Id of the booking user")
    slot_id: str = Field(..., description="Id of the booked slot")
    slot_number: str
    vehicle_number: str
    vehicle_type: VehicleType = "car"
    start_time: datetime
    end_time: datetime
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    duration: float = Field(..., ge=1, le=24, description="Booked hours")
    status: BookingStatus = "pending"
    total_amount: float = Field(..., ge=0)
    paid_amount: float = Field(0, ge=0)
    final_amount: Optional[float] = None
    payment_status: PaymentStatus = "pending"
    payment_method: Optional[PaymentMethod] = None
    user_details: UserDetails
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("vehicle_number")
    @classmethod
    def normalize_plate(cls, v: str) -> str:
        return v.strip().upper()


class DurationRange(BaseModel):
    min: float = Field(1, ge=0.5)
    max: float = Field(24, ge=1)


class Discount(BaseModel):
    type: Literal["percentage", "fixed"]
    value: float = Field(..., ge=0)
    min_duration: Optional[float] = Field(None, ge=1)
    description: str


class TimeRange(BaseModel):
    start: str = Field(..., pattern=r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
    end: str = Field(..., pattern=r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


class Surcharge(BaseModel):
    type: Literal["peak_hours", "weekend", "holiday", "overnight"]
    multiplier: float = Field(..., ge=1, description="1.5 means a 50% surcharge")
    time_ranges: List[TimeRange] = []
    days: List[Weekday] = []
    description: str


class PricingTier(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    vehicle_type: Literal["car", "motorcycle", "truck", "van", "suv", "bus", "all"]
    base_price: float = Field(..., ge=0)
    currency: str = "USD"
    pricing_type: PricingType
    duration_range: DurationRange = DurationRange()
    discounts: List[Discount] = []
    surcharges: List[Surcharge] = []
    is_active: bool = True
    priority: int = Field(0, description="Higher priority tiers are checked first")
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    applicable_slots: List[str] = Field([], description="Slot ids, empty means all")

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=6, description="Plain password, hashed before storage")
    role: Role
    phone: Optional[str] = None
    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    admin_level: Optional[AdminLevel] = None
    permissions: List[str] = []
    status: Literal["active", "inactive"] = "active"
    is_verified: bool = False


# Request bodies

class SlotUpdate(BaseModel):
    id: Optional[str] = None
    number: Optional[str] = None
    slot_name: Optional[str] = None
    section: Optional[str] = None
    type: Optional[SlotType] = None
    status: Optional[SlotStatus] = None
    hourly_rate: Optional[float] = Field(None, gt=0)
    max_time_limit: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    booked_by: Optional[str] = None
    booked_by_user_id: Optional[str] = None
    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None

    @field_validator("number", mode="before")
    @classmethod
    def number_as_str(cls, v: Any) -> Any:
        return _as_str(v)


class BookSlotRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    vehicle_number: str = Field(..., min_length=1)
    vehicle_type: VehicleType = "car"
    duration: float = Field(..., ge=1, le=24)
    start_time: Optional[datetime] = None
    user_details: UserDetails
    notes: Optional[str] = Field(None, max_length=500)


class CheckInRequest(BaseModel):
    user_id: str


class CheckOutRequest(BaseModel):
    user_id: Optional[str] = None


class BookingCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    slot_id: str = Field(..., min_length=1)
    vehicle_number: str = Field(..., min_length=1)
    vehicle_type: VehicleType
    start_time: datetime
    duration: float = Field(..., ge=1, le=24)
    user_details: UserDetails
    notes: Optional[str] = Field(None, max_length=500)


class BookingUpdate(BaseModel):
    booking_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    paid_amount: Optional[float] = Field(None, ge=0)
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(None, max_length=500)


class PricingTierUpdate(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    vehicle_type: Optional[Literal["car", "motorcycle", "truck", "van", "suv", "bus", "all"]] = None
    base_price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    pricing_type: Optional[PricingType] = None
    duration_range: Optional[DurationRange] = None
    discounts: Optional[List[Discount]] = None
    surcharges: Optional[List[Surcharge]] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    applicable_slots: Optional[List[str]] = None


class PriceQuoteRequest(BaseModel):
    vehicle_type: str = Field(..., min_length=1)
    duration: float = Field(..., gt=0)
    start_time: datetime
    end_time: datetime
    slot_id: Optional[str] = None


class ActivityLogRequest(BaseModel):
    admin_id: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    details: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    admin_level: Optional[AdminLevel] = None
    permissions: Optional[List[str]] = None
    status: Optional[Literal["active", "inactive"]] = None
    is_verified: Optional[bool] = None


class UserDelete(BaseModel):
    id: Optional[str] = None
    user_ids: Optional[List[str]] = None


class UserBulkUpdate(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)
    updates: Dict[str, Any]


class LoginRequest(BaseModel):
    email: str
    password: str
