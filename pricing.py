"""
Pricing tier rules.

Tiers are plain Mongo documents (see ``schemas.PricingTier``). A tier either
produces a quote for a reservation or returns ``None`` when it does not apply.
"""
import math
from datetime import datetime
from typing import Optional

HOURS_PER_PERIOD = {
    "daily": 24,
    "weekly": 24 * 7,
    "monthly": 24 * 30,
}

WEEKEND = ("saturday", "sunday")


def is_valid_at(tier: dict, when: datetime) -> bool:
    if not tier.get("is_active", True):
        return False
    valid_from = tier.get("valid_from")
    if valid_from and valid_from > when:
        return False
    valid_until = tier.get("valid_until")
    if valid_until and valid_until < when:
        return False
    return True


def parse_time_to_hours(value: str) -> float:
    hours, minutes = value.split(":")
    return int(hours) + int(minutes) / 60


def _hour_of_day(moment: datetime) -> float:
    return moment.hour + moment.minute / 60


def applies_surcharge(surcharge: dict, start_time: datetime, end_time: datetime) -> bool:
    kind = surcharge.get("type")

    if kind == "weekend":
        start_day = start_time.strftime("%A").lower()
        end_day = end_time.strftime("%A").lower()
        return start_day in WEEKEND or end_day in WEEKEND

    if kind == "peak_hours":
        start_hour = _hour_of_day(start_time)
        end_hour = _hour_of_day(end_time)
        for window in surcharge.get("time_ranges") or []:
            range_start = parse_time_to_hours(window["start"])
            range_end = parse_time_to_hours(window["end"])
            if range_start <= start_hour <= range_end:
                return True
            if range_start <= end_hour <= range_end:
                return True
            if start_hour <= range_start and end_hour >= range_end:
                return True
        return False

    if kind == "overnight":
        return start_time.hour >= 22 or end_time.hour <= 6

    # holidays need a calendar source we do not have
    return False


def base_amount(pricing_type: str, base_price: float, duration: float) -> float:
    if pricing_type == "hourly":
        return base_price * duration
    if pricing_type == "flat":
        return base_price
    if pricing_type in HOURS_PER_PERIOD:
        return base_price * math.ceil(duration / HOURS_PER_PERIOD[pricing_type])
    return 0


def _discount_applies(discount: dict, duration: float) -> bool:
    min_duration = discount.get("min_duration")
    return not min_duration or duration >= min_duration


def calculate_price(
    tier: dict,
    duration: float,
    start_time: datetime,
    end_time: datetime,
    vehicle_type: str,
    slot_id: Optional[str] = None,
) -> Optional[dict]:
    """Price a reservation under ``tier``.

    Returns ``None`` when the tier is not valid at ``start_time``, targets a
    different vehicle type or slot, or does not cover ``duration``. Otherwise
    the base amount is scaled by the largest applying surcharge multiplier and
    reduced by each qualifying discount in order.
    """
    if not is_valid_at(tier, start_time):
        return None

    tier_vehicle = tier.get("vehicle_type", "all")
    if tier_vehicle != "all" and tier_vehicle != vehicle_type:
        return None

    applicable_slots = tier.get("applicable_slots") or []
    if applicable_slots and slot_id:
        if slot_id not in [str(s) for s in applicable_slots]:
            return None

    duration_range = tier.get("duration_range") or {"min": 1, "max": 24}
    if duration < duration_range["min"] or duration > duration_range["max"]:
        return None

    base = base_amount(tier.get("pricing_type", "hourly"), tier["base_price"], duration)

    surcharges = tier.get("surcharges") or []
    applied_surcharges = [s for s in surcharges if applies_surcharge(s, start_time, end_time)]
    multiplier = max([1] + [s["multiplier"] for s in applied_surcharges])

    final = base * multiplier

    applied_discounts = [d for d in tier.get("discounts") or [] if _discount_applies(d, duration)]
    for discount in applied_discounts:
        if discount["type"] == "percentage":
            final = final * (1 - discount["value"] / 100)
        else:
            final = max(0, final - discount["value"])

    return {
        "base_amount": base,
        "surcharge_multiplier": multiplier,
        "final_amount": round(final, 2),
        "applied_discounts": applied_discounts,
        "applied_surcharges": applied_surcharges,
    }


def quote_options(
    tiers: list,
    duration: float,
    start_time: datetime,
    end_time: datetime,
    vehicle_type: str,
    slot_id: Optional[str] = None,
) -> list:
    """Price every tier in the given order and keep the ones that apply."""
    options = []
    for tier in tiers:
        result = calculate_price(tier, duration, start_time, end_time, vehicle_type, slot_id)
        if result is None:
            continue
        options.append({
            "tier_id": str(tier.get("_id")),
            "tier_name": tier.get("name"),
            "pricing_type": tier.get("pricing_type"),
            "currency": tier.get("currency", "USD"),
            **result,
        })
    return options
