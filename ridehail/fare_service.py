"""
Fare Service - prices trips from the fare tables

Four pricing models, one per booking category:
- regular: base fare + per km + per minute, floored at the minimum fare
- outstation: distance slabs, extra km beyond the last slab, night surcharge
  and per-day driver allowance
- rental: hourly packages with km/minute overage and popular-package discount
- airport: fixed fare per direction

All amounts are whole currency units.
"""

import logging
from datetime import datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from . import models
from .core.settings import settings
from .errors import FareConfigMissing, InvalidParameter
from .utils import distance_km, estimate_minutes, to_naive_utc

logger = logging.getLogger(__name__)

MODEL_FOR_CATEGORY = {
    models.BookingCategory.REGULAR: models.PricingModel.STANDARD,
    models.BookingCategory.OUTSTATION: models.PricingModel.SLAB,
    models.BookingCategory.RENTAL: models.PricingModel.PACKAGE,
    models.BookingCategory.AIRPORT: models.PricingModel.FIXED_ROUTE,
}


def round_amount(value: float) -> int:
    """Round half-up to whole currency units"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _number(params: Mapping[str, Any], key: str, default=None) -> float:
    value = params.get(key, default)
    if value is None:
        raise InvalidParameter(f"{key} is required")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{key} must be a number, got {value!r}")


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidParameter(f"Invalid {field}: {value}")


# ============================================================================
# Fare table lookup
# ============================================================================

def get_fare_entry(db: Session, category, vehicle_class) -> models.FareMatrix:
    category = _coerce(models.BookingCategory, category, "booking category")
    vehicle_class = _coerce(models.VehicleCategory, vehicle_class, "vehicle category")

    entry = db.query(models.FareMatrix).filter(
        models.FareMatrix.booking_category == category,
        models.FareMatrix.vehicle_category == vehicle_class,
        models.FareMatrix.is_active == True
    ).first()

    if not entry:
        raise FareConfigMissing(
            f"No active {category.value} fare for vehicle category {vehicle_class.value}"
        )
    return entry


# ============================================================================
# Pricing models
# ============================================================================

def regular_fare(entry: models.FareMatrix, distance_km: float, duration_minutes: float) -> int:
    """max(base + km * per_km + min * per_minute, minimum)"""
    if distance_km < 0:
        raise InvalidParameter("distance_km cannot be negative")
    if duration_minutes < 0:
        raise InvalidParameter("duration_minutes cannot be negative")

    total = (
        (entry.base_fare or 0.0)
        + distance_km * (entry.per_km_rate or 0.0)
        + duration_minutes * (entry.per_minute_rate or 0.0)
    )
    return round_amount(max(total, entry.minimum_fare or 0.0))


def slab_distance_charge(slabs: Sequence[models.FareSlab], extra_km_rate: Optional[float], distance: float) -> float:
    """
    Charge for `distance` from the banded totals.

    The smallest band covering the distance wins. Past the largest band the
    largest total is charged plus extra_km_rate for every km beyond it.
    """
    if not slabs:
        raise FareConfigMissing("Outstation fare has no distance slabs configured")

    ordered = sorted(slabs, key=lambda s: s.distance_km)
    for slab in ordered:
        if distance <= slab.distance_km:
            return slab.total_fare

    largest = ordered[-1]
    if extra_km_rate is None:
        raise FareConfigMissing(f"No extra km rate configured beyond {largest.distance_km:g} km")
    return largest.total_fare + (distance - largest.distance_km) * extra_km_rate


def calendar_days(start_at: datetime, end_at: datetime) -> int:
    return (end_at.date() - start_at.date()).days + 1


def overlaps_night(start_at: datetime, end_at: Optional[datetime], start_hour: int, end_hour: int) -> bool:
    """Does [start_at, end_at] touch the night window? The window may wrap midnight."""
    if start_hour == end_hour:
        return False
    end_at = end_at or start_at

    day = start_at.date() - timedelta(days=1)
    while day <= end_at.date():
        night_start = datetime.combine(day, time(start_hour))
        end_day = day if end_hour > start_hour else day + timedelta(days=1)
        night_end = datetime.combine(end_day, time(end_hour))
        if start_at < night_end and (night_start < end_at or night_start <= start_at):
            return True
        day += timedelta(days=1)
    return False


def outstation_fare(
    entry: models.FareMatrix,
    distance_km: float,
    start_at: Optional[datetime] = None,
    end_at: Optional[datetime] = None,
) -> int:
    if distance_km <= 0:
        raise InvalidParameter("distance_km must be positive for outstation trips")
    if start_at and end_at and end_at < start_at:
        raise InvalidParameter("end_at must not be before start_at")

    charge = slab_distance_charge(entry.slabs, entry.extra_km_rate, distance_km)

    if start_at and entry.night_charge_percent:
        start_hour = entry.night_start_hour if entry.night_start_hour is not None else settings.DEFAULT_NIGHT_START_HOUR
        end_hour = entry.night_end_hour if entry.night_end_hour is not None else settings.DEFAULT_NIGHT_END_HOUR
        if overlaps_night(start_at, end_at, start_hour, end_hour):
            charge += charge * entry.night_charge_percent / 100.0

    if start_at and end_at and entry.driver_allowance_per_day:
        days = calendar_days(start_at, end_at)
        if days > 1:
            charge += days * entry.driver_allowance_per_day

    return round_amount(charge)


def find_package(entry: models.FareMatrix, duration_hours: float) -> models.RentalPackage:
    for package in entry.packages:
        if package.duration_hours == duration_hours:
            return package
    raise FareConfigMissing(
        f"No {duration_hours:g} hour rental package for vehicle category {entry.vehicle_category.value}"
    )


def rental_fare(
    entry: models.FareMatrix,
    duration_hours: float,
    actual_km: Optional[float] = None,
    actual_minutes: Optional[float] = None,
) -> int:
    if duration_hours <= 0:
        raise InvalidParameter("duration_hours must be positive")
    if actual_km is not None and actual_km < 0:
        raise InvalidParameter("actual_km cannot be negative")
    if actual_minutes is not None and actual_minutes < 0:
        raise InvalidParameter("actual_minutes cannot be negative")

    package = find_package(entry, duration_hours)
    total = package.base_fare

    if actual_km is not None and actual_km > package.km_included:
        total += (actual_km - package.km_included) * package.extra_km_rate

    included_minutes = package.duration_hours * 60
    if actual_minutes is not None and actual_minutes > included_minutes:
        total += (actual_minutes - included_minutes) * (package.extra_minute_rate or 0.0)

    if package.is_popular and package.discount_percent:
        total -= total * package.discount_percent / 100.0

    return round_amount(total)


def airport_fare(entry: models.FareMatrix, direction) -> int:
    direction = _coerce(models.AirportDirection, direction, "airport direction")
    amount = entry.to_airport_fare if direction == models.AirportDirection.TO_AIRPORT else entry.from_airport_fare
    if amount is None:
        raise FareConfigMissing(f"No {direction.value} fare configured for {entry.vehicle_category.value}")
    return round_amount(amount)


# ============================================================================
# Public operations
# ============================================================================

def estimate_fare(db: Session, category, vehicle_class, params: Mapping[str, Any]) -> int:
    """
    Price a trip of `category` in `vehicle_class`.

    params by category:
        regular:    distance_km, duration_minutes
        outstation: distance_km, start_at?, end_at?
        rental:     duration_hours, actual_km?, actual_minutes?
        airport:    direction ("to_airport" | "from_airport")
    """
    category = _coerce(models.BookingCategory, category, "booking category")
    entry = get_fare_entry(db, category, vehicle_class)

    if category == models.BookingCategory.REGULAR:
        return regular_fare(
            entry,
            _number(params, "distance_km"),
            _number(params, "duration_minutes", default=0),
        )

    if category == models.BookingCategory.OUTSTATION:
        return outstation_fare(
            entry,
            _number(params, "distance_km"),
            start_at=to_naive_utc(params.get("start_at")),
            end_at=to_naive_utc(params.get("end_at")),
        )

    if category == models.BookingCategory.RENTAL:
        actual_km = params.get("actual_km")
        actual_minutes = params.get("actual_minutes")
        return rental_fare(
            entry,
            _number(params, "duration_hours"),
            actual_km=None if actual_km is None else _number(params, "actual_km"),
            actual_minutes=None if actual_minutes is None else _number(params, "actual_minutes"),
        )

    if "direction" not in params or params["direction"] is None:
        raise InvalidParameter("direction is required for airport fares")
    return airport_fare(entry, params["direction"])


def cancellation_fee(db: Session, vehicle_class) -> int:
    """Cancellation fee from the regular fare entry of the vehicle class"""
    entry = get_fare_entry(db, models.BookingCategory.REGULAR, vehicle_class)
    return round_amount(entry.cancellation_fee or 0.0)


def trip_fare_params(
    trip: models.Trip,
    actual_distance_km: Optional[float] = None,
    actual_duration_minutes: Optional[float] = None,
) -> dict:
    """Fare parameters for a trip, preferring actuals over planned values"""
    category = trip.booking_category
    distance = actual_distance_km if actual_distance_km is not None else trip.distance_km

    if category == models.BookingCategory.REGULAR:
        duration = actual_duration_minutes if actual_duration_minutes is not None else trip.duration_minutes
        return {"distance_km": distance, "duration_minutes": duration or 0}

    if category == models.BookingCategory.OUTSTATION:
        return {
            "distance_km": distance,
            "start_at": trip.started_at or trip.scheduled_at,
            "end_at": trip.completed_at or trip.return_at,
        }

    if category == models.BookingCategory.RENTAL:
        return {
            "duration_hours": trip.rental_hours,
            "actual_km": actual_distance_km,
            "actual_minutes": actual_duration_minutes,
        }

    return {"direction": trip.airport_direction}


def planned_route(trip: models.Trip) -> Tuple[Optional[float], Optional[float]]:
    """Straight-line distance and travel time between pickup and destination"""
    if trip.destination_latitude is None or trip.destination_longitude is None:
        return None, None
    km = distance_km(
        (trip.pickup_latitude, trip.pickup_longitude),
        (trip.destination_latitude, trip.destination_longitude),
    )
    return round(km, 2), round(estimate_minutes(km, settings.AVERAGE_SPEED_KMH), 1)


def quote_trip(db: Session, trip: models.Trip) -> int:
    return estimate_fare(db, trip.booking_category, trip.vehicle_category, trip_fare_params(trip))


def final_fare(
    db: Session,
    trip: models.Trip,
    actual_distance_km: Optional[float] = None,
    actual_duration_minutes: Optional[float] = None,
    completed_at: Optional[datetime] = None,
) -> int:
    """Price a finished trip; outstation trips are charged up to `completed_at`"""
    params = trip_fare_params(trip, actual_distance_km, actual_duration_minutes)
    if completed_at is not None and "end_at" in params:
        params["end_at"] = completed_at
    return estimate_fare(db, trip.booking_category, trip.vehicle_category, params)


# ============================================================================
# Fare table management
# ============================================================================

def validate_slabs(slabs: Sequence[Tuple[float, float]]) -> None:
    """Bands must be positive, distinct and priced non-decreasingly by distance"""
    if not slabs:
        raise InvalidParameter("Slab fares need at least one distance band")

    ordered = sorted(slabs, key=lambda s: s[0])
    previous_km, previous_total = None, None
    for km, total in ordered:
        if km <= 0 or total < 0:
            raise InvalidParameter(f"Invalid slab {km:g} km -> {total:g}")
        if previous_km is not None and km == previous_km:
            raise InvalidParameter(f"Duplicate slab for {km:g} km")
        if previous_total is not None and total < previous_total:
            raise InvalidParameter(
                f"Slab totals must not decrease with distance ({previous_km:g} km: {previous_total:g} > {km:g} km: {total:g})"
            )
        previous_km, previous_total = km, total


REQUIRED_FIELDS = {
    models.PricingModel.STANDARD: ("base_fare", "per_km_rate", "minimum_fare"),
    models.PricingModel.SLAB: ("extra_km_rate",),
    models.PricingModel.PACKAGE: (),
    models.PricingModel.FIXED_ROUTE: ("to_airport_fare", "from_airport_fare"),
}

ENTRY_FIELDS = (
    "base_fare", "per_km_rate", "per_minute_rate", "minimum_fare", "cancellation_fee",
    "extra_km_rate", "driver_allowance_per_day", "night_charge_percent",
    "night_start_hour", "night_end_hour", "to_airport_fare", "from_airport_fare",
)


def create_fare_entry(db: Session, payload) -> models.FareMatrix:
    """Create or replace the fare entry for (booking category, vehicle category)"""
    model = MODEL_FOR_CATEGORY[payload.booking_category]
    if payload.pricing_model is not None and payload.pricing_model != model:
        raise InvalidParameter(
            f"{payload.booking_category.value} fares use the {model.value} pricing model"
        )

    for field in REQUIRED_FIELDS[model]:
        if getattr(payload, field) is None:
            raise InvalidParameter(f"{field} is required for {model.value} fares")

    if model == models.PricingModel.SLAB:
        validate_slabs([(s.distance_km, s.total_fare) for s in payload.slabs])
    if model == models.PricingModel.PACKAGE and not payload.packages:
        raise InvalidParameter("Rental fares need at least one package")

    entry = db.query(models.FareMatrix).filter(
        models.FareMatrix.booking_category == payload.booking_category,
        models.FareMatrix.vehicle_category == payload.vehicle_category
    ).first()

    if entry is None:
        entry = models.FareMatrix(
            booking_category=payload.booking_category,
            vehicle_category=payload.vehicle_category,
        )
        db.add(entry)

    entry.pricing_model = model
    entry.is_active = payload.is_active
    for field in ENTRY_FIELDS:
        setattr(entry, field, getattr(payload, field))

    # old rows must be gone before new ones reuse their distances/hours
    entry.slabs = []
    entry.packages = []
    db.flush()

    entry.slabs = [models.FareSlab(**s.model_dump()) for s in payload.slabs] if model == models.PricingModel.SLAB else []
    entry.packages = [models.RentalPackage(**p.model_dump()) for p in payload.packages] if model == models.PricingModel.PACKAGE else []

    db.commit()
    db.refresh(entry)

    logger.info(
        f"Fare entry saved: {entry.booking_category.value}/{entry.vehicle_category.value} ({model.value})"
    )
    return entry


def list_fare_entries(db: Session, booking_category=None) -> List[models.FareMatrix]:
    query = db.query(models.FareMatrix)
    if booking_category is not None:
        query = query.filter(models.FareMatrix.booking_category == booking_category)
    return query.order_by(models.FareMatrix.booking_category, models.FareMatrix.vehicle_category).all()
