"""
Trip Service - creates trips and moves them through their lifecycle

Every transition is a conditional UPDATE keyed on the status the caller saw,
so a transition succeeds exactly once even when two requests race.
"""

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import models
from . import fare_service
from .core.settings import settings
from .errors import IllegalTransition, InvalidParameter, TripNotFound
from .trip_lifecycle import (
    all_bound_statuses,
    charges_cancellation_fee,
    check_transition,
    initial_status,
)
from .utils import estimate_minutes, to_naive_utc, utcnow, validate_coordinates

logger = logging.getLogger(__name__)


def resolve_trip(db: Session, trip_id: int) -> models.Trip:
    """Find a trip by id, whether it is an immediate ride or a scheduled booking"""
    trip = db.query(models.Trip).filter(models.Trip.id == trip_id).first()
    if not trip:
        raise TripNotFound(f"Ride or booking {trip_id} not found")
    return trip


def _validate_trip_request(payload) -> None:
    validate_coordinates(payload.pickup_latitude, payload.pickup_longitude)
    has_destination = payload.destination_latitude is not None and payload.destination_longitude is not None
    if has_destination:
        validate_coordinates(payload.destination_latitude, payload.destination_longitude)

    category = payload.booking_category
    if category in (models.BookingCategory.REGULAR, models.BookingCategory.OUTSTATION):
        if not has_destination and payload.distance_km is None:
            raise InvalidParameter(f"{category.value} trips need a destination or a distance")
    if payload.distance_km is not None and payload.distance_km < 0:
        raise InvalidParameter("distance_km cannot be negative")
    if category == models.BookingCategory.RENTAL and not payload.rental_hours:
        raise InvalidParameter("rental trips need rental_hours")
    if category == models.BookingCategory.AIRPORT and payload.airport_direction is None:
        raise InvalidParameter("airport trips need an airport_direction")
    if payload.kind == models.TripKind.SCHEDULED and payload.scheduled_at is None:
        raise InvalidParameter("scheduled trips need scheduled_at")
    if payload.scheduled_at and payload.return_at and payload.return_at < payload.scheduled_at:
        raise InvalidParameter("return_at must not be before scheduled_at")


def create_trip(db: Session, payload) -> models.Trip:
    """Create a trip in its initial status with a fare estimate"""
    _validate_trip_request(payload)

    trip = models.Trip(
        **payload.model_dump(exclude={"distance_km", "scheduled_at", "return_at"}),
        scheduled_at=to_naive_utc(payload.scheduled_at),
        return_at=to_naive_utc(payload.return_at),
        status=initial_status(payload.kind),
        payment_status=models.PaymentStatus.PENDING,
    )

    if payload.distance_km is not None:
        trip.distance_km = payload.distance_km
        trip.duration_minutes = round(estimate_minutes(payload.distance_km, settings.AVERAGE_SPEED_KMH), 1)
    else:
        trip.distance_km, trip.duration_minutes = fare_service.planned_route(trip)

    trip.fare_estimate = fare_service.quote_trip(db, trip)

    db.add(trip)
    db.commit()
    db.refresh(trip)

    logger.info(
        f"Trip {trip.id} created ({trip.kind.value}/{trip.booking_category.value}, "
        f"{trip.vehicle_category.value}) estimate {trip.fare_estimate}"
    )
    return trip


def _transition(db: Session, trip: models.Trip, target: models.TripStatus, **values) -> models.TripStatus:
    """Move `trip` to `target` only if its status is still what we read"""
    current = trip.status
    check_transition(trip.kind, current, target)

    values.update(status=target, updated_at=utcnow())
    result = db.execute(
        update(models.Trip)
        .where(models.Trip.id == trip.id, models.Trip.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        db.rollback()
        raise IllegalTransition(
            f"Trip {trip.id} is no longer {current.value}; cannot move to {target.value}"
        )

    logger.info(f"Trip {trip.id}: {current.value} -> {target.value}")
    return current


def release_driver(db: Session, driver_id: int, trip_id: int) -> bool:
    """Put a busy driver back online once they have no other running trip"""
    still_bound = db.query(models.Trip.id).filter(
        models.Trip.driver_id == driver_id,
        models.Trip.id != trip_id,
        models.Trip.status.in_(all_bound_statuses())
    ).first()

    if still_bound:
        return False

    result = db.execute(
        update(models.Driver)
        .where(models.Driver.id == driver_id, models.Driver.status == models.DriverStatus.BUSY)
        .values(status=models.DriverStatus.ONLINE, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info(f"Driver {driver_id} released back online after trip {trip_id}")
    return bool(result.rowcount)


def _finish(db: Session, trip: models.Trip) -> models.Trip:
    db.commit()
    db.refresh(trip)
    return trip


def confirm_trip(db: Session, trip_id: int) -> models.Trip:
    """Scheduled booking: the assigned driver confirms"""
    trip = resolve_trip(db, trip_id)
    _transition(db, trip, models.TripStatus.CONFIRMED)
    return _finish(db, trip)


def mark_driver_arrived(db: Session, trip_id: int) -> models.Trip:
    trip = resolve_trip(db, trip_id)
    _transition(db, trip, models.TripStatus.DRIVER_ARRIVED)
    return _finish(db, trip)


def start_trip(db: Session, trip_id: int) -> models.Trip:
    trip = resolve_trip(db, trip_id)
    _transition(db, trip, models.TripStatus.IN_PROGRESS, started_at=utcnow())
    return _finish(db, trip)


def complete_trip(
    db: Session,
    trip_id: int,
    actual_distance_km: Optional[float] = None,
    actual_duration_minutes: Optional[float] = None,
) -> models.Trip:
    """Finish the trip, price it and credit the driver"""
    trip = resolve_trip(db, trip_id)
    check_transition(trip.kind, trip.status, models.TripStatus.COMPLETED)

    now = utcnow()
    amount = fare_service.final_fare(
        db, trip,
        actual_distance_km=actual_distance_km,
        actual_duration_minutes=actual_duration_minutes,
        completed_at=now,
    )

    values = {"fare_final": amount, "completed_at": now}
    if actual_distance_km is not None:
        values["distance_km"] = actual_distance_km
    if actual_duration_minutes is not None:
        values["duration_minutes"] = actual_duration_minutes

    _transition(db, trip, models.TripStatus.COMPLETED, **values)

    if trip.driver_id:
        db.execute(
            update(models.Driver)
            .where(models.Driver.id == trip.driver_id)
            .values(total_trips=models.Driver.total_trips + 1)
            .execution_options(synchronize_session=False)
        )
        release_driver(db, trip.driver_id, trip.id)

    return _finish(db, trip)


def cancel_trip(db: Session, trip_id: int, cancelled_by: str, reason: Optional[str] = None) -> models.Trip:
    """
    Cancel a trip, recording who cancelled and why.

    Once a driver has been bound the regular cancellation fee applies.
    """
    trip = resolve_trip(db, trip_id)
    check_transition(trip.kind, trip.status, models.TripStatus.CANCELLED)

    fee = None
    if charges_cancellation_fee(trip.kind, trip.status):
        fee = fare_service.cancellation_fee(db, trip.vehicle_category)

    _transition(
        db, trip, models.TripStatus.CANCELLED,
        cancelled_by=cancelled_by,
        cancellation_reason=reason,
        cancelled_at=utcnow(),
        cancellation_fee=fee,
    )

    if trip.driver_id:
        release_driver(db, trip.driver_id, trip.id)

    return _finish(db, trip)
