"""
Assignment Service - binds a driver to a waiting trip

Binding happens in one transaction:
1. conditional update of the trip (still waiting, no driver yet)
2. driver -> busy in a savepoint; if that fails the assignment still stands
3. one notification record for the driver

Two admins racing for the same trip: the conditional update lets exactly one
of them through, the other gets TripAlreadyAssigned.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import (
    DriverNotAvailable,
    DriverNotFound,
    DriverNotVerified,
    TripAlreadyAssigned,
    TripNotAssignable,
)
from .trip_lifecycle import ASSIGNED_STATUS, AWAITING_DRIVER
from .trip_service import resolve_trip
from .utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    message: str
    trip_id: int
    trip_kind: models.TripKind
    trip_status: models.TripStatus
    driver_id: int
    driver_name: str
    driver_phone: Optional[str]
    notification_id: int
    driver_status_updated: bool = True
    warnings: List[str] = field(default_factory=list)


def _claim_trip(db: Session, trip: models.Trip, driver_id: int) -> None:
    """Point the trip at the driver, only if it is still waiting for one"""
    awaiting = AWAITING_DRIVER[trip.kind]
    result = db.execute(
        update(models.Trip)
        .where(
            models.Trip.id == trip.id,
            models.Trip.status == awaiting,
            models.Trip.driver_id.is_(None)
        )
        .values(driver_id=driver_id, status=ASSIGNED_STATUS[trip.kind], updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        return

    db.rollback()
    db.refresh(trip)
    if trip.driver_id is not None:
        raise TripAlreadyAssigned(f"Trip {trip.id} is already assigned to driver {trip.driver_id}")
    raise TripNotAssignable(f"Trip {trip.id} is {trip.status.value} and cannot be assigned")


def _mark_driver_busy(db: Session, driver_id: int) -> bool:
    result = db.execute(
        update(models.Driver)
        .where(models.Driver.id == driver_id, models.Driver.status == models.DriverStatus.ONLINE)
        .values(status=models.DriverStatus.BUSY, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _notification_text(trip: models.Trip):
    category = trip.booking_category.value.replace("_", " ")
    noun = "booking" if trip.kind == models.TripKind.SCHEDULED else "ride"
    title = f"New {category} {noun} assigned"

    lines = [f"Pickup: {trip.pickup_address or f'{trip.pickup_latitude:.5f}, {trip.pickup_longitude:.5f}'}"]
    if trip.destination_address:
        lines.append(f"Drop: {trip.destination_address}")
    if trip.scheduled_at:
        lines.append(f"Scheduled: {trip.scheduled_at:%Y-%m-%d %H:%M}")
    if trip.customer_name:
        lines.append(f"Customer: {trip.customer_name}")
    return title, "\n".join(lines)


def assign_driver(
    db: Session,
    trip_id: int,
    driver_id: int,
    notes: Optional[str] = None,
    assigned_by: str = "admin",
) -> AssignmentResult:
    """
    Assign a driver to a ride or booking.

    Raises TripNotFound, DriverNotFound, DriverNotAvailable, DriverNotVerified,
    TripAlreadyAssigned or TripNotAssignable. A driver who left online before
    the busy flip landed fails the assignment with DriverNotAvailable; a store
    error during the flip is reported in the result rather than raised.
    """
    trip = resolve_trip(db, trip_id)

    driver = db.query(models.Driver).filter(models.Driver.id == driver_id).first()
    if not driver:
        raise DriverNotFound(f"Driver {driver_id} not found")
    if driver.status != models.DriverStatus.ONLINE:
        raise DriverNotAvailable(f"Driver {driver_id} is {driver.status.value}, not online")
    if not driver.is_verified:
        raise DriverNotVerified(f"Driver {driver_id} is not verified")

    warnings = []
    try:
        _claim_trip(db, trip, driver.id)

        try:
            with db.begin_nested():
                driver_status_updated = _mark_driver_busy(db, driver.id)
        except SQLAlchemyError as e:
            logger.warning(f"Driver {driver.id} assigned to trip {trip.id} but status update failed: {e}")
            driver_status_updated = False
            warnings.append("Driver status could not be set to busy")
        else:
            if not driver_status_updated:
                raise DriverNotAvailable(f"Driver {driver.id} is no longer online")

        title, message = _notification_text(trip)
        notification = models.AssignmentNotification(
            driver_id=driver.id,
            trip_id=trip.id,
            title=title,
            message=message,
            pickup_address=trip.pickup_address,
            destination_address=trip.destination_address,
            customer_name=trip.customer_name,
            customer_phone=trip.customer_phone,
            admin_notes=notes,
            assigned_by=assigned_by,
        )
        db.add(notification)
        db.flush()

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(trip)
    db.refresh(driver)

    logger.info(
        f"Driver {driver.id} ({driver.full_name}) assigned to {trip.kind.value} trip {trip.id} by {assigned_by}"
    )

    return AssignmentResult(
        message=f"Driver {driver.full_name} assigned successfully",
        trip_id=trip.id,
        trip_kind=trip.kind,
        trip_status=trip.status,
        driver_id=driver.id,
        driver_name=driver.full_name,
        driver_phone=driver.phone,
        notification_id=notification.id,
        driver_status_updated=driver_status_updated,
        warnings=warnings,
    )
