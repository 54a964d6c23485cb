"""
Availability Service - who can take a trip right now

Matching criteria:
1. Driver status is ONLINE and the driver is verified
2. Driver's vehicle matches the requested category (if any)
3. Driver is not bound to any trip that is still running

Ordering is advisory: nearest first when a reference point is given, otherwise
best rated first. Nothing is cached or locked - the Assignment Service
re-checks everything when it binds a driver.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from sqlalchemy.orm import Session, joinedload

from . import models
from .trip_lifecycle import BOUND_STATUSES
from .utils import LatLng, distance_km

logger = logging.getLogger(__name__)


@dataclass
class AssignableDriver:
    id: int
    full_name: str
    phone: Optional[str]
    rating: float
    total_trips: int
    vehicle_registration: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_category: Optional[models.VehicleCategory] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_km: Optional[float] = None

    @classmethod
    def from_driver(cls, driver: models.Driver) -> "AssignableDriver":
        vehicle = driver.vehicle
        position = driver.position
        return cls(
            id=driver.id,
            full_name=driver.full_name,
            phone=driver.phone,
            rating=driver.rating if driver.rating is not None else 5.0,
            total_trips=driver.total_trips or 0,
            vehicle_registration=vehicle.registration_number if vehicle else None,
            vehicle_make=vehicle.make if vehicle else None,
            vehicle_model=vehicle.model if vehicle else None,
            vehicle_category=vehicle.category if vehicle else None,
            latitude=position.latitude if position else None,
            longitude=position.longitude if position else None,
        )


def busy_driver_ids(db: Session) -> Set[int]:
    """Drivers bound to an immediate or scheduled trip that has not finished"""
    busy = set()
    for kind, statuses in BOUND_STATUSES.items():
        rows = db.query(models.Trip.driver_id).filter(
            models.Trip.kind == kind,
            models.Trip.driver_id.isnot(None),
            models.Trip.status.in_(statuses)
        ).all()
        busy.update(row.driver_id for row in rows)
    return busy


def online_verified_drivers(db: Session, vehicle_class=None) -> List[models.Driver]:
    query = db.query(models.Driver).options(
        joinedload(models.Driver.vehicle),
        joinedload(models.Driver.position),
    ).filter(
        models.Driver.status == models.DriverStatus.ONLINE,
        models.Driver.is_verified == True
    )

    if vehicle_class is not None:
        query = query.join(models.Vehicle, models.Driver.vehicle_id == models.Vehicle.id).filter(
            models.Vehicle.category == models.VehicleCategory(vehicle_class)
        )

    return query.all()


def list_assignable_drivers(
    db: Session,
    vehicle_class=None,
    reference_point: Optional[LatLng] = None,
) -> List[AssignableDriver]:
    """
    Drivers that could be assigned right now.

    Returns an empty list when nobody qualifies.
    """
    candidates = online_verified_drivers(db, vehicle_class)
    busy = busy_driver_ids(db)

    available = [
        AssignableDriver.from_driver(driver)
        for driver in candidates
        if driver.id not in busy
    ]

    if reference_point is not None:
        for driver in available:
            if driver.latitude is not None and driver.longitude is not None:
                driver.distance_km = round(distance_km(reference_point, (driver.latitude, driver.longitude)), 3)
        # Drivers without a known position go last, best rated first
        available.sort(key=lambda d: (
            d.distance_km is None,
            d.distance_km if d.distance_km is not None else 0.0,
            -d.rating,
            d.id,
        ))
    else:
        available.sort(key=lambda d: (-d.rating, d.id))

    logger.info(
        f"Assignable drivers: {len(available)} of {len(candidates)} online verified ({len(busy)} busy)"
    )
    return available
