"""
Driver Service - driver profiles, the online/offline toggle and admin actions
"""

import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import models
from .errors import DriverBusy, DriverNotFound, DriverSuspended, InvalidParameter
from .utils import utcnow

logger = logging.getLogger(__name__)

TOGGLE_STATUSES = (models.DriverStatus.ONLINE, models.DriverStatus.OFFLINE)


def get_driver(db: Session, driver_id: int) -> models.Driver:
    driver = db.query(models.Driver).filter(models.Driver.id == driver_id).first()
    if not driver:
        raise DriverNotFound(f"Driver {driver_id} not found")
    return driver


def create_vehicle(db: Session, payload) -> models.Vehicle:
    existing = db.query(models.Vehicle).filter(
        models.Vehicle.registration_number == payload.registration_number
    ).first()
    if existing:
        raise InvalidParameter(f"Vehicle {payload.registration_number} is already registered")

    vehicle = models.Vehicle(**payload.model_dump())
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    logger.info(f"Vehicle {vehicle.registration_number} registered ({vehicle.category.value})")
    return vehicle


def create_driver(db: Session, payload) -> models.Driver:
    """Register a driver profile; new drivers start offline"""
    if payload.vehicle_id is not None:
        vehicle = db.query(models.Vehicle).filter(models.Vehicle.id == payload.vehicle_id).first()
        if not vehicle:
            raise InvalidParameter(f"Vehicle {payload.vehicle_id} not found")

    driver = models.Driver(**payload.model_dump(), status=models.DriverStatus.OFFLINE)
    db.add(driver)
    db.commit()
    db.refresh(driver)
    logger.info(f"Driver {driver.id} registered: {driver.full_name}")
    return driver


def set_driver_status(db: Session, driver_id, status) -> models.Driver:
    """
    The driver's own toggle between online and offline.

    Busy and suspended are never set or left through here: a busy driver is
    released when their trip ends, a suspended one by an admin.
    """
    try:
        target = models.DriverStatus(status)
    except ValueError:
        raise InvalidParameter(f"Invalid status: {status}")
    if target not in TOGGLE_STATUSES:
        raise InvalidParameter(f"Drivers can only go online or offline, not {target.value}")

    driver = get_driver(db, driver_id)
    current = driver.status

    if current == models.DriverStatus.SUSPENDED:
        raise DriverSuspended(f"Driver {driver_id} is suspended")
    if current == models.DriverStatus.BUSY:
        raise DriverBusy(f"Driver {driver_id} is on an active trip")
    if current == target:
        return driver

    result = db.execute(
        update(models.Driver)
        .where(models.Driver.id == driver_id, models.Driver.status == current)
        .values(status=target, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount == 0:
        # Assigned or suspended in the meantime
        db.refresh(driver)
        if driver.status == models.DriverStatus.SUSPENDED:
            raise DriverSuspended(f"Driver {driver_id} is suspended")
        if driver.status == models.DriverStatus.BUSY:
            raise DriverBusy(f"Driver {driver_id} is on an active trip")
        return driver

    db.refresh(driver)
    logger.info(f"Driver {driver_id} went {target.value}")
    return driver


def admin_driver_action(db: Session, driver_id: int, action: str, reason: Optional[str] = None) -> models.Driver:
    """Perform admin action on driver"""
    driver = get_driver(db, driver_id)

    if action == "verify":
        driver.is_verified = True
    elif action == "unverify":
        driver.is_verified = False
    elif action == "suspend":
        driver.status = models.DriverStatus.SUSPENDED
    elif action == "reinstate":
        if driver.status != models.DriverStatus.SUSPENDED:
            raise InvalidParameter(f"Driver {driver_id} is not suspended")
        driver.status = models.DriverStatus.OFFLINE
    else:
        raise InvalidParameter(f"Unknown action: {action}")

    driver.updated_at = utcnow()
    db.commit()
    db.refresh(driver)

    logger.info(f"Admin action '{action}' on driver {driver_id}" + (f": {reason}" if reason else ""))
    return driver


def list_notifications(db: Session, driver_id: int) -> List[models.AssignmentNotification]:
    get_driver(db, driver_id)
    return db.query(models.AssignmentNotification).filter(
        models.AssignmentNotification.driver_id == driver_id
    ).order_by(models.AssignmentNotification.created_at.desc()).all()
