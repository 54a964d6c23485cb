from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ..db import get_db
from .. import models, schemas
from .. import availability_service, driver_service, location_service
from .auth import Actor, require_role, require_self_or_admin


router = APIRouter()

DRIVER_OR_ADMIN = require_role(models.UserRole.DRIVER, models.UserRole.ADMIN)


# ============================================================================
# Availability
# ============================================================================

@router.get("/available", response_model=List[schemas.AssignableDriverOut])
def list_available_drivers(
    vehicle_class: Optional[models.VehicleCategory] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Drivers that can be assigned right now, nearest first when lat/lng given"""
    if (lat is None) != (lng is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="lat and lng must be given together"
        )

    reference_point = (lat, lng) if lat is not None else None
    return availability_service.list_assignable_drivers(db, vehicle_class, reference_point)


# ============================================================================
# Location
# ============================================================================

@router.post("/{driver_id}/location", response_model=schemas.LivePositionOut)
def report_location(
    driver_id: int,
    payload: schemas.LocationReport,
    actor: Actor = Depends(DRIVER_OR_ADMIN),
    db: Session = Depends(get_db)
):
    """Upsert the driver's live position"""
    require_self_or_admin(actor, driver_id)
    return location_service.report_location(db, driver_id, payload)


@router.get("/{driver_id}/location", response_model=schemas.LivePositionOut)
def get_location(
    driver_id: int,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    driver_service.get_driver(db, driver_id)
    position = location_service.get_position(db, driver_id)
    if not position:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No position reported yet"
        )
    return position


# ============================================================================
# Status / Notifications
# ============================================================================

@router.put("/{driver_id}/status", response_model=schemas.DriverOut)
def update_status(
    driver_id: int,
    payload: schemas.DriverStatusUpdate,
    actor: Actor = Depends(DRIVER_OR_ADMIN),
    db: Session = Depends(get_db)
):
    """Go online or offline"""
    require_self_or_admin(actor, driver_id)
    return driver_service.set_driver_status(db, driver_id, payload.status)


@router.get("/{driver_id}/notifications", response_model=List[schemas.NotificationOut])
def list_notifications(
    driver_id: int,
    actor: Actor = Depends(DRIVER_OR_ADMIN),
    db: Session = Depends(get_db)
):
    require_self_or_admin(actor, driver_id)
    return driver_service.list_notifications(db, driver_id)
