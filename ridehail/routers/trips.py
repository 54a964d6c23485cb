from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from .. import assignment_service, trip_service
from .auth import Actor, get_current_actor, require_role


router = APIRouter()

DRIVER_OR_ADMIN = require_role(models.UserRole.DRIVER, models.UserRole.ADMIN)


def check_trip_access(actor: Actor, trip: models.Trip) -> None:
    """Customers see their own trips, drivers the trips assigned to them"""
    if actor.role == models.UserRole.CUSTOMER and trip.customer_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not your trip"
        )
    if actor.role == models.UserRole.DRIVER and trip.driver_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Trip is not assigned to you"
        )


# ============================================================================
# Trip Creation / Lookup
# ============================================================================

@router.post("", response_model=schemas.TripOut, status_code=status.HTTP_201_CREATED)
def create_trip(
    payload: schemas.TripCreate,
    actor: Actor = Depends(require_role(models.UserRole.CUSTOMER, models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Request a ride or book a scheduled trip; the response carries the fare estimate"""
    if actor.role == models.UserRole.CUSTOMER and payload.customer_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customers can only book for themselves"
        )
    return trip_service.create_trip(db, payload)


@router.get("/{trip_id}", response_model=schemas.TripOut)
def get_trip(
    trip_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    trip = trip_service.resolve_trip(db, trip_id)
    check_trip_access(actor, trip)
    return trip


# ============================================================================
# Assignment
# ============================================================================

@router.post("/{trip_id}/assign", response_model=schemas.AssignmentResultOut)
def assign_driver(
    trip_id: int,
    payload: schemas.AssignDriverRequest,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Manually assign a driver to a waiting ride or booking"""
    return assignment_service.assign_driver(
        db, trip_id, payload.driver_id,
        notes=payload.admin_notes,
        assigned_by=f"admin:{actor.id}",
    )


# ============================================================================
# Lifecycle
# ============================================================================

@router.post("/{trip_id}/confirm", response_model=schemas.TripOut)
def confirm_trip(
    trip_id: int,
    actor: Actor = Depends(DRIVER_OR_ADMIN),
    db: Session = Depends(get_db)
):
    check_trip_access(actor, trip_service.resolve_trip(db, trip_id))
    return trip_service.confirm_trip(db, trip_id)


@router.post("/{trip_id}/arrive", response_model=schemas.TripOut)
def driver_arrived(
    trip_id: int,
    actor: Actor = Depends(DRIVER_OR_ADMIN),
    db: Session = Depends(get_db)
):
    check_trip_access(actor, trip_service.resolve_trip(db, trip_id))
    return trip_service.mark_driver_arrived(db, trip_id)


@router.post("/{trip_id}/start", response_model=schemas.TripOut)
def start_trip(
    trip_id: int,
    actor: Actor = Depends(DRIVER_OR_ADMIN),
    db: Session = Depends(get_db)
):
    check_trip_access(actor, trip_service.resolve_trip(db, trip_id))
    return trip_service.start_trip(db, trip_id)


@router.post("/{trip_id}/complete", response_model=schemas.TripOut)
def complete_trip(
    trip_id: int,
    payload: schemas.TripComplete,
    actor: Actor = Depends(DRIVER_OR_ADMIN),
    db: Session = Depends(get_db)
):
    """Finish the trip and compute the final fare"""
    check_trip_access(actor, trip_service.resolve_trip(db, trip_id))
    return trip_service.complete_trip(
        db, trip_id,
        actual_distance_km=payload.actual_distance_km,
        actual_duration_minutes=payload.actual_duration_minutes,
    )


@router.post("/{trip_id}/cancel", response_model=schemas.TripOut)
def cancel_trip(
    trip_id: int,
    payload: schemas.TripCancel,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    check_trip_access(actor, trip_service.resolve_trip(db, trip_id))
    return trip_service.cancel_trip(db, trip_id, f"{actor.role.value}:{actor.id}", payload.reason)
