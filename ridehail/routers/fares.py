from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ..db import get_db
from .. import models, schemas
from .. import fare_service
from .auth import Actor, get_current_actor, require_role


router = APIRouter()


@router.post("/estimate", response_model=schemas.FareEstimateOut)
def estimate_fare(
    payload: schemas.FareEstimateRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Price a trip without booking it"""
    params = payload.model_dump(exclude={"booking_category", "vehicle_category"}, exclude_none=True)
    amount = fare_service.estimate_fare(db, payload.booking_category, payload.vehicle_category, params)
    return schemas.FareEstimateOut(
        booking_category=payload.booking_category,
        vehicle_category=payload.vehicle_category,
        amount=amount
    )


@router.get("", response_model=List[schemas.FareEntryOut])
def list_fares(
    booking_category: Optional[models.BookingCategory] = None,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    return fare_service.list_fare_entries(db, booking_category)


@router.post("", response_model=schemas.FareEntryOut, status_code=status.HTTP_201_CREATED)
def save_fare(
    payload: schemas.FareEntryCreate,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Create or replace the fare entry for a booking/vehicle category pair"""
    return fare_service.create_fare_entry(db, payload)
