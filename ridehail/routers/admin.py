from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..db import get_db, get_session_factory
from .. import models, schemas
from .. import dashboard_service, driver_service
from .auth import Actor, require_role


router = APIRouter()


# ============================================================================
# Admin Driver / Vehicle Management
# ============================================================================

@router.post("/vehicles", response_model=schemas.VehicleOut, status_code=status.HTTP_201_CREATED)
def create_vehicle(
    payload: schemas.VehicleCreate,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    return driver_service.create_vehicle(db, payload)


@router.post("/drivers", response_model=schemas.DriverOut, status_code=status.HTTP_201_CREATED)
def create_driver(
    payload: schemas.DriverCreate,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Register a driver profile"""
    return driver_service.create_driver(db, payload)


@router.post("/drivers/{driver_id}/action", response_model=schemas.DriverOut)
def driver_action(
    driver_id: int,
    payload: schemas.AdminDriverAction,
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Perform admin action on driver"""
    return driver_service.admin_driver_action(db, driver_id, payload.action, payload.reason)


# ============================================================================
# Dashboard
# ============================================================================

@router.get("/stats", response_model=schemas.DashboardStats)
def get_stats(
    actor: Actor = Depends(require_role(models.UserRole.ADMIN)),
    session_factory=Depends(get_session_factory)
):
    """Dashboard aggregates; figures whose query timed out read as 0"""
    return dashboard_service.get_dashboard_stats(session_factory)
