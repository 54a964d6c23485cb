"""
Dashboard Service - admin console aggregates

Each figure is its own bounded query on its own session. A figure whose query
times out reads as 0 and is listed in `degraded`; the others are still served.
"""

import logging
from typing import Callable, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .db import SessionLocal, run_with_timeout
from .errors import UpstreamTimeout
from .trip_lifecycle import AWAITING_DRIVER, all_bound_statuses

logger = logging.getLogger(__name__)


def _count_drivers(db: Session, status=None) -> int:
    query = db.query(func.count(models.Driver.id))
    if status is not None:
        query = query.filter(models.Driver.status == status)
    return query.scalar() or 0


def _count_trips(db: Session, statuses) -> int:
    return db.query(func.count(models.Trip.id)).filter(
        models.Trip.status.in_(list(statuses))
    ).scalar() or 0


def _total_revenue(db: Session) -> int:
    return int(db.query(func.coalesce(func.sum(models.Trip.fare_final), 0)).filter(
        models.Trip.status == models.TripStatus.COMPLETED
    ).scalar() or 0)


STAT_QUERIES: Dict[str, Callable[[Session], int]] = {
    "total_drivers": lambda db: _count_drivers(db),
    "online_drivers": lambda db: _count_drivers(db, models.DriverStatus.ONLINE),
    "busy_drivers": lambda db: _count_drivers(db, models.DriverStatus.BUSY),
    "active_trips": lambda db: _count_trips(db, all_bound_statuses()),
    "waiting_trips": lambda db: _count_trips(db, AWAITING_DRIVER.values()),
    "completed_trips": lambda db: _count_trips(db, [models.TripStatus.COMPLETED]),
    "total_revenue": _total_revenue,
}


def _run_in_session(session_factory, query: Callable[[Session], int]) -> int:
    db = session_factory()
    try:
        return query(db)
    finally:
        db.close()


def get_dashboard_stats(session_factory=SessionLocal, timeout: float = None) -> dict:
    stats = {}
    degraded = []

    for name, query in STAT_QUERIES.items():
        try:
            stats[name] = run_with_timeout(_run_in_session, session_factory, query, timeout=timeout, name=name)
        except UpstreamTimeout as e:
            logger.warning(f"Dashboard figure '{name}' unavailable: {e}")
            stats[name] = 0
            degraded.append(name)

    stats["degraded"] = degraded
    return stats
