"""
Location Service - stores the latest position of every driver

One live_positions row per driver, written with an upsert. The write only
lands when the report's wall-clock time is not older than the stored one, so
two triggers firing close together cannot roll a position backwards.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .errors import DriverNotFound
from .utils import to_naive_utc, utcnow, validate_coordinates

logger = logging.getLogger(__name__)

POSITION_FIELDS = ("latitude", "longitude", "heading", "speed", "accuracy", "updated_at")


def _fix_time(moment: Optional[datetime]) -> datetime:
    return to_naive_utc(moment) if moment is not None else utcnow()


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


def _upsert(db: Session, values: dict) -> bool:
    """Insert or overwrite the driver's row; False when the stored fix is newer"""
    insert = _dialect_insert(db)

    if insert is not None:
        stmt = insert(models.LivePosition).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[models.LivePosition.driver_id],
            set_={field: getattr(stmt.excluded, field) for field in POSITION_FIELDS},
            where=models.LivePosition.updated_at <= stmt.excluded.updated_at,
        )
        result = db.execute(stmt)
        return result.rowcount != 0

    # Other stores: lock the row and compare in Python
    position = db.query(models.LivePosition).filter(
        models.LivePosition.driver_id == values["driver_id"]
    ).with_for_update().first()

    if position is None:
        db.add(models.LivePosition(**values))
        return True
    if position.updated_at > values["updated_at"]:
        return False
    for field in POSITION_FIELDS:
        setattr(position, field, values[field])
    return True


def report_location(db: Session, driver_id: int, report) -> models.LivePosition:
    """
    Record a position fix for a driver.

    `report` carries latitude, longitude, heading, speed, accuracy and an
    optional recorded_at. Returns the row as stored after the write.
    """
    validate_coordinates(report.latitude, report.longitude)

    driver = db.query(models.Driver).filter(models.Driver.id == driver_id).first()
    if not driver:
        raise DriverNotFound(f"Driver {driver_id} not found")

    values = {
        "driver_id": driver_id,
        "latitude": report.latitude,
        "longitude": report.longitude,
        "heading": report.heading,
        "speed": report.speed,
        "accuracy": report.accuracy,
        "updated_at": _fix_time(report.recorded_at),
    }

    applied = _upsert(db, values)
    db.commit()

    if applied:
        logger.debug(f"Location updated for driver {driver_id}: {report.latitude:.6f}, {report.longitude:.6f}")
    else:
        logger.info(f"Stale location report for driver {driver_id} ignored (recorded {values['updated_at'].isoformat()})")

    return get_position(db, driver_id)


def get_position(db: Session, driver_id: int) -> Optional[models.LivePosition]:
    return db.query(models.LivePosition).filter(
        models.LivePosition.driver_id == driver_id
    ).first()
