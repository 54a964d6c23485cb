from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from ridehail import assignment_service, models
from ridehail.errors import (
    DriverNotAvailable,
    DriverNotFound,
    DriverNotVerified,
    PreconditionFailed,
    TripAlreadyAssigned,
    TripNotAssignable,
    TripNotFound,
)

S = models.TripStatus


def notifications_for(db, trip_id):
    return db.query(models.AssignmentNotification).filter(
        models.AssignmentNotification.trip_id == trip_id
    ).all()


def test_assign_immediate_ride(db, make_driver, make_trip):
    driver = make_driver(name="Suresh")
    trip = make_trip()

    result = assignment_service.assign_driver(db, trip.id, driver.id, notes="VIP customer")

    assert result.trip_status == S.ACCEPTED
    assert result.trip_kind == models.TripKind.IMMEDIATE
    assert result.driver_name == "Suresh"
    assert result.driver_status_updated is True
    assert result.warnings == []

    db.refresh(trip)
    db.refresh(driver)
    assert trip.status == S.ACCEPTED
    assert trip.driver_id == driver.id
    assert driver.status == models.DriverStatus.BUSY

    notifications = notifications_for(db, trip.id)
    assert len(notifications) == 1
    assert notifications[0].id == result.notification_id
    assert notifications[0].driver_id == driver.id
    assert notifications[0].admin_notes == "VIP customer"
    assert notifications[0].status == models.NotificationStatus.UNREAD
    assert "Hosur Bus Stand" in notifications[0].message


def test_assign_scheduled_booking(db, make_driver, make_trip):
    driver = make_driver()
    trip = make_trip(kind=models.TripKind.SCHEDULED,
                     booking_category=models.BookingCategory.AIRPORT,
                     airport_direction=models.AirportDirection.TO_AIRPORT)

    result = assignment_service.assign_driver(db, trip.id, driver.id)

    assert result.trip_status == S.ASSIGNED
    assert "booking" in notifications_for(db, trip.id)[0].title


def test_second_assignment_is_rejected(db, make_driver, make_trip):
    first = make_driver(name="First")
    second = make_driver(name="Second")
    trip = make_trip()

    assignment_service.assign_driver(db, trip.id, first.id)

    with pytest.raises(TripAlreadyAssigned) as excinfo:
        assignment_service.assign_driver(db, trip.id, second.id)
    assert isinstance(excinfo.value, PreconditionFailed)

    db.refresh(trip)
    db.refresh(second)
    assert trip.driver_id == first.id
    assert second.status == models.DriverStatus.ONLINE
    assert len(notifications_for(db, trip.id)) == 1


def test_racing_assignment_loses_at_the_conditional_update(db, make_driver, make_trip):
    winner = make_driver(name="Winner")
    loser = make_driver(name="Loser")
    trip = make_trip()

    # The loser read the trip while it was still waiting; the winner's
    # assignment lands before the loser's update runs.
    original_claim = assignment_service._claim_trip

    def claim_after_rival(session, trip_row, driver_id):
        session.execute(
            models.Trip.__table__.update()
            .where(models.Trip.id == trip.id)
            .values(status=S.ACCEPTED, driver_id=winner.id)
        )
        session.commit()
        return original_claim(session, trip_row, driver_id)

    with patch.object(assignment_service, "_claim_trip", side_effect=claim_after_rival):
        with pytest.raises(TripAlreadyAssigned):
            assignment_service.assign_driver(db, trip.id, loser.id)

    db.refresh(trip)
    db.refresh(loser)
    assert trip.driver_id == winner.id
    assert loser.status == models.DriverStatus.ONLINE
    assert notifications_for(db, trip.id) == []


def test_driver_taken_by_a_racing_assignment_is_not_double_booked(db, make_driver, make_trip):
    driver = make_driver()
    trip_a = make_trip()
    trip_b = make_trip()

    # Both callers saw the driver online; the rival binds the driver to
    # trip B before this call's claim on trip A runs.
    original_claim = assignment_service._claim_trip

    def claim_after_rival(session, trip_row, driver_id):
        session.execute(
            models.Trip.__table__.update()
            .where(models.Trip.id == trip_b.id)
            .values(status=S.ACCEPTED, driver_id=driver.id)
        )
        session.execute(
            models.Driver.__table__.update()
            .where(models.Driver.id == driver.id)
            .values(status=models.DriverStatus.BUSY)
        )
        session.commit()
        return original_claim(session, trip_row, driver_id)

    with patch.object(assignment_service, "_claim_trip", side_effect=claim_after_rival):
        with pytest.raises(DriverNotAvailable):
            assignment_service.assign_driver(db, trip_a.id, driver.id)

    db.refresh(trip_a)
    db.refresh(driver)
    assert trip_a.status == S.REQUESTED
    assert trip_a.driver_id is None
    assert driver.status == models.DriverStatus.BUSY
    assert notifications_for(db, trip_a.id) == []

    bound = db.query(models.Trip).filter(
        models.Trip.driver_id == driver.id,
        models.Trip.status.in_([S.ASSIGNED, S.CONFIRMED, S.ACCEPTED, S.DRIVER_ARRIVED, S.IN_PROGRESS]),
    ).count()
    assert bound == 1


def test_cancelled_trip_is_not_assignable(db, make_driver, make_trip):
    driver = make_driver()
    trip = make_trip(status=S.CANCELLED)

    with pytest.raises(TripNotAssignable):
        assignment_service.assign_driver(db, trip.id, driver.id)

    db.refresh(driver)
    assert driver.status == models.DriverStatus.ONLINE


def test_driver_status_failure_is_recoverable(db, make_driver, make_trip):
    driver = make_driver()
    trip = make_trip()

    failure = OperationalError("UPDATE drivers", {}, Exception("database is locked"))
    with patch.object(assignment_service, "_mark_driver_busy", side_effect=failure):
        result = assignment_service.assign_driver(db, trip.id, driver.id)

    assert result.driver_status_updated is False
    assert result.warnings

    db.refresh(trip)
    db.refresh(driver)
    assert trip.status == S.ACCEPTED
    assert trip.driver_id == driver.id
    assert driver.status == models.DriverStatus.ONLINE
    assert len(notifications_for(db, trip.id)) == 1


def test_notification_failure_rolls_everything_back(db, make_driver, make_trip):
    driver = make_driver()
    trip = make_trip()

    with patch.object(assignment_service, "_notification_text", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            assignment_service.assign_driver(db, trip.id, driver.id)

    db.refresh(trip)
    db.refresh(driver)
    assert trip.status == S.REQUESTED
    assert trip.driver_id is None
    assert driver.status == models.DriverStatus.ONLINE


def test_unknown_trip(db, make_driver):
    driver = make_driver()
    with pytest.raises(TripNotFound):
        assignment_service.assign_driver(db, 404, driver.id)


def test_unknown_driver(db, make_trip):
    trip = make_trip()
    with pytest.raises(DriverNotFound):
        assignment_service.assign_driver(db, trip.id, 404)


def test_offline_driver_not_available(db, make_driver, make_trip):
    driver = make_driver(status=models.DriverStatus.OFFLINE)
    trip = make_trip()

    with pytest.raises(DriverNotAvailable) as excinfo:
        assignment_service.assign_driver(db, trip.id, driver.id)
    assert excinfo.value.retryable

    db.refresh(trip)
    assert trip.status == S.REQUESTED


def test_unverified_driver_rejected(db, make_driver, make_trip):
    driver = make_driver(verified=False)
    trip = make_trip()

    with pytest.raises(DriverNotVerified):
        assignment_service.assign_driver(db, trip.id, driver.id)


def test_busy_driver_not_available(db, make_driver, make_trip):
    driver = make_driver()
    assignment_service.assign_driver(db, make_trip().id, driver.id)

    with pytest.raises(DriverNotAvailable):
        assignment_service.assign_driver(db, make_trip().id, driver.id)
