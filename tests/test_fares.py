from datetime import datetime

import pytest

from ridehail import fare_service, models, schemas
from ridehail.errors import FareConfigMissing, InvalidParameter

from conftest import OUTSTATION_SEDAN_AC

REGULAR = models.BookingCategory.REGULAR
OUTSTATION = models.BookingCategory.OUTSTATION
RENTAL = models.BookingCategory.RENTAL
AIRPORT = models.BookingCategory.AIRPORT
SEDAN_AC = models.VehicleCategory.SEDAN_AC


# ============================================================================
# Regular
# ============================================================================

def test_regular_fare(db, fares):
    amount = fare_service.estimate_fare(db, REGULAR, SEDAN_AC, {"distance_km": 10, "duration_minutes": 20})
    assert amount == 50 + 10 * 12 + 20 * 1


def test_regular_fare_floors_at_minimum(db, fares):
    assert fare_service.estimate_fare(db, REGULAR, SEDAN_AC, {"distance_km": 0, "duration_minutes": 0}) == 80
    assert fare_service.estimate_fare(db, REGULAR, SEDAN_AC, {"distance_km": 1, "duration_minutes": 2}) == 80


def test_regular_fare_is_monotonic_in_distance(db, fares):
    amounts = [
        fare_service.estimate_fare(db, "regular", "sedan_ac", {"distance_km": km, "duration_minutes": 15})
        for km in (0, 0.5, 1, 2, 5, 10, 25, 60)
    ]
    assert amounts == sorted(amounts)
    assert all(amount >= 80 for amount in amounts)


def test_regular_fare_is_monotonic_in_duration(db, fares):
    amounts = [
        fare_service.estimate_fare(db, REGULAR, SEDAN_AC, {"distance_km": 1, "duration_minutes": minutes})
        for minutes in (0, 5, 10, 30, 60, 120)
    ]
    assert amounts == sorted(amounts)
    assert all(amount >= 80 for amount in amounts)
    assert amounts[0] == 80
    assert amounts[-1] == 50 + 12 + 120


def test_rounding_is_half_up():
    entry = models.FareMatrix(base_fare=0.5, per_km_rate=0, per_minute_rate=0, minimum_fare=0)
    assert fare_service.regular_fare(entry, 0, 0) == 1
    entry.base_fare = 2.5
    assert fare_service.regular_fare(entry, 0, 0) == 3


def test_negative_distance_rejected(db, fares):
    with pytest.raises(InvalidParameter):
        fare_service.estimate_fare(db, REGULAR, SEDAN_AC, {"distance_km": -1, "duration_minutes": 5})


def test_missing_distance_rejected(db, fares):
    with pytest.raises(InvalidParameter):
        fare_service.estimate_fare(db, REGULAR, SEDAN_AC, {"duration_minutes": 5})


def test_missing_fare_entry(db, fares):
    with pytest.raises(FareConfigMissing):
        fare_service.estimate_fare(db, REGULAR, models.VehicleCategory.HATCHBACK, {"distance_km": 5})


def test_inactive_entry_is_ignored(db, fares):
    fares[AIRPORT].is_active = False
    db.commit()
    with pytest.raises(FareConfigMissing):
        fare_service.estimate_fare(db, AIRPORT, SEDAN_AC, {"direction": "to_airport"})


def test_unknown_vehicle_category(db, fares):
    with pytest.raises(InvalidParameter):
        fare_service.estimate_fare(db, REGULAR, "rickshaw", {"distance_km": 5})


def test_cancellation_fee_comes_from_regular_entry(db, fares):
    assert fare_service.cancellation_fee(db, SEDAN_AC) == 25


# ============================================================================
# Outstation
# ============================================================================

@pytest.mark.parametrize("km, expected", [
    (5, 650),
    (10, 650),
    (10.5, 1900),
    (100, 3400),
    (101, 3414),
    (150, 3400 + 50 * 14),
])
def test_outstation_slabs(db, fares, km, expected):
    assert fare_service.estimate_fare(db, OUTSTATION, SEDAN_AC, {"distance_km": km}) == expected


def test_outstation_daytime_trip_has_no_surcharge(db, fares):
    params = {
        "distance_km": 100,
        "start_at": datetime(2026, 3, 2, 9, 0),
        "end_at": datetime(2026, 3, 2, 18, 0),
    }
    assert fare_service.estimate_fare(db, OUTSTATION, SEDAN_AC, params) == 3400


def test_outstation_night_surcharge(db, fares):
    params = {
        "distance_km": 100,
        "start_at": datetime(2026, 3, 2, 23, 0),
        "end_at": datetime(2026, 3, 2, 23, 45),
    }
    assert fare_service.estimate_fare(db, OUTSTATION, SEDAN_AC, params) == 4080


def test_outstation_multi_day_adds_driver_allowance(db, fares):
    params = {
        "distance_km": 100,
        "start_at": datetime(2026, 3, 2, 8, 0),
        "end_at": datetime(2026, 3, 3, 18, 0),
    }
    # crosses one night and spans two calendar days
    assert fare_service.estimate_fare(db, OUTSTATION, SEDAN_AC, params) == 4080 + 2 * 300


def test_outstation_zero_distance_rejected(db, fares):
    with pytest.raises(InvalidParameter):
        fare_service.estimate_fare(db, OUTSTATION, SEDAN_AC, {"distance_km": 0})


def test_outstation_end_before_start_rejected(db, fares):
    params = {
        "distance_km": 50,
        "start_at": datetime(2026, 3, 2, 8, 0),
        "end_at": datetime(2026, 3, 1, 8, 0),
    }
    with pytest.raises(InvalidParameter):
        fare_service.estimate_fare(db, OUTSTATION, SEDAN_AC, params)


def test_night_window_wraps_midnight():
    assert fare_service.overlaps_night(datetime(2026, 3, 2, 5, 0), None, 22, 6)
    assert fare_service.overlaps_night(datetime(2026, 3, 2, 22, 0), None, 22, 6)
    assert not fare_service.overlaps_night(datetime(2026, 3, 2, 6, 0), datetime(2026, 3, 2, 21, 59), 22, 6)
    assert fare_service.overlaps_night(datetime(2026, 3, 2, 20, 0), datetime(2026, 3, 2, 22, 30), 22, 6)


def test_calendar_days():
    assert fare_service.calendar_days(datetime(2026, 3, 2, 23, 0), datetime(2026, 3, 3, 1, 0)) == 2
    assert fare_service.calendar_days(datetime(2026, 3, 2, 1, 0), datetime(2026, 3, 2, 23, 0)) == 1


# ============================================================================
# Rental / Airport
# ============================================================================

def test_rental_km_overage(db, fares):
    assert fare_service.estimate_fare(db, RENTAL, SEDAN_AC, {"duration_hours": 4, "actual_km": 45}) == 1010


def test_rental_within_package(db, fares):
    assert fare_service.estimate_fare(db, RENTAL, SEDAN_AC, {"duration_hours": 4, "actual_km": 30}) == 925
    assert fare_service.estimate_fare(db, RENTAL, SEDAN_AC, {"duration_hours": 4}) == 925


def test_rental_minute_overage(db, fares):
    params = {"duration_hours": 4, "actual_km": 45, "actual_minutes": 250}
    assert fare_service.estimate_fare(db, RENTAL, SEDAN_AC, params) == 1010 + 10 * 2


def test_rental_popular_package_discount(db, fares):
    assert fare_service.estimate_fare(db, RENTAL, SEDAN_AC, {"duration_hours": 8}) == 1620


def test_rental_unknown_package(db, fares):
    with pytest.raises(FareConfigMissing):
        fare_service.estimate_fare(db, RENTAL, SEDAN_AC, {"duration_hours": 6})


def test_airport_fixed_fares(db, fares):
    assert fare_service.estimate_fare(db, AIRPORT, SEDAN_AC, {"direction": "to_airport"}) == 1800
    assert fare_service.estimate_fare(db, AIRPORT, SEDAN_AC, {"direction": models.AirportDirection.FROM_AIRPORT}) == 1700


def test_airport_requires_direction(db, fares):
    with pytest.raises(InvalidParameter):
        fare_service.estimate_fare(db, AIRPORT, SEDAN_AC, {})


# ============================================================================
# Fare table management
# ============================================================================

def test_saving_an_entry_replaces_its_slabs(db, fares):
    payload = OUTSTATION_SEDAN_AC.model_copy(update={
        "slabs": [
            schemas.FareSlabIn(distance_km=50, total_fare=2000),
            schemas.FareSlabIn(distance_km=100, total_fare=3600),
        ]
    })
    entry = fare_service.create_fare_entry(db, payload)

    assert [(s.distance_km, s.total_fare) for s in entry.slabs] == [(50, 2000), (100, 3600)]
    assert fare_service.estimate_fare(db, OUTSTATION, SEDAN_AC, {"distance_km": 100}) == 3600
    assert len(fare_service.list_fare_entries(db, OUTSTATION)) == 1


def test_decreasing_slabs_rejected():
    with pytest.raises(InvalidParameter):
        fare_service.validate_slabs([(10, 700), (20, 600)])
    with pytest.raises(InvalidParameter):
        fare_service.validate_slabs([(10, 700), (10, 800)])


def test_standard_entry_needs_its_rates(db):
    payload = schemas.FareEntryCreate(
        booking_category=REGULAR,
        vehicle_category=SEDAN_AC,
        per_km_rate=12,
    )
    with pytest.raises(InvalidParameter):
        fare_service.create_fare_entry(db, payload)


def test_pricing_model_must_match_category(db):
    payload = schemas.FareEntryCreate(
        booking_category=AIRPORT,
        vehicle_category=SEDAN_AC,
        pricing_model=models.PricingModel.SLAB,
        to_airport_fare=1800,
        from_airport_fare=1700,
    )
    with pytest.raises(InvalidParameter):
        fare_service.create_fare_entry(db, payload)
