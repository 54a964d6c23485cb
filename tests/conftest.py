import os

# Keep the app's own engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ridehail import fare_service, models, schemas
from ridehail.db import Base, get_db, get_session_factory
from ridehail.main import app

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN = {"X-Actor-Id": "1", "X-Actor-Role": "admin"}


def driver_headers(driver_id):
    return {"X-Actor-Id": str(driver_id), "X-Actor-Role": "driver"}


def customer_headers(customer_id):
    return {"X-Actor-Id": str(customer_id), "X-Actor-Role": "customer"}


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def make_vehicle(db):
    counter = {"n": 0}

    def _make(category=models.VehicleCategory.SEDAN_AC):
        counter["n"] += 1
        vehicle = models.Vehicle(
            registration_number=f"KA01AB{counter['n']:04d}",
            make="Maruti",
            model="Dzire",
            category=category,
        )
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle

    return _make


@pytest.fixture
def make_driver(db, make_vehicle):
    def _make(
        name="Ravi Kumar",
        status=models.DriverStatus.ONLINE,
        verified=True,
        rating=4.5,
        category=models.VehicleCategory.SEDAN_AC,
        position=None,
    ):
        vehicle = make_vehicle(category)
        driver = models.Driver(
            full_name=name,
            phone="9000000000",
            status=status,
            is_verified=verified,
            rating=rating,
            vehicle_id=vehicle.id,
        )
        db.add(driver)
        db.commit()
        if position is not None:
            db.add(models.LivePosition(driver_id=driver.id, latitude=position[0], longitude=position[1]))
            db.commit()
        db.refresh(driver)
        return driver

    return _make


@pytest.fixture
def make_trip(db):
    def _make(
        kind=models.TripKind.IMMEDIATE,
        status=None,
        driver_id=None,
        booking_category=models.BookingCategory.REGULAR,
        vehicle_category=models.VehicleCategory.SEDAN_AC,
        **fields
    ):
        if status is None:
            status = models.TripStatus.REQUESTED if kind == models.TripKind.IMMEDIATE else models.TripStatus.PENDING
        values = dict(
            customer_id=100,
            customer_name="Anita",
            customer_phone="9111111111",
            pickup_latitude=12.7409,
            pickup_longitude=77.8253,
            pickup_address="Hosur Bus Stand",
            destination_latitude=12.8452,
            destination_longitude=77.6602,
            destination_address="Electronic City",
            distance_km=20.0,
            duration_minutes=35.0,
        )
        values.update(fields)
        trip = models.Trip(
            kind=kind,
            status=status,
            driver_id=driver_id,
            booking_category=booking_category,
            vehicle_category=vehicle_category,
            **values
        )
        db.add(trip)
        db.commit()
        db.refresh(trip)
        return trip

    return _make


# ============================================================================
# Fare tables
# ============================================================================

REGULAR_SEDAN_AC = schemas.FareEntryCreate(
    booking_category=models.BookingCategory.REGULAR,
    vehicle_category=models.VehicleCategory.SEDAN_AC,
    base_fare=50,
    per_km_rate=12,
    per_minute_rate=1,
    minimum_fare=80,
    cancellation_fee=25,
)

OUTSTATION_SEDAN_AC = schemas.FareEntryCreate(
    booking_category=models.BookingCategory.OUTSTATION,
    vehicle_category=models.VehicleCategory.SEDAN_AC,
    extra_km_rate=14,
    driver_allowance_per_day=300,
    night_charge_percent=20,
    night_start_hour=22,
    night_end_hour=6,
    slabs=[
        schemas.FareSlabIn(distance_km=10, total_fare=650),
        schemas.FareSlabIn(distance_km=50, total_fare=1900),
        schemas.FareSlabIn(distance_km=100, total_fare=3400),
    ],
)

RENTAL_SEDAN_AC = schemas.FareEntryCreate(
    booking_category=models.BookingCategory.RENTAL,
    vehicle_category=models.VehicleCategory.SEDAN_AC,
    packages=[
        schemas.RentalPackageIn(
            package_name="4 Hours", duration_hours=4, km_included=40,
            base_fare=925, extra_km_rate=17, extra_minute_rate=2,
        ),
        schemas.RentalPackageIn(
            package_name="8 Hours", duration_hours=8, km_included=80,
            base_fare=1800, extra_km_rate=17, extra_minute_rate=2,
            is_popular=True, discount_percent=10,
        ),
    ],
)

AIRPORT_SEDAN_AC = schemas.FareEntryCreate(
    booking_category=models.BookingCategory.AIRPORT,
    vehicle_category=models.VehicleCategory.SEDAN_AC,
    to_airport_fare=1800,
    from_airport_fare=1700,
)


@pytest.fixture
def fares(db):
    """Fare entries for every booking category of sedan_ac"""
    return {
        entry.booking_category: entry
        for entry in (
            fare_service.create_fare_entry(db, payload)
            for payload in (REGULAR_SEDAN_AC, OUTSTATION_SEDAN_AC, RENTAL_SEDAN_AC, AIRPORT_SEDAN_AC)
        )
    }
