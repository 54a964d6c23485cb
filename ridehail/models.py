from sqlalchemy import Column, Integer, Float, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum
from .db import Base
from .utils import utcnow


# Enums
class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"
    DRIVER = "driver"
    VENDOR = "vendor"


class DriverStatus(str, enum.Enum):
    OFFLINE = "offline"
    ONLINE = "online"  # Available for assignment
    BUSY = "busy"  # Bound to an active trip
    SUSPENDED = "suspended"  # Admin action


class VehicleCategory(str, enum.Enum):
    HATCHBACK = "hatchback"
    HATCHBACK_AC = "hatchback_ac"
    SEDAN = "sedan"
    SEDAN_AC = "sedan_ac"
    SUV = "suv"
    SUV_AC = "suv_ac"


class BookingCategory(str, enum.Enum):
    REGULAR = "regular"
    RENTAL = "rental"
    OUTSTATION = "outstation"
    AIRPORT = "airport"


class TripKind(str, enum.Enum):
    IMMEDIATE = "immediate"  # Ride requested for now
    SCHEDULED = "scheduled"  # Pre-booked rental/outstation/airport trip


class TripStatus(str, enum.Enum):
    REQUESTED = "requested"  # Immediate trip waiting for a driver
    PENDING = "pending"  # Scheduled trip waiting for a driver
    ACCEPTED = "accepted"
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    DRIVER_ARRIVED = "driver_arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PricingModel(str, enum.Enum):
    STANDARD = "standard"  # base + per km + per minute
    SLAB = "slab"  # distance bands
    PACKAGE = "package"  # hourly rental packages
    FIXED_ROUTE = "fixed_route"  # airport transfers


class AirportDirection(str, enum.Enum):
    TO_AIRPORT = "to_airport"
    FROM_AIRPORT = "from_airport"


class NotificationStatus(str, enum.Enum):
    UNREAD = "unread"
    READ = "read"


# Models
class Vehicle(Base):
    """Vehicle owned by a driver or a vendor fleet"""
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    registration_number = Column(String(32), unique=True, nullable=False, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=True)
    color = Column(String(50), nullable=True)
    capacity = Column(Integer, default=4)
    category = Column(SQLEnum(VehicleCategory), nullable=False, index=True)
    vendor_id = Column(Integer, nullable=True, index=True)  # Fleet owner, if any

    created_at = Column(DateTime, default=utcnow)

    drivers = relationship("Driver", back_populates="vehicle")


class Driver(Base):
    """Driver profile, availability state and verification"""
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)

    status = Column(SQLEnum(DriverStatus), default=DriverStatus.OFFLINE, nullable=False, index=True)
    is_verified = Column(Boolean, default=False, index=True)  # Manual admin verification
    rating = Column(Float, default=5.0)
    total_trips = Column(Integer, default=0)

    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    vendor_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    vehicle = relationship("Vehicle", back_populates="drivers")
    position = relationship("LivePosition", back_populates="driver", uselist=False, cascade="all, delete-orphan", passive_deletes=True)
    trips = relationship("Trip", back_populates="driver")
    notifications = relationship("AssignmentNotification", back_populates="driver", cascade="all, delete-orphan")


class LivePosition(Base):
    """Latest reported position of a driver - one row per driver, never a history"""
    __tablename__ = "live_positions"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id", ondelete="CASCADE"), unique=True, nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    heading = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)

    # Wall-clock time of the fix; newer fixes win
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    driver = relationship("Driver", back_populates="position")


class Trip(Base):
    """
    A ride request. Immediate rides and scheduled bookings share this table and
    one lifecycle; `kind` tells them apart.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(SQLEnum(TripKind), nullable=False, default=TripKind.IMMEDIATE, index=True)

    # Customer (contact snapshot for the driver notification)
    customer_id = Column(Integer, nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(20), nullable=True)

    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True, index=True)
    status = Column(SQLEnum(TripStatus), nullable=False, index=True)

    booking_category = Column(SQLEnum(BookingCategory), nullable=False, default=BookingCategory.REGULAR)
    vehicle_category = Column(SQLEnum(VehicleCategory), nullable=False)

    # Route
    pickup_latitude = Column(Float, nullable=False)
    pickup_longitude = Column(Float, nullable=False)
    pickup_address = Column(Text, nullable=True)
    destination_latitude = Column(Float, nullable=True)
    destination_longitude = Column(Float, nullable=True)
    destination_address = Column(Text, nullable=True)
    distance_km = Column(Float, nullable=True)
    duration_minutes = Column(Float, nullable=True)

    # Category specific parameters
    rental_hours = Column(Integer, nullable=True)
    airport_direction = Column(SQLEnum(AirportDirection), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    return_at = Column(DateTime, nullable=True)

    # Pricing
    fare_estimate = Column(Integer, nullable=True)
    fare_final = Column(Integer, nullable=True)
    cancellation_fee = Column(Integer, nullable=True)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING)

    # Cancellation
    cancelled_by = Column(String(50), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    driver = relationship("Driver", back_populates="trips")
    notification = relationship("AssignmentNotification", back_populates="trip", uselist=False)


class FareMatrix(Base):
    """Fare table entry for one (booking category, vehicle category) pair"""
    __tablename__ = "fare_matrix"
    __table_args__ = (UniqueConstraint("booking_category", "vehicle_category", name="uq_fare_matrix_category"),)

    id = Column(Integer, primary_key=True, index=True)
    booking_category = Column(SQLEnum(BookingCategory), nullable=False, index=True)
    vehicle_category = Column(SQLEnum(VehicleCategory), nullable=False, index=True)
    pricing_model = Column(SQLEnum(PricingModel), nullable=False)
    is_active = Column(Boolean, default=True)

    # Standard distance/time
    base_fare = Column(Float, nullable=True)
    per_km_rate = Column(Float, nullable=True)
    per_minute_rate = Column(Float, nullable=True)
    minimum_fare = Column(Float, nullable=True)
    cancellation_fee = Column(Float, nullable=True)

    # Slab (outstation)
    extra_km_rate = Column(Float, nullable=True)
    driver_allowance_per_day = Column(Float, nullable=True)
    night_charge_percent = Column(Float, nullable=True)
    night_start_hour = Column(Integer, nullable=True)
    night_end_hour = Column(Integer, nullable=True)

    # Fixed route (airport)
    to_airport_fare = Column(Float, nullable=True)
    from_airport_fare = Column(Float, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    slabs = relationship("FareSlab", back_populates="fare", cascade="all, delete-orphan", order_by="FareSlab.distance_km")
    packages = relationship("RentalPackage", back_populates="fare", cascade="all, delete-orphan", order_by="RentalPackage.duration_hours")


class FareSlab(Base):
    """Total fare for trips up to `distance_km`"""
    __tablename__ = "fare_slabs"
    __table_args__ = (UniqueConstraint("fare_id", "distance_km", name="uq_fare_slab_distance"),)

    id = Column(Integer, primary_key=True, index=True)
    fare_id = Column(Integer, ForeignKey("fare_matrix.id", ondelete="CASCADE"), nullable=False, index=True)
    distance_km = Column(Float, nullable=False)
    total_fare = Column(Float, nullable=False)

    fare = relationship("FareMatrix", back_populates="slabs")


class RentalPackage(Base):
    """Hourly rental package row"""
    __tablename__ = "rental_packages"
    __table_args__ = (UniqueConstraint("fare_id", "duration_hours", name="uq_rental_package_hours"),)

    id = Column(Integer, primary_key=True, index=True)
    fare_id = Column(Integer, ForeignKey("fare_matrix.id", ondelete="CASCADE"), nullable=False, index=True)
    package_name = Column(String(50), nullable=False)  # e.g. "4 Hours"
    duration_hours = Column(Integer, nullable=False)
    km_included = Column(Float, nullable=False)
    base_fare = Column(Float, nullable=False)
    extra_km_rate = Column(Float, nullable=False)
    extra_minute_rate = Column(Float, default=0.0)
    is_popular = Column(Boolean, default=False)
    discount_percent = Column(Float, default=0.0)

    fare = relationship("FareMatrix", back_populates="packages")


class AssignmentNotification(Base):
    """Message record for the driver, written once when a trip is assigned"""
    __tablename__ = "assignment_notifications"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, unique=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    pickup_address = Column(Text, nullable=True)
    destination_address = Column(Text, nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(20), nullable=True)
    admin_notes = Column(Text, nullable=True)
    assigned_by = Column(String(50), default="admin")

    status = Column(SQLEnum(NotificationStatus), default=NotificationStatus.UNREAD)
    created_at = Column(DateTime, default=utcnow, index=True)

    driver = relationship("Driver", back_populates="notifications")
    trip = relationship("Trip", back_populates="notification")
