from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from .models import (
    DriverStatus, VehicleCategory, BookingCategory, TripKind, TripStatus,
    PaymentStatus, PricingModel, AirportDirection, NotificationStatus
)


# ============================================================================
# Location Schemas
# ============================================================================

class LocationReport(BaseModel):
    """Position fix reported by the driver client"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    heading: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = None
    recorded_at: Optional[datetime] = None  # Time of the fix; defaults to receipt time


class LivePositionOut(BaseModel):
    driver_id: int
    latitude: float
    longitude: float
    heading: Optional[float]
    speed: Optional[float]
    accuracy: Optional[float]
    updated_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Driver / Vehicle Schemas
# ============================================================================

class VehicleCreate(BaseModel):
    registration_number: str = Field(..., min_length=2, max_length=32)
    make: str
    model: str
    year: Optional[int] = Field(None, ge=1980, le=2100)
    color: Optional[str] = None
    capacity: int = Field(4, ge=1, le=20)
    category: VehicleCategory
    vendor_id: Optional[int] = None


class VehicleOut(BaseModel):
    id: int
    registration_number: str
    make: str
    model: str
    year: Optional[int]
    color: Optional[str]
    capacity: int
    category: VehicleCategory
    vendor_id: Optional[int]

    class Config:
        from_attributes = True


class DriverCreate(BaseModel):
    """Register a driver profile (credentials are issued elsewhere)"""
    full_name: str = Field(..., min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    vehicle_id: Optional[int] = None
    vendor_id: Optional[int] = None
    is_verified: bool = False
    rating: float = Field(5.0, ge=0, le=5)


class DriverOut(BaseModel):
    id: int
    full_name: str
    phone: Optional[str]
    status: DriverStatus
    is_verified: bool
    rating: float
    total_trips: int
    vehicle_id: Optional[int]
    vendor_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DriverStatusUpdate(BaseModel):
    """Driver's own online/offline toggle"""
    status: DriverStatus


class AssignableDriverOut(BaseModel):
    id: int
    full_name: str
    phone: Optional[str]
    rating: float
    total_trips: int
    vehicle_registration: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_category: Optional[VehicleCategory] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_km: Optional[float] = None

    class Config:
        from_attributes = True


class AdminDriverAction(BaseModel):
    """Admin action on driver"""
    action: str = Field(..., pattern=r'^(verify|unverify|suspend|reinstate)$')
    reason: Optional[str] = None


# ============================================================================
# Trip Schemas
# ============================================================================

class TripCreate(BaseModel):
    kind: TripKind = TripKind.IMMEDIATE
    customer_id: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    booking_category: BookingCategory = BookingCategory.REGULAR
    vehicle_category: VehicleCategory

    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)
    pickup_address: Optional[str] = None
    destination_latitude: Optional[float] = Field(None, ge=-90, le=90)
    destination_longitude: Optional[float] = Field(None, ge=-180, le=180)
    destination_address: Optional[str] = None
    distance_km: Optional[float] = None  # Overrides the straight-line estimate

    rental_hours: Optional[int] = None
    airport_direction: Optional[AirportDirection] = None
    scheduled_at: Optional[datetime] = None
    return_at: Optional[datetime] = None


class TripOut(BaseModel):
    id: int
    kind: TripKind
    customer_id: int
    customer_name: Optional[str]
    customer_phone: Optional[str]
    driver_id: Optional[int]
    status: TripStatus
    booking_category: BookingCategory
    vehicle_category: VehicleCategory
    pickup_latitude: float
    pickup_longitude: float
    pickup_address: Optional[str]
    destination_latitude: Optional[float]
    destination_longitude: Optional[float]
    destination_address: Optional[str]
    distance_km: Optional[float]
    duration_minutes: Optional[float]
    rental_hours: Optional[int]
    airport_direction: Optional[AirportDirection]
    scheduled_at: Optional[datetime]
    return_at: Optional[datetime]
    fare_estimate: Optional[int]
    fare_final: Optional[int]
    cancellation_fee: Optional[int]
    payment_status: PaymentStatus
    cancelled_by: Optional[str]
    cancellation_reason: Optional[str]
    cancelled_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AssignDriverRequest(BaseModel):
    driver_id: int
    admin_notes: Optional[str] = None


class AssignmentResultOut(BaseModel):
    message: str
    trip_id: int
    trip_kind: TripKind
    trip_status: TripStatus
    driver_id: int
    driver_name: str
    driver_phone: Optional[str]
    notification_id: int
    driver_status_updated: bool
    warnings: List[str] = []

    class Config:
        from_attributes = True


class TripComplete(BaseModel):
    actual_distance_km: Optional[float] = Field(None, ge=0)
    actual_duration_minutes: Optional[float] = Field(None, ge=0)


class TripCancel(BaseModel):
    reason: Optional[str] = None


# ============================================================================
# Fare Schemas
# ============================================================================

class FareEstimateRequest(BaseModel):
    """Parameters depend on the booking category - see fare_service.estimate_fare"""
    booking_category: BookingCategory
    vehicle_category: VehicleCategory
    distance_km: Optional[float] = None
    duration_minutes: Optional[float] = None
    duration_hours: Optional[float] = None
    actual_km: Optional[float] = None
    actual_minutes: Optional[float] = None
    direction: Optional[AirportDirection] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None


class FareEstimateOut(BaseModel):
    booking_category: BookingCategory
    vehicle_category: VehicleCategory
    amount: int


class FareSlabIn(BaseModel):
    distance_km: float
    total_fare: float


class FareSlabOut(FareSlabIn):
    class Config:
        from_attributes = True


class RentalPackageIn(BaseModel):
    package_name: str
    duration_hours: int = Field(..., gt=0)
    km_included: float = Field(..., ge=0)
    base_fare: float = Field(..., ge=0)
    extra_km_rate: float = Field(..., ge=0)
    extra_minute_rate: float = Field(0.0, ge=0)
    is_popular: bool = False
    discount_percent: float = Field(0.0, ge=0, le=100)


class RentalPackageOut(RentalPackageIn):
    class Config:
        from_attributes = True


class FareEntryCreate(BaseModel):
    booking_category: BookingCategory
    vehicle_category: VehicleCategory
    pricing_model: Optional[PricingModel] = None  # Derived from the category when omitted
    is_active: bool = True

    base_fare: Optional[float] = Field(None, ge=0)
    per_km_rate: Optional[float] = Field(None, ge=0)
    per_minute_rate: Optional[float] = Field(None, ge=0)
    minimum_fare: Optional[float] = Field(None, ge=0)
    cancellation_fee: Optional[float] = Field(None, ge=0)

    extra_km_rate: Optional[float] = Field(None, ge=0)
    driver_allowance_per_day: Optional[float] = Field(None, ge=0)
    night_charge_percent: Optional[float] = Field(None, ge=0, le=100)
    night_start_hour: Optional[int] = Field(None, ge=0, le=23)
    night_end_hour: Optional[int] = Field(None, ge=0, le=23)

    to_airport_fare: Optional[float] = Field(None, gt=0)
    from_airport_fare: Optional[float] = Field(None, gt=0)

    slabs: List[FareSlabIn] = []
    packages: List[RentalPackageIn] = []


class FareEntryOut(BaseModel):
    id: int
    booking_category: BookingCategory
    vehicle_category: VehicleCategory
    pricing_model: PricingModel
    is_active: bool
    base_fare: Optional[float]
    per_km_rate: Optional[float]
    per_minute_rate: Optional[float]
    minimum_fare: Optional[float]
    cancellation_fee: Optional[float]
    extra_km_rate: Optional[float]
    driver_allowance_per_day: Optional[float]
    night_charge_percent: Optional[float]
    night_start_hour: Optional[int]
    night_end_hour: Optional[int]
    to_airport_fare: Optional[float]
    from_airport_fare: Optional[float]
    slabs: List[FareSlabOut]
    packages: List[RentalPackageOut]

    class Config:
        from_attributes = True


# ============================================================================
# Notification / Dashboard Schemas
# ============================================================================

class NotificationOut(BaseModel):
    id: int
    driver_id: int
    trip_id: int
    title: str
    message: str
    pickup_address: Optional[str]
    destination_address: Optional[str]
    customer_name: Optional[str]
    customer_phone: Optional[str]
    admin_notes: Optional[str]
    assigned_by: str
    status: NotificationStatus
    created_at: datetime

    class Config:
        from_attributes = True


class DashboardStats(BaseModel):
    """Admin dashboard aggregates; a timed-out figure reads as 0"""
    total_drivers: int
    online_drivers: int
    busy_drivers: int
    active_trips: int
    waiting_trips: int
    completed_trips: int
    total_revenue: int
    degraded: List[str] = []
