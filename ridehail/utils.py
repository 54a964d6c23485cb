import math
from datetime import datetime, timezone
from typing import Optional, Tuple

from .errors import InvalidInput

LatLng = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1, lon1, lat2, lon2):
    R = EARTH_RADIUS_KM
    phi1 = math.radians(lat1); phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1); dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi/2)**2 + math.cos(phi1)*math.cos(phi2)*math.sin(dlambda/2)**2
    c = 2*math.atan2(math.sqrt(a), math.sqrt(1-a))
    return R * c

def distance_km(a: LatLng, b: LatLng) -> float:
    """Great-circle distance between two (lat, lng) points in kilometers"""
    return haversine_km(a[0], a[1], b[0], b[1])

def estimate_minutes(km: float, avg_kmh: float = 35.0) -> float:
    return (km / avg_kmh) * 60.0

def validate_coordinates(lat: float, lng: float) -> None:
    if lat is None or lng is None:
        raise InvalidInput("latitude and longitude are required")
    if not -90.0 <= lat <= 90.0:
        raise InvalidInput(f"Invalid latitude value: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise InvalidInput(f"Invalid longitude value: {lng}")

def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
