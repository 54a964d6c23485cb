"""
Driver-side location tracking

While a driver is online their position is pushed to the store by two
triggers:
- a position-change listener from the device locator (time/distance thresholds)
- a fixed-period timer that re-samples the locator, for devices whose listener
  goes quiet when the driver stands still

Tracking state lives in the TrackingSession returned by start_tracking; the
caller keeps it and hands it back to stop_tracking / force_report.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Event, RLock, Thread
from typing import Callable, Optional, Protocol

import httpx

from . import driver_service, location_service
from .core.settings import settings
from .db import SessionLocal
from .errors import LocationUnavailable
from .models import DriverStatus
from .utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class PositionFix:
    latitude: float
    longitude: float
    heading: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = None
    recorded_at: datetime = field(default_factory=utcnow)

    def as_report(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "heading": self.heading,
            "speed": self.speed,
            "accuracy": self.accuracy,
            "recorded_at": self.recorded_at.isoformat(),
        }


class Subscription(Protocol):
    def remove(self) -> None: ...


class Locator(Protocol):
    """Device positioning: one-shot fixes plus a change listener"""

    def current_fix(self) -> Optional[PositionFix]: ...

    def watch(
        self,
        callback: Callable[[PositionFix], None],
        time_interval_s: float,
        distance_interval_m: float,
    ) -> Subscription: ...


class DriverGateway(Protocol):
    def report_location(self, driver_id: int, fix: PositionFix) -> None: ...

    def set_status(self, driver_id: int, status: DriverStatus) -> None: ...


class TrackingState(str, enum.Enum):
    STOPPED = "stopped"
    TRACKING = "tracking"


class TrackingSession:
    """One driver's tracking run; not reusable once stopped"""

    def __init__(
        self,
        driver_id: int,
        locator: Locator,
        gateway: DriverGateway,
        interval_seconds: float,
        distance_interval_m: float,
    ):
        self.driver_id = driver_id
        self.locator = locator
        self.gateway = gateway
        self.interval_seconds = interval_seconds
        self.distance_interval_m = distance_interval_m

        self.state = TrackingState.STOPPED
        self.last_fix: Optional[PositionFix] = None
        self.reports_sent = 0

        self._subscription: Optional[Subscription] = None
        self._timer: Optional[Thread] = None
        self._stop_event = Event()
        self._lock = RLock()

    @property
    def is_tracking(self) -> bool:
        return self.state == TrackingState.TRACKING

    def _emit(self, fix: PositionFix, trigger: str) -> bool:
        with self._lock:
            self.last_fix = fix
        try:
            self.gateway.report_location(self.driver_id, fix)
        except Exception as e:
            logger.error(f"Location report ({trigger}) failed for driver {self.driver_id}: {e}")
            return False
        with self._lock:
            self.reports_sent += 1
        return True

    def _on_position(self, fix: PositionFix) -> None:
        if self._stop_event.is_set():
            return
        self._emit(fix, "listener")

    def _sample(self) -> None:
        try:
            fix = self.locator.current_fix()
        except LocationUnavailable as e:
            logger.warning(f"Periodic fix unavailable for driver {self.driver_id}: {e}")
            return
        except Exception as e:
            logger.error(f"Periodic fix failed for driver {self.driver_id}: {e}")
            return
        if fix is not None:
            self._emit(fix, "timer")

    def _timer_loop(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self._sample()

    def _start(self, first_fix: PositionFix) -> None:
        self._emit(first_fix, "initial")
        self._subscription = self.locator.watch(
            self._on_position, self.interval_seconds, self.distance_interval_m
        )
        self._timer = Thread(
            target=self._timer_loop, daemon=True, name=f"tracking-driver-{self.driver_id}"
        )
        self._timer.start()
        self.state = TrackingState.TRACKING


def start_tracking(
    driver_id: int,
    locator: Locator,
    gateway: DriverGateway,
    interval_seconds: float = None,
    distance_interval_m: float = None,
) -> TrackingSession:
    """
    Take a first fix and start both triggers.

    Raises LocationUnavailable, with nothing started, when no fix can be had.
    """
    fix = locator.current_fix()
    if fix is None:
        raise LocationUnavailable(f"No position fix available for driver {driver_id}")

    session = TrackingSession(
        driver_id,
        locator,
        gateway,
        interval_seconds=settings.TRACKING_INTERVAL_SECONDS if interval_seconds is None else interval_seconds,
        distance_interval_m=settings.TRACKING_DISTANCE_INTERVAL_M if distance_interval_m is None else distance_interval_m,
    )
    session._start(fix)

    logger.info(f"Location tracking started for driver {driver_id} (every {session.interval_seconds:g}s)")
    return session


def stop_tracking(session: TrackingSession) -> None:
    """Cancel the listener and the timer; both are gone when this returns"""
    session._stop_event.set()

    if session._subscription is not None:
        session._subscription.remove()
        session._subscription = None

    if session._timer is not None:
        session._timer.join(timeout=session.interval_seconds + 5)
        session._timer = None

    if session.state == TrackingState.TRACKING:
        logger.info(f"Location tracking stopped for driver {session.driver_id}")
    session.state = TrackingState.STOPPED


def force_report(session: TrackingSession) -> PositionFix:
    """Push the last known fix right away"""
    fix = session.last_fix
    if fix is None:
        raise LocationUnavailable(f"No known position for driver {session.driver_id}")
    session.gateway.report_location(session.driver_id, fix)
    with session._lock:
        session.reports_sent += 1
    return fix


def go_online(driver_id: int, locator: Locator, gateway: DriverGateway, **tracking_options) -> TrackingSession:
    """Start tracking, then flip the driver online; without a fix they stay offline"""
    session = start_tracking(driver_id, locator, gateway, **tracking_options)
    try:
        gateway.set_status(driver_id, DriverStatus.ONLINE)
    except Exception:
        stop_tracking(session)
        raise
    return session


def go_offline(session: TrackingSession, gateway: DriverGateway = None) -> None:
    stop_tracking(session)
    (gateway or session.gateway).set_status(session.driver_id, DriverStatus.OFFLINE)


# ============================================================================
# Gateways
# ============================================================================

class HttpDriverGateway:
    """Talks to the dispatch API over HTTP"""

    def __init__(
        self,
        base_url: str = None,
        client: httpx.Client = None,
        timeout: float = None,
        actor_id: int = None,
        actor_role: str = "driver",
    ):
        self.client = client or httpx.Client(
            base_url=base_url or settings.API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS if timeout is None else timeout,
        )
        self.actor_id = actor_id
        self.actor_role = actor_role

    def _headers(self, driver_id: int) -> dict:
        actor_id = self.actor_id if self.actor_id is not None else driver_id
        return {"X-Actor-Id": str(actor_id), "X-Actor-Role": self.actor_role}

    def report_location(self, driver_id: int, fix: PositionFix) -> None:
        response = self.client.post(
            f"/drivers/{driver_id}/location",
            json=fix.as_report(),
            headers=self._headers(driver_id),
        )
        response.raise_for_status()

    def set_status(self, driver_id: int, status: DriverStatus) -> None:
        response = self.client.put(
            f"/drivers/{driver_id}/status",
            json={"status": DriverStatus(status).value},
            headers=self._headers(driver_id),
        )
        response.raise_for_status()

    def close(self) -> None:
        self.client.close()


class StoreDriverGateway:
    """Writes straight to the store, one session per call"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def report_location(self, driver_id: int, fix: PositionFix) -> None:
        db = self.session_factory()
        try:
            location_service.report_location(db, driver_id, fix)
        finally:
            db.close()

    def set_status(self, driver_id: int, status: DriverStatus) -> None:
        db = self.session_factory()
        try:
            driver_service.set_driver_status(db, driver_id, status)
        finally:
            db.close()
