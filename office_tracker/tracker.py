from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from .clock import WorkdayClock, elapsed_between_ms
from .db import StateStore
from .geo import distance_m
from .ledger import RecentWindow
from .models import (
    DEFAULT_OFFICE_NAME,
    DEFAULT_RADIUS_M,
    RECENT_WINDOW_SIZE,
    WIDE_RADIUS_M,
    AppState,
    Coordinates,
    DailySession,
    GeoError,
    GeoReading,
    GeoStatus,
    OfficeLocation,
    SessionStarted,
    SessionStopped,
    StartTrigger,
    TrackerMode,
    WorkdayCompleted,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def truncate_to_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision so stored start times reload unchanged."""
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


class OfficeTracker:
    """Session state machine for office presence.

    All state changes go through the public methods. Each one works on a copy,
    saves it, and only then replaces the current state, so a failed save leaves
    the tracker exactly as it was.
    """

    def __init__(
        self,
        store: StateStore,
        tz: ZoneInfo | None = None,
        clock: WorkdayClock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.tz = tz or ZoneInfo("UTC")
        self.clock = clock or WorkdayClock()
        self.logger = logger or logging.getLogger(__name__)
        self._geo_status = GeoStatus()

        loaded = store.load()
        if loaded is None:
            self.logger.info("Starting from a fresh state")
            loaded = AppState.initial()
        self._state = loaded

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def geo_status(self) -> GeoStatus:
        return self._geo_status

    def _commit(self, candidate: AppState) -> None:
        self.store.save(candidate)
        self._state = candidate

    def start_session(
        self,
        now_utc: datetime | None = None,
        *,
        trigger: StartTrigger = StartTrigger.MANUAL,
        distance: float | None = None,
    ) -> SessionStarted | None:
        if not self._state.is_setup:
            self.logger.debug("Ignoring start before setup is complete")
            return None
        if self._state.is_active:
            self.logger.debug("Ignoring duplicate start, session running since %s", self._state.start_time)
            return None

        started = truncate_to_ms(now_utc or utc_now())
        candidate = self._state.copy()
        candidate.is_active = True
        candidate.start_time = started
        self._commit(candidate)

        self.logger.info("Session started (%s) at %s", trigger.value, started.isoformat())
        return SessionStarted(started_at=started, trigger=trigger, distance_m=distance)

    def stop_session(self, now_utc: datetime | None = None) -> SessionStopped | None:
        if not self._state.is_active or self._state.start_time is None:
            self.logger.debug("Ignoring stop while idle")
            return None

        stopped = truncate_to_ms(now_utc or utc_now())
        started = self._state.start_time
        session = DailySession(
            date=self.local_day_key(stopped),
            # A wall clock that moved backwards would give a negative span.
            duration_ms=max(0, elapsed_between_ms(started, stopped)),
        )

        candidate = self._state.copy()
        candidate.history.append(session)
        candidate.is_active = False
        candidate.start_time = None
        self._commit(candidate)
        self.clock.clear()

        self.logger.info("Session stopped: date=%s duration=%sms", session.date, session.duration_ms)
        return SessionStopped(session=session, started_at=started, stopped_at=stopped)

    def set_mode(self, mode: TrackerMode) -> None:
        if self._state.mode == mode:
            return
        candidate = self._state.copy()
        candidate.mode = mode
        self._commit(candidate)
        self.logger.info("Mode set to %s", mode.value)

    def set_office_location(self, location: OfficeLocation) -> None:
        candidate = self._state.copy()
        candidate.office_location = location
        candidate.is_setup = True
        self._commit(candidate)
        self._refresh_distance()
        self.logger.info(
            "Office location set: %s (%.6f, %.6f) radius=%sm",
            location.name, location.latitude, location.longitude, location.radius_m,
        )

    def toggle_radius(self) -> OfficeLocation | None:
        office = self._state.office_location
        if office is None:
            self.logger.debug("Ignoring radius toggle without an office location")
            return None

        radius = WIDE_RADIUS_M if office.radius_m == DEFAULT_RADIUS_M else DEFAULT_RADIUS_M
        updated = office.with_radius(radius)
        candidate = self._state.copy()
        candidate.office_location = updated
        self._commit(candidate)
        self._refresh_distance()
        self.logger.info("Office radius set to %sm", radius)
        return updated

    def setup_from_current_position(
        self,
        name: str = DEFAULT_OFFICE_NAME,
        radius_m: float = DEFAULT_RADIUS_M,
    ) -> OfficeLocation | None:
        status = self._geo_status
        if status.latitude is None or status.longitude is None:
            self.logger.debug("No position fix yet, cannot use it as the office")
            return None

        location = OfficeLocation(name=name, latitude=status.latitude, longitude=status.longitude, radius_m=radius_m)
        candidate = self._state.copy()
        candidate.office_location = location
        candidate.is_setup = True
        candidate.mode = TrackerMode.GPS
        self._commit(candidate)
        self._refresh_distance()
        self.logger.info("Office set from current position (accuracy %sm)", status.accuracy_m)
        return location

    def skip_setup(self) -> None:
        candidate = self._state.copy()
        candidate.is_setup = True
        candidate.mode = TrackerMode.MANUAL
        candidate.office_location = None
        self._commit(candidate)
        self._refresh_distance()
        self.logger.info("Setup skipped, manual tracking only")

    def reset(self) -> None:
        self._commit(AppState.initial())
        self.clock.clear()
        self._refresh_distance()
        self.logger.warning("All tracker data was reset")

    def apply_geo_sample(self, reading: GeoReading, now_utc: datetime | None = None) -> SessionStarted | None:
        """Record a position reading and run geofence automation.

        The session start time is ``now_utc`` (the moment the reading was
        received), never the device timestamp, which may be skewed.
        Errors only mark the status; the last good position stays visible.
        Leaving the geofence never stops a running session.
        """

        if isinstance(reading, GeoError):
            self._geo_status = replace(self._geo_status, last_error=reading.message, updated_at=reading.timestamp)
            self.logger.warning("Position error: %s", reading.message)
            return None

        office = self._state.office_location
        dist = distance_m(reading.coordinates, office) if office is not None else None
        self._geo_status = GeoStatus(
            has_permission=True,
            latitude=reading.latitude,
            longitude=reading.longitude,
            accuracy_m=reading.accuracy_m,
            distance_to_office_m=dist,
            last_error=None,
            updated_at=reading.timestamp,
        )

        if office is None or dist is None:
            return None
        if self._state.mode != TrackerMode.GPS:
            return None

        inside = dist <= office.radius_m
        if inside and not self._state.is_active:
            self.logger.info("Entered office geofence (%.1fm of %sm)", dist, office.radius_m)
            return self.start_session(now_utc, trigger=StartTrigger.GEOFENCE, distance=dist)
        if not inside and self._state.is_active:
            self.logger.debug("Outside geofence (%.1fm), session keeps running", dist)
        return None

    def tick(self, now_utc: datetime | None = None) -> WorkdayCompleted | None:
        return self.clock.poll(self._state, now_utc or utc_now())

    def elapsed_ms(self, now_utc: datetime | None = None) -> int:
        return self.clock.elapsed_ms(self._state, now_utc or utc_now())

    def recent_history(self, n: int = RECENT_WINDOW_SIZE) -> RecentWindow:
        return self._state.history.recent_window(n)

    def local_day_key(self, dt_utc: datetime | None = None) -> str:
        current = dt_utc or utc_now()
        return current.astimezone(self.tz).date().isoformat()

    def _refresh_distance(self) -> None:
        status = self._geo_status
        office = self._state.office_location
        dist = None
        if office is not None and status.latitude is not None and status.longitude is not None:
            dist = distance_m(Coordinates(status.latitude, status.longitude), office)
        self._geo_status = replace(status, distance_to_office_m=dist)
