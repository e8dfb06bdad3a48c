from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Final, Union

from .ledger import HistoryLedger

WORKDAY_MS: Final[int] = 9 * 60 * 60 * 1000
TICK_MS: Final[int] = 1000
DEFAULT_RADIUS_M: Final[float] = 100.0
WIDE_RADIUS_M: Final[float] = 500.0
DEFAULT_OFFICE_NAME: Final[str] = "My Office"
RECENT_WINDOW_SIZE: Final[int] = 7
STORAGE_KEY: Final[str] = "office_tracker_data_v2"


class TrackerMode(str, Enum):
    GPS = "GPS"
    MANUAL = "MANUAL"


class StartTrigger(str, Enum):
    MANUAL = "manual"
    GEOFENCE = "geofence"


@dataclass(frozen=True, slots=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class OfficeLocation:
    name: str
    latitude: float
    longitude: float
    radius_m: float

    def __post_init__(self) -> None:
        if self.radius_m < 0:
            raise ValueError("Office radius must be zero or positive")

    def with_radius(self, radius_m: float) -> OfficeLocation:
        return replace(self, radius_m=radius_m)


@dataclass(frozen=True, slots=True)
class DailySession:
    date: str
    duration_ms: int


@dataclass(slots=True)
class AppState:
    """Everything that survives a restart, saved as one snapshot."""

    is_setup: bool = False
    mode: TrackerMode = TrackerMode.MANUAL
    office_location: OfficeLocation | None = None
    start_time: datetime | None = None
    is_active: bool = False
    history: HistoryLedger = field(default_factory=HistoryLedger)

    @classmethod
    def initial(cls) -> AppState:
        return cls()

    def copy(self) -> AppState:
        # Candidate states are mutated and only swapped in after a successful save.
        return replace(self, history=self.history.copy())


@dataclass(frozen=True, slots=True)
class GeoSample:
    latitude: float
    longitude: float
    accuracy_m: float
    timestamp: datetime

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class GeoError:
    message: str
    timestamp: datetime


GeoReading = Union[GeoSample, GeoError]


@dataclass(frozen=True, slots=True)
class GeoStatus:
    """Live position as last reported by the sampler. Never persisted."""

    has_permission: bool = False
    latitude: float | None = None
    longitude: float | None = None
    accuracy_m: float | None = None
    distance_to_office_m: float | None = None
    last_error: str | None = None
    updated_at: datetime | None = None

    @property
    def has_fix(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True, slots=True)
class SessionStarted:
    started_at: datetime
    trigger: StartTrigger
    distance_m: float | None = None


@dataclass(frozen=True, slots=True)
class SessionStopped:
    session: DailySession
    started_at: datetime
    stopped_at: datetime


@dataclass(frozen=True, slots=True)
class WorkdayCompleted:
    started_at: datetime
    elapsed_ms: int


TrackerEvent = Union[SessionStarted, SessionStopped, WorkdayCompleted]


@dataclass(frozen=True, slots=True)
class HistoryRow:
    date: str
    weekday: str
    hours: float
    reached_goal: bool
