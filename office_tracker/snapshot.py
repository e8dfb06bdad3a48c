"""Conversion between AppState and the persisted JSON document."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from .ledger import HistoryLedger
from .models import AppState, DailySession, OfficeLocation, TrackerMode

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SnapshotError(ValueError):
    """Raised when a stored document cannot be turned back into state."""


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    delta = value.astimezone(timezone.utc) - _EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: int | float) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def encode_state(state: AppState) -> dict[str, Any]:
    office = state.office_location
    return {
        "isSetup": state.is_setup,
        "mode": state.mode.value,
        "officeLocation": None
        if office is None
        else {
            "name": office.name,
            "latitude": office.latitude,
            "longitude": office.longitude,
            "radius": office.radius_m,
        },
        "startTime": to_epoch_ms(state.start_time) if state.start_time is not None else None,
        "isActive": state.is_active,
        "history": [{"date": item.date, "duration": item.duration_ms} for item in state.history],
    }


def decode_state(document: Any, logger: logging.Logger | None = None) -> AppState:
    """Build state from a stored document.

    Structural problems raise SnapshotError. Small inconsistencies (a missing
    flag, a start time without the active flag) are repaired and logged.
    """

    log = logger or logging.getLogger(__name__)
    if not isinstance(document, dict):
        raise SnapshotError("State document must be an object")

    repaired: set[str] = set()

    is_setup = document.get("isSetup", False)
    if not isinstance(is_setup, bool):
        repaired.add("isSetup")
        is_setup = False

    try:
        mode = TrackerMode(document.get("mode", TrackerMode.MANUAL.value))
    except ValueError:
        repaired.add("mode")
        mode = TrackerMode.MANUAL

    office = _decode_office(document.get("officeLocation"))

    raw_start = document.get("startTime")
    start_time = None
    if raw_start is not None:
        if isinstance(raw_start, bool) or not isinstance(raw_start, (int, float)):
            raise SnapshotError("startTime must be epoch milliseconds")
        start_time = from_epoch_ms(raw_start)

    is_active = document.get("isActive", False)
    if not isinstance(is_active, bool):
        repaired.add("isActive")
        is_active = False
    if is_active != (start_time is not None):
        # Only a stored start time proves a running session.
        repaired.add("isActive/startTime")
        is_active = False
        start_time = None

    history = HistoryLedger(_decode_history(document.get("history", [])))

    if repaired:
        log.warning("Loaded state with repaired values: %s", ", ".join(sorted(repaired)))

    return AppState(
        is_setup=is_setup,
        mode=mode,
        office_location=office,
        start_time=start_time,
        is_active=is_active,
        history=history,
    )


def _decode_office(raw: Any) -> OfficeLocation | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise SnapshotError("officeLocation must be an object or null")
    try:
        return OfficeLocation(
            name=str(raw.get("name", "")),
            latitude=_number(raw["latitude"]),
            longitude=_number(raw["longitude"]),
            radius_m=_number(raw["radius"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotError(f"Invalid officeLocation: {exc}") from exc


def _decode_history(raw: Any) -> list[DailySession]:
    if not isinstance(raw, list):
        raise SnapshotError("history must be a list")

    sessions: list[DailySession] = []
    for item in raw:
        try:
            date_key = item["date"]
            duration = item["duration"]
        except (KeyError, TypeError) as exc:
            raise SnapshotError(f"Invalid history entry: {item!r}") from exc
        if not isinstance(date_key, str):
            raise SnapshotError(f"Invalid history date: {date_key!r}")
        try:
            duration_ms = int(_number(duration))
        except TypeError as exc:
            raise SnapshotError(f"Invalid history duration: {duration!r}") from exc
        sessions.append(DailySession(date=date_key, duration_ms=duration_ms))
    return sessions


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return value
