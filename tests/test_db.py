import json
from datetime import datetime, timezone

import pytest

from office_tracker.db import Database, PersistenceError, StateStore
from office_tracker.ledger import HistoryLedger
from office_tracker.models import STORAGE_KEY, AppState, DailySession, OfficeLocation, TrackerMode
from office_tracker.snapshot import decode_state, encode_state


def make_store() -> StateStore:
    db = Database(":memory:")
    db.initialize()
    return StateStore(db)


def full_state() -> AppState:
    return AppState(
        is_setup=True,
        mode=TrackerMode.GPS,
        office_location=OfficeLocation(name="HQ", latitude=48.8566, longitude=2.3522, radius_m=500.0),
        start_time=datetime(2026, 2, 1, 9, 15, 30, 123000, tzinfo=timezone.utc),
        is_active=True,
        history=HistoryLedger([
            DailySession(date="2023-10-24", duration_ms=30_600_000),
            DailySession(date="2023-10-25", duration_ms=32_760_000),
        ]),
    )


def test_missing_snapshot_loads_as_none() -> None:
    assert make_store().load() is None


@pytest.mark.parametrize(
    "state",
    [
        AppState.initial(),
        full_state(),
        AppState(is_setup=True, mode=TrackerMode.MANUAL, office_location=None),
    ],
)
def test_round_trip(state: AppState) -> None:
    store = make_store()

    store.save(state)

    assert store.load() == state


def test_document_layout() -> None:
    document = encode_state(full_state())

    assert document == {
        "isSetup": True,
        "mode": "GPS",
        "officeLocation": {"name": "HQ", "latitude": 48.8566, "longitude": 2.3522, "radius": 500.0},
        "startTime": 1769937330123,
        "isActive": True,
        "history": [
            {"date": "2023-10-24", "duration": 30600000},
            {"date": "2023-10-25", "duration": 32760000},
        ],
    }


def test_save_replaces_whole_document() -> None:
    store = make_store()
    store.save(full_state())
    store.save(AppState.initial())

    raw = json.loads(store.db.get_value(STORAGE_KEY))

    assert raw["history"] == []
    assert raw["officeLocation"] is None
    assert raw["startTime"] is None


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"history": "yesterday"}),
        json.dumps({"history": [{"date": "2023-10-24"}]}),
        json.dumps({"history": [{"date": "2023-10-24", "duration": "long"}]}),
        json.dumps({"officeLocation": {"name": "HQ", "latitude": "north"}}),
        json.dumps({"officeLocation": {"name": "HQ", "latitude": 0, "longitude": 0, "radius": -5}}),
        json.dumps({"startTime": "09:00", "isActive": True}),
    ],
)
def test_malformed_snapshot_loads_as_none(raw: str) -> None:
    store = make_store()
    store.db.set_value(STORAGE_KEY, raw)

    assert store.load() is None


def test_inconsistent_active_flag_is_repaired() -> None:
    state = decode_state({"isSetup": True, "isActive": True, "startTime": None, "history": []})

    assert state.is_active is False
    assert state.start_time is None
    assert state.is_setup is True


def test_unknown_mode_defaults_to_manual() -> None:
    state = decode_state({"mode": "BLUETOOTH"})

    assert state.mode is TrackerMode.MANUAL
    assert len(state.history) == 0


def test_save_on_closed_database_raises_persistence_error() -> None:
    store = make_store()
    store.db.close()

    with pytest.raises(PersistenceError):
        store.save(AppState.initial())
