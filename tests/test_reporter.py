from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from office_tracker.db import Database, StateStore
from office_tracker.models import DailySession, GeoError, GeoSample, OfficeLocation, TrackerMode
from office_tracker.reporter import Reporter, format_duration_ms, format_remaining_ms, history_row
from office_tracker.tracker import OfficeTracker

T0 = datetime(2026, 2, 1, 9, 0, 0, tzinfo=timezone.utc)
OFFICE = OfficeLocation(name="HQ", latitude=0.0, longitude=0.0, radius_m=100.0)


def make_reporter(tz: str = "UTC") -> Reporter:
    db = Database(":memory:")
    db.initialize()
    return Reporter(OfficeTracker(StateStore(db), tz=ZoneInfo(tz)))


def test_format_duration_hh_mm_ss() -> None:
    assert format_duration_ms(0) == "00:00:00"
    assert format_duration_ms(999) == "00:00:00"
    assert format_duration_ms(3_661_000) == "01:01:01"
    assert format_duration_ms(-5000) == "00:00:00"


def test_format_remaining() -> None:
    assert format_remaining_ms(16_200_000) == "4h 30m"
    assert format_remaining_ms(59_999) == "0h 0m"


def test_status_before_setup_asks_for_setup() -> None:
    reporter = make_reporter()

    content = reporter.build_status_content(T0)

    assert "setup required" in content
    assert "Waiting for location signal" in content

    reporter.tracker.apply_geo_sample(GeoError(message="User denied Geolocation", timestamp=T0))
    assert "Location unavailable: User denied Geolocation" in reporter.build_status_content(T0)

    reporter.tracker.apply_geo_sample(GeoSample(latitude=1.0, longitude=1.0, accuracy_m=14.6, timestamp=T0))
    assert "Signal acquired (15m)" in reporter.build_status_content(T0)


def test_status_for_running_session() -> None:
    reporter = make_reporter(tz="Europe/Berlin")
    tracker = reporter.tracker
    tracker.set_office_location(OFFICE)
    tracker.start_session(T0)

    content = reporter.build_status_content(T0 + timedelta(hours=4, minutes=30))

    assert "MANUAL MODE" in content
    assert "`04:30:00` (50% Done)" in content
    assert "Remaining: `4h 30m`" in content
    # 09:00 UTC + 9h is 19:00 in Berlin during winter.
    assert "Expected end: `19:00`" in content
    assert "Session: running" in content
    assert "Office: HQ (radius 100m)" in content


def test_status_waiting_for_gps() -> None:
    reporter = make_reporter()
    tracker = reporter.tracker
    tracker.set_office_location(OFFICE)
    tracker.set_mode(TrackerMode.GPS)
    tracker.apply_geo_sample(GeoSample(latitude=0.0018, longitude=0.0, accuracy_m=5.0, timestamp=T0))
    tracker.apply_geo_sample(GeoError(message="Timeout expired", timestamp=T0))

    content = reporter.build_status_content(T0)

    assert "GPS AUTO" in content
    assert "Expected end: `--:--`" in content
    assert "Move within 100m of office to start." in content
    assert "200m from office" in content
    assert "[error: Timeout expired]" in content


def test_history_row_marks_goal() -> None:
    short = history_row(DailySession(date="2023-10-24", duration_ms=30_600_000))
    long = history_row(DailySession(date="2023-10-25", duration_ms=32_760_000))

    assert (short.weekday, short.hours, short.reached_goal) == ("Tue", 8.5, False)
    assert (long.weekday, long.hours, long.reached_goal) == ("Wed", 9.1, True)


def test_history_content() -> None:
    reporter = make_reporter()
    assert "No completed sessions yet." in reporter.build_history_content([])

    tracker = reporter.tracker
    tracker.skip_setup()
    tracker.start_session(T0)
    tracker.stop_session(T0 + timedelta(hours=9, minutes=30))

    rows = reporter.build_history_rows()
    content = reporter.build_history_content(rows)

    assert len(rows) == 1
    assert "`Sun 2026-02-01`" in content
    assert "9.5h ✓" in content
