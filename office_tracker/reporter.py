from __future__ import annotations

from datetime import date, datetime

from .clock import expected_end, progress_percent, remaining_ms
from .models import RECENT_WINDOW_SIZE, WORKDAY_MS, DailySession, HistoryRow, TrackerMode
from .tracker import OfficeTracker, utc_now

CHART_MAX_HOURS = 12.0
CHART_WIDTH = 24


def format_duration_ms(duration_ms: int) -> str:
    """Render a duration as HH:MM:SS for consistent output."""
    total_seconds = max(0, int(duration_ms)) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def format_remaining_ms(duration_ms: int) -> str:
    total_seconds = max(0, int(duration_ms)) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    return f"{hours}h {remainder // 60}m"


def history_row(session: DailySession) -> HistoryRow:
    hours = session.duration_ms / 3_600_000
    try:
        weekday = date.fromisoformat(session.date).strftime("%a")
    except ValueError:
        # Dates come from storage; show them even if they are not ISO days.
        weekday = "?"
    return HistoryRow(
        date=session.date,
        weekday=weekday,
        hours=round(hours, 1),
        reached_goal=session.duration_ms >= WORKDAY_MS,
    )


class Reporter:
    def __init__(self, tracker: OfficeTracker) -> None:
        self.tracker = tracker

    def build_status_content(self, now_utc: datetime | None = None) -> str:
        now = now_utc or utc_now()
        state = self.tracker.state

        if not state.is_setup:
            return self._build_setup_content()

        elapsed = self.tracker.elapsed_ms(now)
        percent = progress_percent(elapsed)
        mode_label = "GPS AUTO" if state.mode is TrackerMode.GPS else "MANUAL MODE"

        end_label = "--:--"
        if state.is_active and state.start_time is not None:
            end_label = expected_end(state.start_time).astimezone(self.tracker.tz).strftime("%H:%M")

        lines = [
            f"**Office Tracker** ({mode_label})",
            f"Timer: `{format_duration_ms(elapsed)}` ({round(percent)}% Done)",
            f"Remaining: `{format_remaining_ms(remaining_ms(elapsed))}`",
            f"Expected end: `{end_label}`",
        ]

        if state.is_active:
            lines.append("Session: running")
        elif state.mode is TrackerMode.GPS:
            radius = state.office_location.radius_m if state.office_location else None
            area = f"{radius:g}m" if radius is not None else "the area"
            lines.append(f"Session: auto-waiting for GPS. Move within {area} of office to start.")
        else:
            lines.append("Session: idle. Use /start to begin.")

        office = state.office_location
        if office is not None:
            lines.append(f"Office: {office.name} (radius {office.radius_m:g}m)")
        lines.append(self._build_geo_line())
        return "\n".join(lines)

    def _build_setup_content(self) -> str:
        status = self.tracker.geo_status
        if status.has_fix:
            signal = f"Signal acquired ({round(status.accuracy_m or 0)}m)"
        elif not status.has_permission and status.last_error:
            signal = f"Location unavailable: {status.last_error}"
        else:
            signal = "Waiting for location signal..."
        return "\n".join([
            "**Office Tracker** (setup required)",
            f"Current status: {signal}",
            "Use /office-here at your desk, /office-set with coordinates, or /office-skip for manual tracking.",
        ])

    def _build_geo_line(self) -> str:
        status = self.tracker.geo_status
        if not status.has_fix:
            line = "Position: no fix yet"
        else:
            line = f"Position: {status.latitude:.5f}, {status.longitude:.5f} (±{round(status.accuracy_m or 0)}m)"
            if status.distance_to_office_m is not None:
                line += f", {round(status.distance_to_office_m)}m from office"
        if status.last_error:
            line += f" [error: {status.last_error}]"
        return line

    def build_history_rows(self, n: int = RECENT_WINDOW_SIZE) -> list[HistoryRow]:
        return [history_row(session) for session in self.tracker.recent_history(n)]

    def build_history_content(self, rows: list[HistoryRow]) -> str:
        header = "**Recent Activity**"
        if not rows:
            return f"{header}\nNo completed sessions yet."

        lines = [header]
        for row in rows:
            filled = round(min(row.hours, CHART_MAX_HOURS) / CHART_MAX_HOURS * CHART_WIDTH)
            bar = "█" * max(1, filled)
            marker = " ✓" if row.reached_goal else ""
            lines.append(f"`{row.weekday} {row.date}` {bar} {row.hours:.1f}h{marker}")
        return "\n".join(lines)
