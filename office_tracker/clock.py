from __future__ import annotations

import logging
from datetime import datetime, timedelta

from .models import TICK_MS, WORKDAY_MS, AppState, WorkdayCompleted


def elapsed_between_ms(start: datetime, end: datetime) -> int:
    return (end - start) // timedelta(milliseconds=1)


def remaining_ms(elapsed_ms: int, target_ms: int = WORKDAY_MS) -> int:
    return max(0, target_ms - elapsed_ms)


def progress_percent(elapsed_ms: int, target_ms: int = WORKDAY_MS) -> float:
    return min(elapsed_ms / target_ms * 100.0, 100.0)


def expected_end(start_time: datetime, target_ms: int = WORKDAY_MS) -> datetime:
    return start_time + timedelta(milliseconds=target_ms)


class WorkdayClock:
    """Projects elapsed time for the running session and detects completion.

    ``poll`` is meant to run once per tick. Completion is reported only while
    elapsed time sits inside the first tick after the target, and at most once
    per session start time, so uneven tick spacing cannot repeat it.
    """

    def __init__(
        self,
        target_ms: int = WORKDAY_MS,
        tick_ms: int = TICK_MS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.target_ms = target_ms
        self.tick_ms = tick_ms
        self.logger = logger or logging.getLogger(__name__)
        self._completed_for: datetime | None = None

    def elapsed_ms(self, state: AppState, now_utc: datetime) -> int:
        if not state.is_active or state.start_time is None:
            return 0
        return max(0, elapsed_between_ms(state.start_time, now_utc))

    def poll(self, state: AppState, now_utc: datetime) -> WorkdayCompleted | None:
        if not state.is_active or state.start_time is None:
            self.clear()
            return None

        if self._completed_for == state.start_time:
            return None

        elapsed = self.elapsed_ms(state, now_utc)
        if self.target_ms <= elapsed < self.target_ms + self.tick_ms:
            self._completed_for = state.start_time
            self.logger.info("Workday target reached after %sms", elapsed)
            return WorkdayCompleted(started_at=state.start_time, elapsed_ms=elapsed)
        return None

    def clear(self) -> None:
        self._completed_for = None
