import pytest

from office_tracker.ledger import HistoryLedger
from office_tracker.models import DailySession


def sessions(count: int) -> list[DailySession]:
    return [DailySession(date=f"2026-03-{day:02}", duration_ms=day * 1000) for day in range(1, count + 1)]


def test_recent_window_with_single_entry() -> None:
    entry = DailySession(date="2023-10-24", duration_ms=30_600_000)
    ledger = HistoryLedger([entry])

    window = ledger.recent_window(7)

    assert list(window) == [entry]
    assert window[0] is entry


def test_recent_window_keeps_chronological_order() -> None:
    ledger = HistoryLedger(sessions(10))

    window = ledger.recent_window(3)

    assert [item.date for item in window] == ["2026-03-08", "2026-03-09", "2026-03-10"]
    assert window[-1].date == "2026-03-10"
    assert window[1:] == sessions(10)[8:]


def test_recent_window_can_be_iterated_again() -> None:
    ledger = HistoryLedger(sessions(4))
    window = ledger.recent_window(2)

    assert list(window) == list(window)
    assert len(ledger) == 4


def test_recent_window_bounds_are_fixed_at_creation() -> None:
    ledger = HistoryLedger(sessions(3))
    window = ledger.recent_window(2)

    ledger.append(DailySession(date="2026-03-04", duration_ms=4000))

    assert window == sessions(3)[1:]
    assert ledger.recent_window(2) == sessions(4)[2:]


def test_recent_window_edges() -> None:
    ledger = HistoryLedger(sessions(2))

    assert len(ledger.recent_window(0)) == 0
    assert ledger.recent_window(50) == sessions(2)
    with pytest.raises(ValueError):
        ledger.recent_window(-1)
    with pytest.raises(IndexError):
        ledger.recent_window(1)[1]


def test_copy_is_independent() -> None:
    ledger = HistoryLedger(sessions(1))
    clone = ledger.copy()

    clone.append(DailySession(date="2026-03-02", duration_ms=0))

    assert len(ledger) == 1
    assert len(clone) == 2
