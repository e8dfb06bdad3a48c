"""Append-only ledger of completed daily sessions."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, overload

if TYPE_CHECKING:
    from .models import DailySession


class RecentWindow(Sequence["DailySession"]):
    """Read-only view over the tail of a ledger.

    The bounds are fixed when the view is created. The ledger never removes or
    reorders entries, so the view keeps describing the same sessions and can be
    iterated any number of times.
    """

    __slots__ = ("_entries", "_start", "_stop")

    def __init__(self, entries: list[DailySession], start: int, stop: int) -> None:
        self._entries = entries
        self._start = start
        self._stop = stop

    def __len__(self) -> int:
        return self._stop - self._start

    @overload
    def __getitem__(self, index: int) -> DailySession: ...

    @overload
    def __getitem__(self, index: slice) -> list[DailySession]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        if index < 0:
            index += len(self)
        if not 0 <= index < len(self):
            raise IndexError("recent window index out of range")
        return self._entries[self._start + index]

    def __iter__(self) -> Iterator[DailySession]:
        for i in range(self._start, self._stop):
            yield self._entries[i]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"RecentWindow({list(self)!r})"


class HistoryLedger:
    def __init__(self, sessions: Iterable[DailySession] = ()) -> None:
        self._entries: list[DailySession] = list(sessions)

    def append(self, session: DailySession) -> None:
        self._entries.append(session)

    def recent_window(self, n: int) -> RecentWindow:
        if n < 0:
            raise ValueError("Window size must not be negative")
        stop = len(self._entries)
        return RecentWindow(self._entries, max(0, stop - n), stop)

    def copy(self) -> HistoryLedger:
        return HistoryLedger(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DailySession]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HistoryLedger):
            return self._entries == other._entries
        if isinstance(other, (list, tuple)):
            return self._entries == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"HistoryLedger({self._entries!r})"
