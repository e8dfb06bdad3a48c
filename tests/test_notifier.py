import asyncio
from datetime import datetime, timezone

from office_tracker.models import (
    DailySession,
    SessionStarted,
    SessionStopped,
    StartTrigger,
    WorkdayCompleted,
)
from office_tracker.notifier import ChannelNotifier, describe_event, notify_event

T0 = datetime(2026, 2, 1, 9, 0, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def emit(self, title: str, body: str) -> None:
        self.messages.append((title, body))


class FakeChannel:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, dict]] = []

    async def send(self, content: str, **kwargs):
        if self.fail:
            raise RuntimeError("gateway unavailable")
        self.sent.append((content, kwargs))


def test_only_geofence_start_and_completion_notify() -> None:
    geofence = SessionStarted(started_at=T0, trigger=StartTrigger.GEOFENCE, distance_m=12.0)
    manual = SessionStarted(started_at=T0, trigger=StartTrigger.MANUAL)
    stopped = SessionStopped(session=DailySession(date="2026-02-01", duration_ms=1000), started_at=T0, stopped_at=T0)
    completed = WorkdayCompleted(started_at=T0, elapsed_ms=32_400_000)

    assert describe_event(geofence) == ("Welcome to Office", "Tracking started automatically.")
    assert describe_event(completed) == ("Workday Complete!", "You have reached 9 hours.")
    assert describe_event(manual) is None
    assert describe_event(stopped) is None


def test_notify_event_emits_once_per_event() -> None:
    notifier = RecordingNotifier()

    assert notify_event(notifier, None) is False
    assert notify_event(notifier, SessionStarted(started_at=T0, trigger=StartTrigger.MANUAL)) is False
    assert notify_event(notifier, WorkdayCompleted(started_at=T0, elapsed_ms=32_400_000)) is True

    assert notifier.messages == [("Workday Complete!", "You have reached 9 hours.")]


def test_channel_notifier_sends_without_mentions() -> None:
    channel = FakeChannel()
    notifier = ChannelNotifier(channel)

    async def run() -> None:
        notifier.emit("Welcome to Office", "Tracking started automatically.")
        await notifier.drain()

    asyncio.run(run())

    assert len(channel.sent) == 1
    content, kwargs = channel.sent[0]
    assert content == "**Welcome to Office**\nTracking started automatically."
    assert "allowed_mentions" in kwargs


def test_channel_notifier_swallows_send_failures() -> None:
    notifier = ChannelNotifier(FakeChannel(fail=True))

    async def run() -> None:
        notifier.emit("Workday Complete!", "You have reached 9 hours.")
        await notifier.drain()

    asyncio.run(run())


def test_channel_notifier_drops_messages_when_not_ready() -> None:
    channel = FakeChannel()
    notifier = ChannelNotifier()

    notifier.emit("Welcome to Office", "Tracking started automatically.")
    notifier.channel = channel
    # Outside an event loop there is nothing to schedule the send on.
    notifier.emit("Welcome to Office", "Tracking started automatically.")

    assert channel.sent == []
