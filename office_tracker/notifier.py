from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import discord

from .models import SessionStarted, StartTrigger, TrackerEvent, WorkdayCompleted


class Notifier(Protocol):
    def emit(self, title: str, body: str) -> None: ...


class MessageChannelLike(Protocol):
    async def send(self, content: str, **kwargs): ...


def describe_event(event: TrackerEvent) -> tuple[str, str] | None:
    """Return the notification for an event, or None when it is silent."""
    if isinstance(event, SessionStarted) and event.trigger is StartTrigger.GEOFENCE:
        return "Welcome to Office", "Tracking started automatically."
    if isinstance(event, WorkdayCompleted):
        return "Workday Complete!", "You have reached 9 hours."
    return None


def notify_event(notifier: Notifier, event: TrackerEvent | None) -> bool:
    if event is None:
        return False
    message = describe_event(event)
    if message is None:
        return False
    notifier.emit(*message)
    return True


class ChannelNotifier:
    """Posts notifications to a Discord channel without waiting for delivery.

    The channel is attached once the bot has resolved it. Anything emitted
    before that, or any failed send, is logged and dropped.
    """

    def __init__(self, channel: MessageChannelLike | None = None, logger: logging.Logger | None = None) -> None:
        self.channel = channel
        self.logger = logger or logging.getLogger(__name__)
        self._pending: set[asyncio.Task] = set()

    def emit(self, title: str, body: str) -> None:
        if self.channel is None:
            self.logger.warning("Notification channel not ready, dropping %r", title)
            return

        try:
            task = asyncio.get_running_loop().create_task(self._send(self.channel, title, body))
        except RuntimeError:
            self.logger.warning("No running event loop, dropping notification %r", title)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, channel: MessageChannelLike, title: str, body: str) -> None:
        try:
            # Never ping anyone from automated notifications.
            await channel.send(f"**{title}**\n{body}", allowed_mentions=discord.AllowedMentions.none())
        except Exception:
            self.logger.exception("Failed to deliver notification %r", title)
            return
        self.logger.info("Notification sent: %s", title)

    async def drain(self) -> None:
        """Wait for in-flight sends, used on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
