from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from .models import GeoError, GeoReading, GeoSample
from .snapshot import from_epoch_ms

GeoHandler = Callable[[GeoReading], None]

SIGNAL_TIMEOUT_MESSAGE = "Position unavailable (timeout)"


def _first_number(payload: Mapping[str, Any], *keys: str) -> float | None:
    for key in keys:
        if key not in payload or payload[key] is None:
            continue
        value = payload[key]
        if isinstance(value, bool):
            raise ValueError(f"Field {key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Field {key} must be a number") from exc
    return None


def normalize_payload(payload: Mapping[str, Any], received_at: datetime) -> GeoReading | None:
    """Turn a raw position payload into a reading.

    Accepts plain ``latitude``/``longitude``/``accuracy`` fields as well as the
    short OwnTracks names (``lat``/``lon``/``acc``/``tst``). Returns None for
    OwnTracks messages that are not location updates.
    """

    if not isinstance(payload, Mapping):
        raise ValueError("Position payload must be an object")

    message_type = payload.get("_type")
    if message_type is not None and message_type != "location":
        return None

    error = payload.get("error")
    if error:
        return GeoError(message=str(error), timestamp=received_at)

    latitude = _first_number(payload, "latitude", "lat")
    longitude = _first_number(payload, "longitude", "lng", "lon")
    if latitude is None or longitude is None:
        raise ValueError("Position payload needs latitude and longitude")

    accuracy = _first_number(payload, "accuracy", "acc")

    timestamp = received_at
    epoch_ms = _first_number(payload, "timestamp")
    epoch_s = _first_number(payload, "tst")
    try:
        if epoch_ms is not None:
            timestamp = from_epoch_ms(epoch_ms)
        elif epoch_s is not None:
            timestamp = datetime.fromtimestamp(epoch_s, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError("Position timestamp is out of range") from exc

    return GeoSample(
        latitude=latitude,
        longitude=longitude,
        accuracy_m=accuracy if accuracy is not None else 0.0,
        timestamp=timestamp,
    )


class Subscription:
    """Handle for a registered handler. Cancelling twice is harmless."""

    def __init__(self, feed: GeoSampleFeed, handler: GeoHandler) -> None:
        self._feed = feed
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._feed._detach(self)


class GeoSampleFeed:
    """Delivers position readings to a single subscriber, in arrival order."""

    def __init__(
        self,
        *,
        max_sample_age: timedelta = timedelta(seconds=10),
        signal_timeout: timedelta = timedelta(seconds=20),
        logger: logging.Logger | None = None,
    ) -> None:
        self.max_sample_age = max_sample_age
        self.signal_timeout = signal_timeout
        self.logger = logger or logging.getLogger(__name__)
        self._subscription: Subscription | None = None
        self._last_sample_at: datetime | None = None
        self._timeout_reported = False

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    def subscribe(self, handler: GeoHandler, now_utc: datetime | None = None) -> Subscription:
        if self._subscription is not None:
            self.logger.debug("Replacing existing position subscription")
            self._subscription.cancel()

        subscription = Subscription(self, handler)
        self._subscription = subscription
        # The watchdog counts from the moment somebody starts listening.
        self._last_sample_at = now_utc or datetime.now(timezone.utc)
        self._timeout_reported = False
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        if self._subscription is subscription:
            self._subscription = None
            self.logger.info("Position subscription cancelled")

    def publish(self, payload: Mapping[str, Any], received_at: datetime | None = None) -> GeoReading | None:
        """Normalize a raw payload and deliver it. Returns what was delivered."""

        now = received_at or datetime.now(timezone.utc)
        reading = normalize_payload(payload, now)
        if reading is None:
            return None

        if isinstance(reading, GeoSample):
            age = now - reading.timestamp
            if age > self.max_sample_age:
                self.logger.debug("Dropping stale position from %s (age %s)", reading.timestamp.isoformat(), age)
                return None
            self._last_sample_at = now
            self._timeout_reported = False

        self._deliver(reading)
        return reading

    def publish_error(self, message: str, at: datetime | None = None) -> GeoError:
        error = GeoError(message=message, timestamp=at or datetime.now(timezone.utc))
        self._deliver(error)
        return error

    def check_signal(self, now_utc: datetime | None = None) -> GeoError | None:
        """Report a timeout once when no sample arrived for ``signal_timeout``."""

        if self._subscription is None or self._last_sample_at is None or self._timeout_reported:
            return None
        now = now_utc or datetime.now(timezone.utc)
        if now - self._last_sample_at < self.signal_timeout:
            return None

        self._timeout_reported = True
        return self.publish_error(SIGNAL_TIMEOUT_MESSAGE, at=now)

    def _deliver(self, reading: GeoReading) -> None:
        subscription = self._subscription
        if subscription is None:
            self.logger.debug("No subscriber for position reading, dropping it")
            return
        subscription.handler(reading)
