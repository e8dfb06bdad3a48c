from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    notify_channel_id: int
    timezone: ZoneInfo
    state_db_path: Path
    geo_listen_host: str
    geo_listen_port: int
    geo_shared_secret: str | None
    geo_max_sample_age: timedelta
    geo_signal_timeout: timedelta


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _parse_positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _parse_positive_int(name, _required_env(name))


def _optional_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return _parse_positive_int(name, raw)


def _timezone_from_env(name: str, default: str) -> ZoneInfo:
    tz_name = os.getenv(name, "").strip() or default
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def load_config() -> Config:
    secret = os.getenv("GEO_SHARED_SECRET", "").strip() or None

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        notify_channel_id=_required_int_env("NOTIFY_CHANNEL_ID"),
        timezone=_timezone_from_env("TIMEZONE", "UTC"),
        state_db_path=Path(os.getenv("STATE_DB_PATH", "").strip() or "office_tracker.db"),
        geo_listen_host=os.getenv("GEO_LISTEN_HOST", "").strip() or "127.0.0.1",
        geo_listen_port=_optional_int_env("GEO_LISTEN_PORT", 8765),
        geo_shared_secret=secret,
        geo_max_sample_age=timedelta(seconds=_optional_int_env("GEO_MAX_SAMPLE_AGE_SECONDS", 10)),
        geo_signal_timeout=timedelta(seconds=_optional_int_env("GEO_SIGNAL_TIMEOUT_SECONDS", 20)),
    )
