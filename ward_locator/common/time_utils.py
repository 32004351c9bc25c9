"""UTC-focused helpers for cache timestamps and log records."""

from __future__ import annotations

from datetime import datetime, timezone

MILLIS_PER_HOUR = 60 * 60 * 1000


def utc_now_ms() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)


def age_in_hours(timestamp_ms: float, now_ms: float) -> float:
    return (now_ms - timestamp_ms) / MILLIS_PER_HOUR


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")
