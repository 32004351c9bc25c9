"""Single-slot dataset cache with a fixed time-to-live.

The slot lives in a string-keyed blob store. ``CacheStore`` owns the slot's
record format (``{"data": ..., "timestamp": <epoch ms>}``) and its expiry
rule; backends only get, set and delete blobs.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from ward_locator.common.constants import CACHE_TTL_HOURS, DATASET_CACHE_KEY
from ward_locator.common.errors import PersistenceError
from ward_locator.common.fs import write_text_atomic
from ward_locator.common.logging import log_event
from ward_locator.common.models import CacheEntry, Dataset
from ward_locator.common.time_utils import age_in_hours, utc_now_ms

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self.lock:
            return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        with self.lock:
            self.values[key] = value

    def delete(self, key: str) -> None:
        with self.lock:
            self.values.pop(key, None)


class FileKeyValueStore:
    """One JSON file per key under ``directory``; writes replace atomically."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise PersistenceError(f"Invalid cache key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise PersistenceError(f"Cache file {path.name} is not valid UTF-8") from exc

    def set(self, key: str, value: str) -> None:
        write_text_atomic(self._path(key), value)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"
    ERROR = "error"


@dataclass(frozen=True)
class CacheLookup:
    status: CacheStatus
    dataset: Dataset | None = None
    age_hours: float | None = None
    error: str | None = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT


def _decode_entry(blob: str) -> CacheEntry:
    try:
        record = json.loads(blob)
    except ValueError as exc:
        raise PersistenceError(f"Cached record is not valid JSON: {exc}") from exc
    if not isinstance(record, dict):
        raise PersistenceError("Cached record is not an object")
    data = record.get("data")
    timestamp = record.get("timestamp")
    if not isinstance(data, dict) or not isinstance(data.get("features"), list):
        raise PersistenceError("Cached record holds no FeatureCollection")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise PersistenceError("Cached record has no numeric timestamp")
    return CacheEntry(data=data, timestamp=int(timestamp))


class CacheStore:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = DATASET_CACHE_KEY,
        ttl_hours: float = CACHE_TTL_HOURS,
        clock: Callable[[], int] = utc_now_ms,
    ) -> None:
        self.store = store
        self.key = key
        self.ttl_hours = ttl_hours
        self.clock = clock

    def _log_failure(self, action: str, exc: Exception) -> None:
        log_event(
            logger,
            f"cache {action} failed: {exc}",
            level=logging.WARNING,
            event=f"CACHE_{action.upper()}_FAILED",
            status="error",
            error_code=PersistenceError.error_code,
        )

    def _delete_quietly(self) -> bool:
        try:
            self.store.delete(self.key)
        except (OSError, PersistenceError) as exc:
            self._log_failure("delete", exc)
            return False
        return True

    def lookup(self) -> CacheLookup:
        try:
            blob = self.store.get(self.key)
            if blob is None:
                return CacheLookup(status=CacheStatus.MISS)
            entry = _decode_entry(blob)
        except (OSError, ValueError, PersistenceError) as exc:
            self._log_failure("read", exc)
            return CacheLookup(status=CacheStatus.ERROR, error=str(exc))

        age = age_in_hours(entry.timestamp, self.clock())
        if age > self.ttl_hours:
            log_event(logger, "cache expired, removing", event="CACHE_EXPIRED", status="ok", age_hours=round(age, 2))
            self._delete_quietly()
            return CacheLookup(status=CacheStatus.EXPIRED, age_hours=age)

        log_event(
            logger,
            f"cache valid, age {age:.2f} hours",
            event="CACHE_HIT",
            status="ok",
            source="cache",
            age_hours=round(age, 2),
            feature_count=len(entry.data["features"]),
        )
        return CacheLookup(status=CacheStatus.HIT, dataset=entry.data, age_hours=age)

    def read(self) -> Dataset | None:
        return self.lookup().dataset

    def write(self, dataset: Dataset) -> bool:
        entry = CacheEntry(data=dataset, timestamp=self.clock())
        try:
            self.store.set(self.key, json.dumps(entry.to_dict(), ensure_ascii=False, separators=(",", ":")))
        except (OSError, TypeError, ValueError, PersistenceError) as exc:
            self._log_failure("write", exc)
            return False
        log_event(logger, "dataset cached", event="CACHE_WRITE", status="ok", feature_count=len(dataset.get("features") or []))
        return True

    def invalidate(self) -> bool:
        return self._delete_quietly()
