"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ward_locator.common.constants import (
    CACHE_TTL_HOURS,
    CONNECT_TIMEOUT_SECONDS,
    DATASET_CACHE_KEY,
    DEFAULT_DATASET_URL,
    DEFAULT_SIMPLIFY_TOLERANCE,
    FETCH_TIMEOUT_SECONDS,
)
from ward_locator.common.errors import ConfigError
from ward_locator.common.fs import read_yaml
from ward_locator.common.schema import validate_locator_config

DEFAULT_CONFIG: dict[str, Any] = {
    "source": {
        "url": DEFAULT_DATASET_URL,
        "timeout_seconds": FETCH_TIMEOUT_SECONDS,
        "connect_timeout_seconds": CONNECT_TIMEOUT_SECONDS,
        "max_attempts": 1,
    },
    "cache": {
        "directory": "./data/cache",
        "key": DATASET_CACHE_KEY,
        "ttl_hours": CACHE_TTL_HOURS,
    },
    "transform": {
        "simplify_tolerance": DEFAULT_SIMPLIFY_TOLERANCE,
        "bbox_filter_all_polygons": False,
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}


@dataclass(frozen=True)
class SourceConfig:
    url: str
    timeout_seconds: float
    connect_timeout_seconds: float
    max_attempts: int


@dataclass(frozen=True)
class CacheConfig:
    directory: Path
    key: str
    ttl_hours: float


@dataclass(frozen=True)
class TransformConfig:
    simplify_tolerance: float
    bbox_filter_all_polygons: bool


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    file: Path | None


@dataclass(frozen=True)
class LocatorConfig:
    source: SourceConfig
    cache: CacheConfig
    transform: TransformConfig
    logging: LoggingConfig


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def build_config(raw: dict, *, allow_unknown: bool = False) -> LocatorConfig:
    validate_locator_config(raw, allow_unknown=allow_unknown)
    # Optional keys fall back to defaults once the file itself is valid.
    cfg = _deep_merge(DEFAULT_CONFIG, raw)
    source = cfg["source"]
    cache = cfg["cache"]
    transform = cfg["transform"]
    logging_cfg = cfg["logging"]
    return LocatorConfig(
        source=SourceConfig(
            url=source["url"],
            timeout_seconds=float(source["timeout_seconds"]),
            connect_timeout_seconds=float(source["connect_timeout_seconds"]),
            max_attempts=int(source["max_attempts"]),
        ),
        cache=CacheConfig(
            directory=Path(cache["directory"]),
            key=str(cache["key"]),
            ttl_hours=float(cache["ttl_hours"]),
        ),
        transform=TransformConfig(
            simplify_tolerance=float(transform["simplify_tolerance"]),
            bbox_filter_all_polygons=bool(transform["bbox_filter_all_polygons"]),
        ),
        logging=LoggingConfig(
            level=str(logging_cfg.get("level") or "INFO"),
            file=Path(logging_cfg["file"]) if logging_cfg.get("file") else None,
        ),
    )


def load_config(
    path: Path,
    *,
    allow_unknown: bool = False,
    overlay_path: Path | None = None,
) -> LocatorConfig:
    return build_config(_load_yaml_with_overlay(path, overlay_path), allow_unknown=allow_unknown)


def default_config() -> LocatorConfig:
    return build_config(DEFAULT_CONFIG)
