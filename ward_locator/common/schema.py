"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from ward_locator.common.errors import ConfigError

TOP_LEVEL_KEYS = {"source", "cache", "transform", "logging"}


def _assert_mapping(obj, ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_number(value, ctx: str, *, minimum: float = 0.0, strict: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < minimum or (strict and value == minimum):
        bound = "greater than" if strict else "at least"
        raise ConfigError(f"{ctx} must be {bound} {minimum}")


def validate_locator_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "ward locator config")
    _assert_required_keys(cfg, {"source", "cache", "transform"}, "ward locator config")
    _assert_no_unknown_keys(cfg, TOP_LEVEL_KEYS, "ward locator config", allow_unknown)

    source = cfg["source"]
    _assert_mapping(source, "source")
    _assert_required_keys(source, {"url", "timeout_seconds"}, "source")
    _assert_no_unknown_keys(
        source,
        {"url", "timeout_seconds", "connect_timeout_seconds", "max_attempts"},
        "source",
        allow_unknown,
    )
    if not isinstance(source["url"], str) or not source["url"].startswith(("http://", "https://")):
        raise ConfigError("source.url must be an http(s) URL")
    _assert_number(source["timeout_seconds"], "source.timeout_seconds", strict=True)
    if "connect_timeout_seconds" in source:
        _assert_number(source["connect_timeout_seconds"], "source.connect_timeout_seconds", strict=True)
    if "max_attempts" in source:
        _assert_number(source["max_attempts"], "source.max_attempts", minimum=1)

    cache = cfg["cache"]
    _assert_mapping(cache, "cache")
    _assert_required_keys(cache, {"directory"}, "cache")
    _assert_no_unknown_keys(cache, {"directory", "key", "ttl_hours"}, "cache", allow_unknown)
    if "ttl_hours" in cache:
        _assert_number(cache["ttl_hours"], "cache.ttl_hours", strict=True)

    transform = cfg["transform"]
    _assert_mapping(transform, "transform")
    _assert_required_keys(transform, {"simplify_tolerance"}, "transform")
    _assert_no_unknown_keys(
        transform,
        {"simplify_tolerance", "bbox_filter_all_polygons"},
        "transform",
        allow_unknown,
    )
    _assert_number(transform["simplify_tolerance"], "transform.simplify_tolerance")

    if "logging" in cfg:
        _assert_mapping(cfg["logging"], "logging")
        _assert_no_unknown_keys(cfg["logging"], {"level", "file"}, "logging", allow_unknown)

    return cfg
