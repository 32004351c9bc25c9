"""Coordinate reference normalisation for downloaded ward datasets.

Legacy GeoJSON may carry a ``crs`` member naming a projected system. Ward
lookups work in WGS84 lon/lat, so such datasets are reprojected once, before
simplification and caching.
"""

from __future__ import annotations

import logging
from typing import Any

from pyproj import CRS, Transformer

from ward_locator.common.errors import MalformedGeometry
from ward_locator.common.geometry import feature_geometry, log_skipped_feature
from ward_locator.common.logging import log_event
from ward_locator.common.models import Dataset, Feature

logger = logging.getLogger(__name__)

WGS84_NAMES = {"urn:ogc:def:crs:OGC:1.3:CRS84", "urn:ogc:def:crs:OGC::CRS84", "CRS84"}


def _safe_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _valid_lat_lon(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def declared_crs_name(dataset: Dataset) -> str | None:
    crs = dataset.get("crs")
    if not isinstance(crs, dict):
        return None
    properties = crs.get("properties") or {}
    name = properties.get("name")
    return str(name) if name else None


def _is_wgs84(name: str) -> bool:
    if name in WGS84_NAMES:
        return True
    try:
        return CRS.from_user_input(name).to_epsg() == 4326
    except Exception:
        return False


def _build_transformer(name: str) -> Transformer | None:
    try:
        return Transformer.from_crs(CRS.from_user_input(name), CRS.from_epsg(4326), always_xy=True)
    except Exception:
        return None


def _transform_positions(positions: Any, transformer: Transformer) -> Any:
    if not isinstance(positions, list) or not positions:
        raise MalformedGeometry("Empty or non-list coordinates")
    if not isinstance(positions[0], list):
        x = _safe_float(positions[0])
        y = _safe_float(positions[1]) if len(positions) > 1 else None
        if x is None or y is None:
            raise MalformedGeometry(f"Invalid position: {positions}")
        lon, lat = transformer.transform(x, y)
        return [lon, lat]
    return [_transform_positions(item, transformer) for item in positions]


def _transform_feature(feature: Feature, transformer: Transformer) -> Feature:
    geometry = feature_geometry(feature)
    if "coordinates" not in geometry:
        return feature
    return {
        **feature,
        "geometry": {**geometry, "coordinates": _transform_positions(geometry["coordinates"], transformer)},
    }


def first_vertex_is_geographic(dataset: Dataset) -> bool:
    for feature in dataset.get("features") or []:
        coordinates = feature_geometry(feature).get("coordinates")
        while isinstance(coordinates, list) and coordinates and isinstance(coordinates[0], list):
            coordinates = coordinates[0]
        if isinstance(coordinates, list) and len(coordinates) >= 2:
            return _valid_lat_lon(_safe_float(coordinates[1]), _safe_float(coordinates[0]))
    return True


def normalise_to_wgs84(dataset: Dataset) -> Dataset:
    """Return a WGS84 copy of ``dataset``; undeclared or unknown systems pass through."""
    name = declared_crs_name(dataset)
    if name is None or _is_wgs84(name):
        if not first_vertex_is_geographic(dataset):
            log_event(
                logger,
                "dataset coordinates fall outside the WGS84 range",
                level=logging.WARNING,
                event="CRS_SUSPECT",
                status="warning",
            )
        return dataset

    transformer = _build_transformer(name)
    if transformer is None:
        log_event(
            logger,
            f"unknown coordinate reference system {name}; keeping coordinates as-is",
            level=logging.WARNING,
            event="CRS_UNKNOWN",
            status="warning",
        )
        return dataset

    features = []
    for index, feature in enumerate(dataset.get("features") or []):
        if not isinstance(feature, dict):
            log_skipped_feature(index, "feature is not an object")
            features.append(feature)
            continue
        try:
            features.append(_transform_feature(feature, transformer))
        except MalformedGeometry as exc:
            log_event(
                logger,
                f"feature {index} not reprojected: {exc}",
                level=logging.WARNING,
                event="FEATURE_SKIPPED",
                status="warning",
                error_code=exc.error_code,
            )
            features.append(feature)

    out = {key: value for key, value in dataset.items() if key != "crs"}
    out["features"] = features
    log_event(logger, f"dataset reprojected from {name}", event="CRS_NORMALISED", status="ok", feature_count=len(features))
    return out
