"""Dataset transforms: polygon simplification and viewport pre-filtering.

Both transforms return a new FeatureCollection and never touch the features of
the input dataset.
"""

from __future__ import annotations

import logging
from typing import Any

from shapely.errors import GEOSException
from shapely.geometry import mapping, shape

from ward_locator.common.errors import MalformedGeometry
from ward_locator.common.geometry import (
    POLYGON_TYPES,
    any_vertex_in_box,
    feature_geometry,
    log_skipped_feature,
    outer_rings,
)
from ward_locator.common.logging import log_event
from ward_locator.common.models import BoundingBox, Dataset, Feature

logger = logging.getLogger(__name__)


def _as_lists(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_as_lists(item) for item in value]
    return value


def _simplify_feature(feature: Feature, tolerance: float) -> Feature:
    geometry = feature_geometry(feature)
    if geometry.get("type") not in POLYGON_TYPES:
        return feature
    try:
        simplified = shape(geometry).simplify(tolerance, preserve_topology=False)
    except (GEOSException, ValueError, TypeError, KeyError, IndexError, AttributeError) as exc:
        raise MalformedGeometry(f"Cannot simplify {geometry.get('type')}: {exc}") from exc
    if simplified.is_empty:
        return feature

    mapped = mapping(simplified)
    return {**feature, "geometry": {"type": mapped["type"], "coordinates": _as_lists(mapped["coordinates"])}}


def simplify(dataset: Dataset, tolerance: float) -> Dataset:
    """Reduce vertex density. Best effort: failures fall back to the input."""
    try:
        features = list(dataset.get("features") or [])
        if tolerance <= 0:
            return {**dataset, "features": features}

        simplified: list[Feature] = []
        skipped = 0
        for index, feature in enumerate(features):
            if not isinstance(feature, dict):
                skipped += 1
                log_skipped_feature(index, "feature is not an object")
                simplified.append(feature)
                continue
            try:
                simplified.append(_simplify_feature(feature, tolerance))
            except MalformedGeometry as exc:
                skipped += 1
                log_event(
                    logger,
                    f"feature {index} left unsimplified: {exc}",
                    level=logging.DEBUG,
                    event="FEATURE_SKIPPED",
                    error_code=exc.error_code,
                )
                simplified.append(feature)
    except Exception as exc:
        log_event(
            logger,
            f"failed to simplify dataset: {exc}",
            level=logging.WARNING,
            event="SIMPLIFY_FAILED",
            status="error",
        )
        return dataset

    log_event(
        logger,
        f"dataset simplified with tolerance {tolerance:g}",
        event="SIMPLIFY_END",
        status="ok" if not skipped else "partial",
        feature_count=len(simplified),
    )
    return {**dataset, "features": simplified}


def _feature_in_box(feature: Feature, box: BoundingBox, all_polygons: bool) -> bool:
    geometry = feature_geometry(feature)
    if not geometry.get("coordinates"):
        return False
    try:
        rings = outer_rings(geometry)
        # Only the first polygon is sampled unless asked otherwise; a ward whose
        # first polygon sits outside the viewport is dropped.
        sampled = rings if all_polygons else rings[:1]
        return any(any_vertex_in_box(ring, box) for ring in sampled)
    except (MalformedGeometry, TypeError, ValueError, IndexError) as exc:
        log_event(logger, f"feature dropped by bounds filter: {exc}", level=logging.DEBUG, event="FEATURE_SKIPPED")
        return False


def filter_by_bounding_box(
    dataset: Dataset | None,
    box: BoundingBox | None,
    *,
    all_polygons: bool = False,
) -> Dataset | None:
    if box is None or not dataset or not dataset.get("features"):
        return dataset

    kept = [feature for feature in dataset["features"] if _feature_in_box(feature, box, all_polygons)]
    return {**dataset, "features": kept}
