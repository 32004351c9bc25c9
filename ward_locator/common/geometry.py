"""Geometry helpers: ray casting, ward feature resolution and distances.

Coordinates follow GeoJSON order ([longitude, latitude]). Everything here is
pure and safe to call from several threads at once.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Sequence

from ward_locator.common.constants import EARTH_RADIUS_KM
from ward_locator.common.errors import MalformedGeometry
from ward_locator.common.logging import log_event
from ward_locator.common.models import BoundingBox, Dataset, Feature, Point, Ring

logger = logging.getLogger(__name__)

POLYGON_TYPES = ("Polygon", "MultiPolygon")


def log_skipped_feature(index: int, reason: str) -> None:
    log_event(
        logger,
        f"skipping feature {index}: {reason}",
        level=logging.DEBUG,
        event="FEATURE_SKIPPED",
        status="warning",
        error_code=MalformedGeometry.error_code,
    )


def point_in_polygon(point: Point | None, ring: Sequence[Sequence[float]] | None) -> bool:
    if point is None or ring is None or len(ring) < 3:
        return False

    lat = point.latitude
    lng = point.longitude
    inside = False
    j = len(ring) - 1
    try:
        for i in range(len(ring)):
            xi, yi = float(ring[i][0]), float(ring[i][1])
            xj, yj = float(ring[j][0]), float(ring[j][1])
            # Horizontal edges fail the straddle test, so the division is safe.
            if ((yi > lat) != (yj > lat)) and (lng < (xj - xi) * (lat - yi) / (yj - yi) + xi):
                inside = not inside
            j = i
    except (TypeError, ValueError, IndexError) as exc:
        raise MalformedGeometry(f"Invalid ring vertex: {exc}") from exc
    return inside


def feature_geometry(feature: Any) -> dict[str, Any]:
    """The geometry object of a feature, or an empty mapping when either is junk."""
    if not isinstance(feature, dict):
        return {}
    geometry = feature.get("geometry")
    return geometry if isinstance(geometry, dict) else {}


def feature_properties(feature: Any) -> dict[str, Any]:
    if not isinstance(feature, dict):
        return {}
    properties = feature.get("properties")
    return properties if isinstance(properties, dict) else {}


def outer_rings(geometry: dict[str, Any] | None) -> list[Ring]:
    """Return the outer ring of every polygon in a Polygon or MultiPolygon.

    MultiPolygon members without rings are skipped; the geometry is malformed
    only when no member is usable.
    """
    if not isinstance(geometry, dict) or not geometry:
        raise MalformedGeometry("Feature has no geometry")
    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or not coordinates:
        raise MalformedGeometry(f"{geometry_type} has no coordinates")

    if geometry_type == "Polygon":
        return [coordinates[0]]
    if geometry_type == "MultiPolygon":
        rings = [
            polygon[0]
            for polygon in coordinates
            if isinstance(polygon, list) and polygon and isinstance(polygon[0], list)
        ]
        if not rings:
            raise MalformedGeometry("MultiPolygon has no member with rings")
        return rings
    raise MalformedGeometry(f"Unsupported geometry type: {geometry_type}")


def feature_contains(feature: Feature, point: Point) -> bool:
    """True when any outer ring holds the point; a bad ring only fails the
    feature if no other ring matches."""
    failure: MalformedGeometry | None = None
    for ring in outer_rings(feature_geometry(feature)):
        try:
            if point_in_polygon(point, ring):
                return True
        except MalformedGeometry as exc:
            failure = exc
    if failure is not None:
        raise failure
    return False


def resolve_containing_feature(point: Point | None, dataset: Dataset | None) -> Feature | None:
    if point is None or not dataset:
        return None

    # Stored order matters: overlapping wards resolve to the first listed.
    for index, feature in enumerate(dataset.get("features") or []):
        if not isinstance(feature, dict):
            log_skipped_feature(index, "feature is not an object")
            continue
        if feature_geometry(feature).get("type") not in POLYGON_TYPES:
            continue
        try:
            if feature_contains(feature, point):
                return feature
        except MalformedGeometry as exc:
            log_skipped_feature(index, str(exc))
    return None


def haversine_distance_km(p1: Point | None, p2: Point | None) -> float:
    if p1 is None or p2 is None:
        return 0.0

    d_lat = math.radians(p2.latitude - p1.latitude)
    d_lon = math.radians(p2.longitude - p1.longitude)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(p1.latitude)) * math.cos(math.radians(p2.latitude)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_KM * c


def point_in_bounding_box(point: Point | None, box: BoundingBox | None) -> bool:
    if box is None or point is None:
        return True
    return (
        box.south_west.latitude <= point.latitude <= box.north_east.latitude
        and box.south_west.longitude <= point.longitude <= box.north_east.longitude
    )


def any_vertex_in_box(ring: Iterable[Sequence[float]], box: BoundingBox) -> bool:
    return any(point_in_bounding_box(Point.from_lon_lat(coord), box) for coord in ring)


def polygon_outlines(dataset: Dataset | None) -> list[dict[str, Any]]:
    """Outer-ring outlines of every polygon, one entry per drawable shape."""
    if not dataset:
        return []

    outlines: list[dict[str, Any]] = []
    for index, feature in enumerate(dataset.get("features") or []):
        geometry = feature_geometry(feature)
        if geometry.get("type") not in POLYGON_TYPES:
            continue
        try:
            rings = outer_rings(geometry)
            shapes = [[Point.from_lon_lat(coord) for coord in ring] for ring in rings]
        except (MalformedGeometry, TypeError, ValueError, IndexError):
            log_skipped_feature(index, "no drawable outline")
            continue

        feature_id = feature_properties(feature).get("id")
        for poly_index, shape in enumerate(shapes):
            if feature_id:
                outline_id = feature_id
            elif geometry["type"] == "Polygon":
                outline_id = f"polygon-{index}"
            else:
                outline_id = f"multipolygon-{index}-{poly_index}"
            outlines.append({"id": outline_id, "feature_index": index, "coordinates": shape})
    return outlines
