"""Ward lookups over the acquired dataset."""

from __future__ import annotations

from typing import Any

from ward_locator.common.errors import MalformedGeometry
from ward_locator.common.geometry import (
    feature_geometry,
    feature_properties,
    haversine_distance_km,
    outer_rings,
    resolve_containing_feature,
)
from ward_locator.common.models import BoundingBox, Dataset, Feature, Point, WardRecord
from ward_locator.pipeline.acquisition import AcquisitionPipeline, AcquisitionResult, PipelineState

# Sources disagree on property naming; earlier keys win.
ID_KEYS = ("id", "WARD_ID", "ward_id")
NAME_KEYS = ("name", "WARD_NAME", "ward_name")
MUNICIPALITY_KEYS = ("municipality", "MUNICIPALITY", "mun_name")

QUERYABLE_STATES = (PipelineState.READY, PipelineState.DEGRADED)


def _first_present(properties: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = properties.get(key)
        if value not in (None, ""):
            return value
    return None


def normalise_ward(feature: Feature, *, include_geometry: bool = False) -> WardRecord:
    properties = feature_properties(feature)
    ward_id = _first_present(properties, ID_KEYS)
    name = _first_present(properties, NAME_KEYS)
    if name is None and ward_id is not None:
        name = f"Ward {ward_id}"
    return WardRecord(
        id=ward_id,
        name=name,
        municipality=_first_present(properties, MUNICIPALITY_KEYS),
        properties=properties,
        geometry=(feature_geometry(feature) or None) if include_geometry else None,
    )


class WardResolver:
    """Answers ward queries for an external caller (map view, report form)."""

    def __init__(self, pipeline: AcquisitionPipeline) -> None:
        self.pipeline = pipeline

    @property
    def state(self) -> PipelineState:
        return self.pipeline.state

    @property
    def loading(self) -> bool:
        return self.pipeline.loading

    @property
    def error(self) -> str | None:
        return self.pipeline.error

    def load(self) -> AcquisitionResult:
        return self.pipeline.load()

    def refresh(self) -> AcquisitionResult:
        return self.pipeline.refresh()

    def set_viewport(self, box: BoundingBox | None) -> None:
        self.pipeline.set_viewport(box)

    def _dataset(self) -> Dataset | None:
        if self.pipeline.state not in QUERYABLE_STATES:
            return None
        return self.pipeline.view

    def resolve_ward(self, point: Point | None) -> WardRecord | None:
        dataset = self._dataset()
        if dataset is None or point is None:
            return None
        feature = resolve_containing_feature(point, dataset)
        if feature is None:
            return None
        return normalise_ward(feature)

    def list_wards(self) -> list[WardRecord]:
        dataset = self._dataset()
        if dataset is None:
            return []
        return [
            normalise_ward(feature, include_geometry=True)
            for feature in dataset.get("features") or []
            if isinstance(feature, dict)
        ]

    def nearest_ward(self, point: Point | None) -> tuple[WardRecord, float] | None:
        """Containing ward at distance 0, else the ward with the closest boundary vertex."""
        dataset = self._dataset()
        if dataset is None or point is None:
            return None

        containing = resolve_containing_feature(point, dataset)
        if containing is not None:
            return normalise_ward(containing), 0.0

        best: tuple[Feature, float] | None = None
        for feature in dataset.get("features") or []:
            try:
                rings = outer_rings(feature_geometry(feature))
                distance = min(
                    haversine_distance_km(point, Point.from_lon_lat(coord)) for ring in rings for coord in ring
                )
            except (MalformedGeometry, TypeError, ValueError, IndexError):
                continue
            if best is None or distance < best[1]:
                best = (feature, distance)

        if best is None:
            return None
        return normalise_ward(best[0]), best[1]
