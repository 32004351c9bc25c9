"""Data models shared by the geometry engine, the pipeline and the CLI."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

Dataset = dict[str, Any]
Feature = dict[str, Any]
Ring = list[list[float]]


def empty_dataset() -> Dataset:
    return {"type": "FeatureCollection", "features": []}


@dataclass(frozen=True)
class Point:
    latitude: float
    longitude: float

    @classmethod
    def from_lon_lat(cls, coord: list[float] | tuple[float, ...]) -> "Point":
        return cls(latitude=float(coord[1]), longitude=float(coord[0]))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned viewport in lat/lon space. No antimeridian wraparound."""

    north_east: Point
    south_west: Point

    @classmethod
    def from_edges(cls, south: float, west: float, north: float, east: float) -> "BoundingBox":
        return cls(
            north_east=Point(latitude=north, longitude=east),
            south_west=Point(latitude=south, longitude=west),
        )

    @classmethod
    def from_region(
        cls,
        latitude: float,
        longitude: float,
        latitude_delta: float,
        longitude_delta: float,
    ) -> "BoundingBox":
        """Build the viewport of a map region given its centre and full span."""
        return cls.from_edges(
            south=latitude - latitude_delta / 2,
            west=longitude - longitude_delta / 2,
            north=latitude + latitude_delta / 2,
            east=longitude + longitude_delta / 2,
        )


WORLD_BOUNDS = BoundingBox.from_edges(south=-90.0, west=-180.0, north=90.0, east=180.0)


@dataclass(frozen=True)
class CacheEntry:
    data: Dataset
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp}


@dataclass(frozen=True)
class WardRecord:
    id: Any
    name: str | None
    municipality: str | None
    properties: dict[str, Any]
    geometry: dict[str, Any] | None = None

    def to_dict(self, *, include_geometry: bool = True) -> dict[str, Any]:
        out = asdict(self)
        if not include_geometry:
            out.pop("geometry")
        return out
