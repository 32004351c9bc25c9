import copy

from ward_locator.common.models import WORLD_BOUNDS, BoundingBox
from ward_locator.pipeline import transform
from ward_locator.pipeline.transform import filter_by_bounding_box, simplify


def _square(west, south, east, north):
    return [[west, south], [east, south], [east, north], [west, north], [west, south]]


def _dense_square(west, south, east, north, steps=10):
    """Square ring with extra collinear vertices along every edge."""
    ring = []
    corners = [(west, south), (east, south), (east, north), (west, north), (west, south)]
    for (x0, y0), (x1, y1) in zip(corners, corners[1:]):
        for step in range(steps):
            t = step / steps
            ring.append([x0 + (x1 - x0) * t, y0 + (y1 - y0) * t])
    ring.append([west, south])
    return ring


def _feature(geometry_type, coordinates, **properties):
    return {"type": "Feature", "properties": properties, "geometry": {"type": geometry_type, "coordinates": coordinates}}


def _dataset(*features):
    return {"type": "FeatureCollection", "features": list(features)}


def test_filter_with_world_bounds_keeps_every_feature_in_order():
    dataset = _dataset(
        _feature("Polygon", [_square(0, 0, 1, 1)], id="a"),
        _feature("MultiPolygon", [[_square(10, 10, 11, 11)], [_square(-5, -5, -4, -4)]], id="b"),
        _feature("Polygon", [_square(170, 80, 179, 89)], id="c"),
    )

    filtered = filter_by_bounding_box(dataset, WORLD_BOUNDS)

    assert filtered == dataset
    assert filtered is not dataset
    assert [f["properties"]["id"] for f in filtered["features"]] == ["a", "b", "c"]


def test_filter_without_box_or_features_returns_input():
    dataset = _dataset(_feature("Polygon", [_square(0, 0, 1, 1)]))
    empty = _dataset()

    assert filter_by_bounding_box(dataset, None) is dataset
    assert filter_by_bounding_box(empty, WORLD_BOUNDS) is empty
    assert filter_by_bounding_box(None, WORLD_BOUNDS) is None


def test_filter_keeps_features_with_a_vertex_in_the_box():
    inside = _feature("Polygon", [_square(0, 0, 1, 1)], id="inside")
    straddling = _feature("Polygon", [_square(1.5, 1.5, 3, 3)], id="straddling")
    outside = _feature("Polygon", [_square(10, 10, 11, 11)], id="outside")
    box = BoundingBox.from_edges(south=-0.5, west=-0.5, north=2, east=2)

    filtered = filter_by_bounding_box(_dataset(inside, straddling, outside), box)

    assert [f["properties"]["id"] for f in filtered["features"]] == ["inside", "straddling"]


def test_filter_samples_first_polygon_of_multipolygon_by_default():
    far_first = _feature("MultiPolygon", [[_square(10, 10, 11, 11)], [_square(0, 0, 1, 1)]], id="far-first")
    box = BoundingBox.from_edges(south=-0.5, west=-0.5, north=2, east=2)

    assert filter_by_bounding_box(_dataset(far_first), box)["features"] == []
    assert filter_by_bounding_box(_dataset(far_first), box, all_polygons=True)["features"] == [far_first]


def test_filter_drops_features_without_coordinates():
    dataset = _dataset(
        {"type": "Feature", "properties": {"id": "no-geometry"}},
        _feature("Polygon", [], id="empty"),
        _feature("Polygon", [[["x", "y"], [1, 1], [0, 1]]], id="garbage"),
        _feature("Polygon", [_square(0, 0, 1, 1)], id="ok"),
    )

    filtered = filter_by_bounding_box(dataset, WORLD_BOUNDS)

    assert [f["properties"]["id"] for f in filtered["features"]] == ["ok"]


def test_filter_does_not_mutate_input():
    dataset = _dataset(_feature("Polygon", [_square(0, 0, 1, 1)]), _feature("Polygon", [_square(50, 50, 51, 51)]))
    snapshot = copy.deepcopy(dataset)

    filter_by_bounding_box(dataset, BoundingBox.from_edges(south=-1, west=-1, north=2, east=2))

    assert dataset == snapshot


def test_simplify_removes_collinear_vertices():
    dense = _dense_square(0, 0, 1, 1)
    dataset = _dataset(_feature("Polygon", [dense], id="W1"))

    simplified = simplify(dataset, 0.001)

    ring = simplified["features"][0]["geometry"]["coordinates"][0]
    assert len(dense) == 41
    assert len(ring) == 5
    assert {tuple(coord) for coord in ring} == {(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)}
    assert simplified["features"][0]["properties"] == {"id": "W1"}
    assert len(dataset["features"][0]["geometry"]["coordinates"][0]) == 41


def test_simplify_handles_multipolygons():
    dataset = _dataset(_feature("MultiPolygon", [[_dense_square(0, 0, 1, 1)], [_dense_square(5, 5, 6, 6)]]))

    geometry = simplify(dataset, 0.001)["features"][0]["geometry"]

    assert geometry["type"] == "MultiPolygon"
    assert [len(polygon[0]) for polygon in geometry["coordinates"]] == [5, 5]


def test_simplify_with_zero_tolerance_returns_equal_copy():
    dataset = _dataset(_feature("Polygon", [_dense_square(0, 0, 1, 1)]))

    result = simplify(dataset, 0)

    assert result == dataset
    assert result is not dataset


def test_simplify_keeps_malformed_and_non_polygon_features():
    degenerate = _feature("Polygon", [[[0, 0], [1, 1]]], id="degenerate")
    point = _feature("Point", [0.5, 0.5], id="point")

    result = simplify(_dataset(degenerate, point), 0.01)

    assert result["features"] == [degenerate, point]


def test_simplify_returns_original_dataset_on_internal_failure(monkeypatch):
    def explode(*_args, **_kwargs):
        raise RuntimeError("geos blew up")

    monkeypatch.setattr(transform, "_simplify_feature", explode)
    dataset = _dataset(_feature("Polygon", [_square(0, 0, 1, 1)]))

    assert simplify(dataset, 0.01) is dataset


def test_transforms_pass_over_non_object_features():
    good = _feature("Polygon", [_dense_square(0, 0, 1, 1)], id="good")
    dataset = _dataset(7, None, good, "ward")

    simplified = simplify(dataset, 0.001)
    filtered = filter_by_bounding_box(simplified, WORLD_BOUNDS)

    assert simplified["features"][0] == 7
    assert simplified["features"][3] == "ward"
    assert len(simplified["features"][2]["geometry"]["coordinates"][0]) == 5
    assert [f["properties"]["id"] for f in filtered["features"]] == ["good"]


def test_filter_keeps_multipolygon_after_empty_member():
    feature = _feature("MultiPolygon", [[], [_square(0, 0, 1, 1)]], id="gap-first")
    box = BoundingBox.from_edges(south=-0.5, west=-0.5, north=2, east=2)

    assert filter_by_bounding_box(_dataset(feature), box)["features"] == [feature]
