"""CLI entrypoint for ward lookups against the cached ward boundary dataset."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from ward_locator.common.config_loader import LocatorConfig, default_config, load_config
from ward_locator.common.constants import EXIT_DEGRADED, EXIT_HARD_FAIL, EXIT_SUCCESS
from ward_locator.common.errors import WardLocatorError
from ward_locator.common.fs import write_json
from ward_locator.common.geometry import haversine_distance_km, polygon_outlines
from ward_locator.common.logging import build_logger, log_event
from ward_locator.common.models import BoundingBox, Point
from ward_locator.pipeline.acquisition import AcquisitionPipeline, PipelineState
from ward_locator.pipeline.wards import WardResolver

COMMANDS = ("load", "refresh", "resolve", "wards", "outlines", "distance")


def _floats(value: str, count: int) -> list[float]:
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != count:
        raise argparse.ArgumentTypeError(f"expected {count} comma-separated numbers, got {value!r}")
    try:
        return [float(part) for part in parts]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a number in {value!r}") from exc


def _lat_lon(value: str) -> Point:
    lat, lon = _floats(value, 2)
    return Point(latitude=lat, longitude=lon)


def _bbox(value: str) -> BoundingBox:
    south, west, north, east = _floats(value, 4)
    return BoundingBox.from_edges(south=south, west=west, north=north, east=east)


def _region(value: str) -> BoundingBox:
    lat, lon, lat_delta, lon_delta = _floats(value, 4)
    return BoundingBox.from_region(lat, lon, lat_delta, lon_delta)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--config", default=None, help="YAML config; built-in defaults when omitted")
    parser.add_argument("--overlay-config", default=None)
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--lat", type=float, default=None)
    parser.add_argument("--lon", type=float, default=None)
    parser.add_argument("--nearest", action="store_true", help="fall back to the closest ward")
    parser.add_argument("--from", dest="from_point", type=_lat_lon, default=None, metavar="LAT,LON")
    parser.add_argument("--to", dest="to_point", type=_lat_lon, default=None, metavar="LAT,LON")
    parser.add_argument("--export", default=None, help="write the held dataset as GeoJSON")
    viewport = parser.add_mutually_exclusive_group()
    viewport.add_argument("--bbox", type=_bbox, default=None, metavar="S,W,N,E")
    viewport.add_argument("--region", type=_region, default=None, metavar="LAT,LON,DLAT,DLON")
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> LocatorConfig:
    if args.config is None:
        return default_config()
    overlay = Path(args.overlay_config) if args.overlay_config else None
    return load_config(Path(args.config), overlay_path=overlay)


def _emit(payload) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2, default=str) + "\n")


def execute_command(args: argparse.Namespace, resolver: WardResolver) -> int:
    if args.command == "refresh":
        result = resolver.refresh()
    else:
        result = resolver.load()
    resolver.set_viewport(args.bbox or args.region)

    if args.command in ("load", "refresh"):
        if args.export:
            write_json(Path(args.export), result.dataset)
        _emit(result.summary())
    elif args.command == "resolve":
        point = Point(latitude=args.lat, longitude=args.lon)
        if args.nearest:
            nearest = resolver.nearest_ward(point)
            _emit(None if nearest is None else {"ward": nearest[0].to_dict(), "distance_km": nearest[1]})
        else:
            ward = resolver.resolve_ward(point)
            _emit(None if ward is None else ward.to_dict())
    elif args.command == "wards":
        _emit([ward.to_dict(include_geometry=False) for ward in resolver.list_wards()])
    elif args.command == "outlines":
        outlines = polygon_outlines(resolver.pipeline.view)
        _emit(
            [
                {**outline, "coordinates": [asdict(point) for point in outline["coordinates"]]}
                for outline in outlines
            ]
        )
    else:
        raise ValueError(f"Unknown command: {args.command}")

    if resolver.state is PipelineState.DEGRADED:
        return EXIT_DEGRADED
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    if args.command == "distance":
        if args.from_point is None or args.to_point is None:
            raise ValueError("distance requires --from and --to")
        _emit({"distance_km": haversine_distance_km(args.from_point, args.to_point)})
        return EXIT_SUCCESS

    if args.command == "resolve" and (args.lat is None or args.lon is None):
        raise ValueError("resolve requires --lat and --lon")

    config = _load_config(args)
    log_file = Path(args.log_file) if args.log_file else config.logging.file
    logger = build_logger(args.log_level or config.logging.level, log_path=log_file)

    pipeline = AcquisitionPipeline.from_config(config)
    try:
        exit_code = execute_command(args, WardResolver(pipeline))
    finally:
        pipeline.close()
    log_event(logger, f"{args.command} finished", event="COMMAND_END", status="ok" if exit_code == 0 else "degraded")
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except WardLocatorError as exc:
        logging.getLogger("ward_locator").error("command failed: %s", exc, extra={"error_code": exc.error_code})
        return EXIT_HARD_FAIL
    except Exception as exc:
        logging.getLogger("ward_locator").error("unexpected failure: %s", exc, extra={"error_code": "UNEXPECTED_ERROR"})
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
