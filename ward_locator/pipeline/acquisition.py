"""Dataset acquisition: cache first, remote on miss, always a usable result."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum

from ward_locator.common.config_loader import LocatorConfig
from ward_locator.common.constants import DEFAULT_DATASET_URL, DEFAULT_SIMPLIFY_TOLERANCE, TIMEOUT_MESSAGE
from ward_locator.common.errors import FetchError, FetchTimeout
from ward_locator.common.http import HttpClient, RetryConfig, TimeoutConfig
from ward_locator.common.logging import log_event
from ward_locator.common.models import BoundingBox, Dataset, empty_dataset
from ward_locator.harvest.fetch import fetch_dataset
from ward_locator.pipeline.cache import CacheStore, FileKeyValueStore
from ward_locator.pipeline.coordinates import normalise_to_wgs84
from ward_locator.pipeline.transform import filter_by_bounding_box, simplify

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class AcquisitionResult:
    state: PipelineState
    dataset: Dataset
    source: str
    error: str | None = None
    error_code: str | None = None

    @property
    def feature_count(self) -> int:
        return len(self.dataset.get("features") or [])

    def summary(self) -> dict:
        return {
            "state": self.state.value,
            "source": self.source,
            "feature_count": self.feature_count,
            "error": self.error,
            "error_code": self.error_code,
        }


class AcquisitionPipeline:
    """Owns one cache slot and the dataset currently held for lookups.

    ``load`` walks idle -> loading -> ready|degraded. Fetch failures are
    reported once through ``error`` and are not retried; ``refresh`` is the
    retry path. ``view`` is the held dataset narrowed to the current viewport.
    """

    def __init__(
        self,
        cache: CacheStore,
        *,
        url: str = DEFAULT_DATASET_URL,
        http_client: HttpClient | None = None,
        simplify_tolerance: float = DEFAULT_SIMPLIFY_TOLERANCE,
        bbox_filter_all_polygons: bool = False,
    ) -> None:
        self.cache = cache
        self.url = url
        self.http_client = http_client or HttpClient()
        self.simplify_tolerance = simplify_tolerance
        self.bbox_filter_all_polygons = bbox_filter_all_polygons

        self.state = PipelineState.IDLE
        self.error: str | None = None
        self.last_result: AcquisitionResult | None = None
        self._held: Dataset | None = None
        self._viewport: BoundingBox | None = None
        self._cancel_event = threading.Event()

        self._view_lock = threading.Lock()
        self._view_source: Dataset | None = None
        self._view_box: BoundingBox | None = None
        self._view: Dataset | None = None

    @classmethod
    def from_config(cls, config: LocatorConfig, *, http_client: HttpClient | None = None) -> "AcquisitionPipeline":
        cache = CacheStore(
            FileKeyValueStore(config.cache.directory),
            key=config.cache.key,
            ttl_hours=config.cache.ttl_hours,
        )
        client = http_client or HttpClient(
            timeout=TimeoutConfig(
                connect=config.source.connect_timeout_seconds,
                read=config.source.timeout_seconds,
                total=config.source.timeout_seconds,
            ),
            retry=RetryConfig(max_attempts=config.source.max_attempts),
        )
        return cls(
            cache,
            url=config.source.url,
            http_client=client,
            simplify_tolerance=config.transform.simplify_tolerance,
            bbox_filter_all_polygons=config.transform.bbox_filter_all_polygons,
        )

    @property
    def loading(self) -> bool:
        return self.state is PipelineState.LOADING

    @property
    def held_dataset(self) -> Dataset | None:
        return self._held

    @property
    def viewport(self) -> BoundingBox | None:
        return self._viewport

    def _finish(
        self,
        state: PipelineState,
        dataset: Dataset,
        source: str,
        *,
        error: str | None = None,
        error_code: str | None = None,
    ) -> AcquisitionResult:
        self._held = dataset
        self.error = error
        self.state = state
        self.last_result = AcquisitionResult(
            state=state,
            dataset=dataset,
            source=source,
            error=error,
            error_code=error_code,
        )
        return self.last_result

    def _degrade(self, message: str, error_code: str) -> AcquisitionResult:
        log_event(
            logger,
            f"failed to load dataset: {message}",
            level=logging.ERROR,
            event="LOAD_FAILED",
            status="degraded",
            error_code=error_code,
        )
        # An empty collection keeps downstream lookups answering "no ward".
        return self._finish(PipelineState.DEGRADED, empty_dataset(), "fallback", error=message, error_code=error_code)

    def load(self) -> AcquisitionResult:
        self._cancel_event.clear()
        self.state = PipelineState.LOADING
        self.error = None
        started = time.monotonic()

        lookup = self.cache.lookup()
        if lookup.hit and lookup.dataset is not None:
            return self._finish(PipelineState.READY, lookup.dataset, "cache")

        log_event(logger, "loading dataset from remote source", event="FETCH_START", source="remote", status="ok")
        try:
            raw = fetch_dataset(self.url, http_client=self.http_client, cancel_event=self._cancel_event)
            dataset = simplify(normalise_to_wgs84(raw), self.simplify_tolerance)
        except FetchTimeout as exc:
            return self._degrade(TIMEOUT_MESSAGE, exc.error_code)
        except FetchError as exc:
            return self._degrade(str(exc), exc.error_code)
        except Exception as exc:
            return self._degrade(f"Unexpected error loading dataset: {exc}", "UNEXPECTED_ERROR")

        self.cache.write(dataset)
        log_event(
            logger,
            "dataset ready",
            event="LOAD_END",
            status="ok",
            source="remote",
            duration_ms=int((time.monotonic() - started) * 1000),
            feature_count=len(dataset["features"]),
        )
        return self._finish(PipelineState.READY, dataset, "remote")

    def refresh(self) -> AcquisitionResult:
        self.cache.invalidate()
        return self.load()

    def cancel(self) -> None:
        """Abort an in-flight download; the pending ``load`` ends degraded."""
        self._cancel_event.set()
        self.http_client.abort()

    def close(self) -> None:
        self.http_client.close()

    def set_viewport(self, box: BoundingBox | None) -> None:
        self._viewport = box

    @property
    def view(self) -> Dataset | None:
        held = self._held
        box = self._viewport
        if held is None:
            return None

        with self._view_lock:
            if self._view_source is held and self._view_box == box:
                return self._view

        try:
            view = filter_by_bounding_box(held, box, all_polygons=self.bbox_filter_all_polygons)
        except Exception as exc:
            log_event(
                logger,
                f"failed to filter dataset by bounds: {exc}",
                level=logging.WARNING,
                event="FILTER_FAILED",
                status="error",
            )
            view = held

        with self._view_lock:
            self._view_source = held
            self._view_box = box
            self._view = view
        return view
