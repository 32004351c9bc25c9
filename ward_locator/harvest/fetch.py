"""Remote ward dataset download."""

from __future__ import annotations

import logging
import threading
import time

from ward_locator.common.errors import FetchTransportError
from ward_locator.common.http import HttpClient
from ward_locator.common.logging import log_event
from ward_locator.common.models import Dataset

logger = logging.getLogger(__name__)


def _ensure_feature_collection(payload, url: str) -> Dataset:
    if not isinstance(payload, dict):
        raise FetchTransportError(f"Dataset from {url} is not a JSON object")
    features = payload.get("features")
    if not isinstance(features, list):
        raise FetchTransportError(f"Dataset from {url} has no feature list")
    if payload.get("type", "FeatureCollection") != "FeatureCollection":
        raise FetchTransportError(f"Dataset from {url} is a {payload.get('type')}, not a FeatureCollection")
    return payload


def fetch_dataset(
    url: str,
    *,
    http_client: HttpClient | None = None,
    cancel_event: threading.Event | None = None,
) -> Dataset:
    """Download the raw FeatureCollection. Fetch errors propagate to the caller."""
    owns_client = http_client is None
    client = http_client or HttpClient()
    started = time.monotonic()
    try:
        payload = client.get_json(url, cancel_event=cancel_event)
    finally:
        if owns_client:
            client.close()

    dataset = _ensure_feature_collection(payload, url)
    log_event(
        logger,
        "dataset downloaded",
        event="FETCH_END",
        status="ok",
        source="remote",
        duration_ms=int((time.monotonic() - started) * 1000),
        feature_count=len(dataset["features"]),
    )
    return dataset
