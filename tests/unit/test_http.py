from __future__ import annotations

import json
import threading
import time

import pytest
import requests

from ward_locator.common.errors import (
    FetchCancelled,
    FetchTimeout,
    FetchTransportError,
    RetryableFetchError,
)
from ward_locator.common.http import HttpClient, RetryConfig, TimeoutConfig


class FakeResponse:
    def __init__(self, status_code: int, payload=None, body: bytes | None = None, chunks=None):
        self.status_code = status_code
        if body is None:
            body = json.dumps(payload).encode("utf-8")
        self._chunks = chunks if chunks is not None else [body]
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for chunk in self._chunks:
            if callable(chunk):
                chunk = chunk(self)
            yield chunk

    def close(self):
        self.closed = True


def _client(**retry_kwargs) -> HttpClient:
    retry = RetryConfig(**{"max_attempts": 1, "multiplier": 0.0, "max_wait": 0.0, "jitter": 0.0, **retry_kwargs})
    return HttpClient(retry=retry)


def test_http_get_json_success(monkeypatch):
    client = _client()
    response = FakeResponse(200, {"type": "FeatureCollection", "features": []})
    seen: dict = {}

    def fake_request(**kwargs):
        seen.update(kwargs)
        return response

    monkeypatch.setattr(client.session, "request", fake_request)
    payload = client.get_json("https://example.com/wards.geojson")

    assert payload == {"type": "FeatureCollection", "features": []}
    assert seen["stream"] is True
    assert seen["timeout"][0] == 10.0
    assert 0 < seen["timeout"][1] <= 30.0
    assert "ward-locator" in seen["headers"]["User-Agent"]
    assert response.closed is True


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = _client()
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableFetchError):
        client.get_json("https://example.com")


def test_http_client_error_status_raises_transport_error(monkeypatch):
    client = _client()
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(404, {"x": 1}))

    with pytest.raises(FetchTransportError, match="404"):
        client.get_json("https://example.com")


def test_http_invalid_json_raises(monkeypatch):
    client = _client()
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, body=b"<html>"))

    with pytest.raises(FetchTransportError):
        client.get_json("https://example.com")


def test_http_retries_transient_status_when_configured(monkeypatch):
    client = _client(max_attempts=3)
    responses = [FakeResponse(503, {}), FakeResponse(502, {}), FakeResponse(200, {"ok": True})]
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: responses.pop(0))

    assert client.get_json("https://example.com") == {"ok": True}
    assert responses == []


def test_http_does_not_retry_by_default(monkeypatch):
    client = HttpClient()
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        return FakeResponse(503, {})

    monkeypatch.setattr(client.session, "request", fake_request)

    with pytest.raises(RetryableFetchError):
        client.get_json("https://example.com")
    assert len(calls) == 1


def test_http_timeout_maps_to_fetch_timeout(monkeypatch):
    client = _client()

    def timeout(**_kwargs):
        raise requests.ConnectTimeout("connect timed out")

    monkeypatch.setattr(client.session, "request", timeout)

    with pytest.raises(FetchTimeout):
        client.get_json("https://example.com")


def test_http_network_failure_maps_to_transport_error(monkeypatch):
    client = _client()

    def refuse(**_kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(client.session, "request", refuse)

    with pytest.raises(FetchTransportError):
        client.get_json("https://example.com")


def test_http_total_deadline_bounds_slow_body(monkeypatch):
    client = HttpClient(timeout=TimeoutConfig(connect=1, read=1, total=0.05))

    def slow_chunk(_response):
        time.sleep(0.1)
        return b"}"

    response = FakeResponse(200, chunks=[b"{", slow_chunk, b""])
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: response)

    with pytest.raises(FetchTimeout):
        client.get_json("https://example.com")
    assert response.closed is True


def test_http_cancel_before_request_skips_network(monkeypatch):
    client = _client()
    cancel = threading.Event()
    cancel.set()
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: pytest.fail("network used"))

    with pytest.raises(FetchCancelled):
        client.get_json("https://example.com", cancel_event=cancel)


def test_http_abort_closes_in_flight_response(monkeypatch):
    client = _client()
    cancel = threading.Event()

    def cancel_mid_stream(_response):
        cancel.set()
        client.abort()
        return b'"features": []}'

    response = FakeResponse(200, chunks=[b'{"type": "FeatureCollection", ', cancel_mid_stream])
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: response)

    with pytest.raises(FetchCancelled):
        client.get_json("https://example.com", cancel_event=cancel)
    assert response.closed is True
