"""HTTP client with a total deadline, optional retries and abortable downloads."""

from __future__ import annotations

import json
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Iterator

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, stop_after_delay, wait_exponential_jitter

from ward_locator.common.constants import CONNECT_TIMEOUT_SECONDS, FETCH_TIMEOUT_SECONDS, USER_AGENT
from ward_locator.common.errors import (
    FetchCancelled,
    FetchError,
    FetchTimeout,
    FetchTransportError,
    RetryableFetchError,
)

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = CONNECT_TIMEOUT_SECONDS
    read: float = FETCH_TIMEOUT_SECONDS
    # Wall-clock budget for the whole call, retries and body download included.
    total: float = FETCH_TIMEOUT_SECONDS


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 1
    multiplier: float = 1.0
    max_wait: float = 10.0
    jitter: float = 1.0


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()
        self._active_response: requests.Response | None = None
        self._lock = threading.Lock()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def abort(self) -> None:
        """Close the response currently being downloaded, if any."""
        with self._lock:
            response = self._active_response
        if response is not None:
            response.close()

    @contextmanager
    def _track(self, response: requests.Response) -> Iterator[requests.Response]:
        with self._lock:
            self._active_response = response
        try:
            yield response
        finally:
            with self._lock:
                self._active_response = None
            response.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/geo+json, application/json"}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableFetchError(f"Retryable HTTP status: {status}")
        if status >= 400:
            raise FetchTransportError(f"Failed to fetch dataset: HTTP status {status}")

    def _remaining(self, deadline: float, url: str) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchTimeout(f"Timed out after {self.timeout.total:g}s fetching {url}")
        return remaining

    def _read_body(
        self,
        response: requests.Response,
        url: str,
        deadline: float,
        cancel_event: threading.Event | None,
    ) -> bytes:
        chunks: list[bytes] = []
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if cancel_event is not None and cancel_event.is_set():
                    raise FetchCancelled(f"Fetch of {url} was cancelled")
                self._remaining(deadline, url)
                chunks.append(chunk)
        except FetchError:
            raise
        except requests.Timeout as exc:
            raise FetchTimeout(f"Read timed out fetching {url}") from exc
        except (requests.RequestException, OSError, ValueError, AttributeError) as exc:
            # A response closed by abort() surfaces as one of these.
            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelled(f"Fetch of {url} was cancelled") from exc
            raise FetchTransportError(f"Connection lost while reading {url}: {exc}") from exc
        return b"".join(chunks)

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        deadline: float,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Any:
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelled(f"Fetch of {url} was cancelled")
        remaining = self._remaining(deadline, url)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=self._headers(headers),
                timeout=(min(self.timeout.connect, remaining), min(self.timeout.read, remaining)),
                stream=True,
            )
        except requests.Timeout as exc:
            raise FetchTimeout(f"Timed out connecting to {url}") from exc
        except requests.RequestException as exc:
            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelled(f"Fetch of {url} was cancelled") from exc
            raise FetchTransportError(f"Network failure fetching {url}: {exc}") from exc

        with self._track(response):
            self._raise_for_status_or_retry(response)
            body = self._read_body(response, url, deadline, cancel_event)

        try:
            return json.loads(body)
        except ValueError as exc:
            raise FetchTransportError(f"Invalid JSON payload from {url}") from exc

    def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Any:
        deadline = time.monotonic() + self.timeout.total

        @retry(
            stop=stop_after_attempt(self.retry.max_attempts) | stop_after_delay(self.timeout.total),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=self.retry.jitter,
            ),
            retry=retry_if_exception_type(RetryableFetchError),
            reraise=True,
        )
        def _wrapped() -> Any:
            return self._request_json(
                method,
                url,
                deadline=deadline,
                params=params,
                headers=headers,
                cancel_event=cancel_event,
            )

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Any:
        return self.request_json(
            "GET",
            url,
            params=params,
            headers=headers,
            cancel_event=cancel_event,
        )
