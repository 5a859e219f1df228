from __future__ import annotations

import httpx
import pytest

from dominio_api.errors import UpstreamTimeoutError, UpstreamTransportError
from dominio_api.upstream import ResilientClient, backoff_delay_ms


class _Upstream:
    def __init__(self, *outcomes: int | Exception) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"status": outcome})


def _client(upstream: _Upstream, sleeps: list[float]) -> ResilientClient:
    return ResilientClient(
        "https://api.example.com",
        transport=httpx.MockTransport(upstream),
        sleep_fn=sleeps.append,
    )


def test_backoff_doubles_and_caps() -> None:
    assert [backoff_delay_ms(attempt) for attempt in range(1, 7)] == [
        1000,
        2000,
        4000,
        8000,
        10000,
        10000,
    ]


def test_request_sends_bearer_and_user_agent() -> None:
    upstream = _Upstream(200)
    response = _client(upstream, []).request("GET", "/clients", credential="token-1")

    assert response.status_code == 200
    assert upstream.requests[0].headers["Authorization"] == "Bearer token-1"
    assert upstream.requests[0].headers["User-Agent"] == "DominioAPI/1.0.0"
    assert str(upstream.requests[0].url) == "https://api.example.com/clients"


def test_request_maps_timeout() -> None:
    upstream = _Upstream(httpx.ReadTimeout("slow"))

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        _client(upstream, []).request("GET", "/health", timeout_ms=5000)

    assert exc_info.value.code == "Timeout"
    assert exc_info.value.timeout_ms == 5000
    assert exc_info.value.status_code == 500


def test_server_errors_then_success_waits_between_attempts() -> None:
    upstream = _Upstream(503, 503, 200)
    sleeps: list[float] = []

    response = _client(upstream, sleeps).request_with_retry("GET", "/protocols/p1", max_retries=3)

    assert response.status_code == 200
    assert len(upstream.requests) == 3
    assert sleeps == [1.0, 2.0]


def test_client_errors_are_not_retried() -> None:
    upstream = _Upstream(404)
    sleeps: list[float] = []

    response = _client(upstream, sleeps).request_with_retry("GET", "/protocols/p1", max_retries=3)

    assert response.status_code == 404
    assert len(upstream.requests) == 1
    assert sleeps == []


def test_last_server_error_response_is_returned_after_exhaustion() -> None:
    upstream = _Upstream(500, 502, 503)
    sleeps: list[float] = []

    response = _client(upstream, sleeps).request_with_retry("GET", "/clients", max_retries=3)

    assert response.status_code == 503
    assert sleeps == [1.0, 2.0]


def test_transport_errors_are_retried_then_reraised() -> None:
    upstream = _Upstream(
        httpx.ConnectError("refused"),
        httpx.ConnectError("refused"),
    )
    sleeps: list[float] = []

    with pytest.raises(UpstreamTransportError):
        _client(upstream, sleeps).request_with_retry("GET", "/clients", max_retries=2)

    assert len(upstream.requests) == 2
    assert sleeps == [1.0]


def test_transport_error_then_success() -> None:
    upstream = _Upstream(httpx.ConnectError("refused"), 200)
    sleeps: list[float] = []

    response = _client(upstream, sleeps).request_with_retry("GET", "/clients")

    assert response.status_code == 200
    assert sleeps == [1.0]


class _Clock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _trickling_client(clock: _Clock, *, seconds_per_chunk: float) -> ResilientClient:
    def body():
        for chunk in (b'{"status": ', b'"COMPLETED"', b"}"):
            clock.now += seconds_per_chunk
            yield chunk

    return ResilientClient(
        "https://api.example.com",
        transport=httpx.MockTransport(lambda _request: httpx.Response(200, content=body())),
        monotonic_fn=clock,
    )


def test_slow_body_is_cut_off_at_call_deadline() -> None:
    clock = _Clock()

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        _trickling_client(clock, seconds_per_chunk=2).request("GET", "/protocols/p-1", timeout_ms=3000)

    assert exc_info.value.timeout_ms == 3000


def test_body_within_deadline_is_returned() -> None:
    clock = _Clock()

    response = _trickling_client(clock, seconds_per_chunk=0.5).request(
        "GET",
        "/protocols/p-1",
        timeout_ms=3000,
    )

    assert response.json() == {"status": "COMPLETED"}
