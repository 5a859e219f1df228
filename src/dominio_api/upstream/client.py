from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping

import httpx

from dominio_api.errors import UpstreamError, UpstreamTimeoutError, UpstreamTransportError


LOGGER = logging.getLogger(__name__)

USER_AGENT = "DominioAPI/1.0.0"
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_RETRIES = 3
BACKOFF_BASE_MS = 1_000
BACKOFF_CAP_MS = 10_000


def backoff_delay_ms(
    attempt: int,
    *,
    base_ms: int = BACKOFF_BASE_MS,
    cap_ms: int = BACKOFF_CAP_MS,
) -> int:
    """Wait before the attempt after ``attempt`` (1-based); no jitter."""
    return min(base_ms * 2 ** (attempt - 1), cap_ms)


class ResilientClient:
    def __init__(
        self,
        base_url: str,
        *,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        transport: httpx.BaseTransport | None = None,
        sleep_fn: Callable[[float], None] | None = None,
        monotonic_fn: Callable[[], float] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.default_timeout_ms = default_timeout_ms
        self._transport = transport
        self._sleep_fn = sleep_fn or time.sleep
        self._monotonic_fn = monotonic_fn or time.monotonic

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _send(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        *,
        timeout_ms: int,
        **kwargs: Any,
    ) -> httpx.Response:
        # httpx timeouts are per phase; the deadline bounds the whole call.
        deadline = self._monotonic_fn() + timeout_ms / 1000
        with client.stream(method, url, **kwargs) as streamed:
            body = bytearray()
            for chunk in streamed.iter_raw():
                if self._monotonic_fn() > deadline:
                    raise httpx.ReadTimeout(
                        "upstream response exceeded the call deadline",
                        request=streamed.request,
                    )
                body.extend(chunk)
        return httpx.Response(
            streamed.status_code,
            headers=streamed.headers,
            content=bytes(body),
            request=streamed.request,
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        credential: str | None = None,
        json_body: Any = None,
        form: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> httpx.Response:
        effective_timeout_ms = timeout_ms or self.default_timeout_ms
        request_headers = {"User-Agent": USER_AGENT}
        if credential:
            request_headers["Authorization"] = f"Bearer {credential}"
        if headers:
            request_headers.update(headers)

        try:
            with httpx.Client(
                timeout=effective_timeout_ms / 1000,
                transport=self._transport,
            ) as client:
                response = self._send(
                    client,
                    method,
                    self._url(path),
                    timeout_ms=effective_timeout_ms,
                    headers=request_headers,
                    json=json_body,
                    data=form,
                )
        except httpx.TimeoutException as exc:
            LOGGER.warning(
                "Upstream request timed out",
                extra={"method": method, "path": path, "timeout_ms": effective_timeout_ms},
            )
            raise UpstreamTimeoutError(timeout_ms=effective_timeout_ms, detail=str(exc)) from exc
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "Upstream transport failure",
                exc_info=True,
                extra={"method": method, "path": path},
            )
            raise UpstreamTransportError(detail=str(exc)) from exc

        LOGGER.info(
            "Upstream %s %s - %s",
            method,
            path,
            response.status_code,
        )
        return response

    def request_with_retry(
        self,
        method: str,
        path: str,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue ``request`` up to ``max_retries`` times.

        Transport failures and 5xx answers are retried with exponential
        backoff. Anything below 500 is returned immediately. Once attempts are
        exhausted the last response is returned, or the last error re-raised.
        """
        attempts = max(max_retries, 1)
        last_error: UpstreamError | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = self.request(method, path, **kwargs)
            except UpstreamError as exc:
                last_error = exc
                if attempt == attempts:
                    raise
            else:
                if response.status_code < 500 or attempt == attempts:
                    return response
                LOGGER.info(
                    "Retrying upstream request after HTTP %s",
                    response.status_code,
                    extra={"method": method, "path": path, "attempt": attempt},
                )

            self._sleep_fn(backoff_delay_ms(attempt) / 1000)

        raise last_error or UpstreamTransportError(detail="no attempt was made")


__all__ = [
    "BACKOFF_BASE_MS",
    "BACKOFF_CAP_MS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT_MS",
    "ResilientClient",
    "USER_AGENT",
    "backoff_delay_ms",
]
