from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import math
import time
from typing import Callable

from dominio_api.storage import KeyValueStore


LOGGER = logging.getLogger(__name__)


def rate_limit_key(identity_key: str) -> str:
    return f"rate_limit_{identity_key}"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_seconds: int


class RateLimiter:
    """Fixed-window counter kept in the shared key-value store.

    The window opens with the first request and closes ``window_seconds``
    later, when the store expires the entry. Concurrent requests may race on
    the read-modify-write; the quota is advisory. Store failures let the
    request through.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        time_fn: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self._time_fn = time_fn or time.time

    def _read_window(self, key: str, now: float, window_seconds: int) -> tuple[int, float]:
        raw = self.store.get(key)
        if raw is None:
            return 0, now + window_seconds
        try:
            data = json.loads(raw)
            count = int(data["count"])
            reset_at = float(data["reset_at"])
        except (ValueError, KeyError, TypeError):
            LOGGER.warning("Resetting undecodable rate-limit window", extra={"key": key})
            return 0, now + window_seconds
        if reset_at <= now:
            return 0, now + window_seconds
        return count, reset_at

    def check_and_consume(
        self,
        identity_key: str,
        *,
        limit: int,
        window_seconds: int,
    ) -> RateLimitDecision:
        key = rate_limit_key(identity_key)
        now = self._time_fn()
        try:
            count, reset_at = self._read_window(key, now, window_seconds)
            reset_seconds = max(math.ceil(reset_at - now), 1)
            if count >= limit:
                return RateLimitDecision(allowed=False, remaining=0, reset_seconds=reset_seconds)

            self.store.put(
                key,
                json.dumps({"count": count + 1, "reset_at": reset_at}),
                reset_seconds,
            )
        except Exception:
            LOGGER.warning(
                "Rate limiter store unavailable; allowing request",
                exc_info=True,
                extra={"identity": identity_key},
            )
            return RateLimitDecision(
                allowed=True,
                remaining=max(limit - 1, 0),
                reset_seconds=window_seconds,
            )

        return RateLimitDecision(
            allowed=True,
            remaining=max(limit - count - 1, 0),
            reset_seconds=reset_seconds,
        )


__all__ = ["RateLimitDecision", "RateLimiter", "rate_limit_key"]
