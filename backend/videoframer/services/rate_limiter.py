"""Sliding-window rate limiter for job-creating endpoints.

Keeps, per client key, the timestamps of admitted requests inside the last
``window_s`` seconds. Polling and artifact downloads are never routed through
here.
"""

import logging
import math
import threading
import time
from collections.abc import Callable

from videoframer.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Per-client sliding-window counter with atomic check-and-record."""

    def __init__(
        self,
        max_requests: int = 20,
        window_s: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, client_key: str, now: float) -> list[float]:
        valid = [ts for ts in self._requests.get(client_key, []) if now - ts < self.window_s]
        self._requests[client_key] = valid
        return valid

    def allow(self, client_key: str) -> bool:
        """Admit and record the request if the client is under its budget."""
        with self._lock:
            now = self._clock()
            valid = self._prune(client_key, now)
            if len(valid) >= self.max_requests:
                return False
            valid.append(now)
            return True

    def remaining(self, client_key: str) -> int:
        with self._lock:
            if client_key not in self._requests:
                return self.max_requests
            valid = self._prune(client_key, self._clock())
            return max(0, self.max_requests - len(valid))

    def reset_seconds(self, client_key: str) -> int:
        """Seconds until the oldest request in the window expires."""
        with self._lock:
            valid = self._prune(client_key, self._clock())
            if not valid:
                return 0
            reset_at = valid[0] + self.window_s
            return max(0, math.ceil(reset_at - self._clock()))

    def check(self, client_key: str) -> None:
        """Admit the request or raise RateLimitExceededError."""
        if self.allow(client_key):
            return
        retry_after = self.reset_seconds(client_key)
        logger.warning(f"Rate limit exceeded for {client_key} (retry in {retry_after}s)")
        raise RateLimitExceededError(
            retry_after_seconds=retry_after,
            remaining=self.remaining(client_key),
            max_requests=self.max_requests,
            window_s=int(self.window_s),
        )

    def cleanup(self) -> int:
        """Drop client keys with no requests left in the window."""
        with self._lock:
            now = self._clock()
            stale = [key for key in self._requests if not self._prune(key, now)]
            for key in stale:
                del self._requests[key]
            return len(stale)
