"""
In-memory sliding-window rate limiting per key (client IP). Applied to POST /token and POST /register.
"""
import math
import threading
import time

from fastapi import HTTPException, Request

from bridge_server.audit import get_client_ip

_WINDOW_SECONDS = 60


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int = _WINDOW_SECONDS):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        Record a request for key if under the limit.
        Returns (allowed, retry_after_seconds); retry_after is >= 1 when not allowed.
        """
        if self.limit <= 0:
            return True, None
        now = time.monotonic()
        with self._lock:
            timestamps = self._hits.setdefault(key, [])
            cutoff = now - self.window_seconds
            timestamps[:] = [t for t in timestamps if t > cutoff]
            if len(timestamps) >= self.limit:
                retry_after = max(1, math.ceil(self.window_seconds - (now - min(timestamps))))
                return False, retry_after
            timestamps.append(now)
            return True, None

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def enforce(self, request: Request) -> None:
        """Raise 429 with Retry-After when the caller's IP is over the limit."""
        allowed, retry_after = self.check_and_consume(get_client_ip(request) or "unknown")
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail={"error": "too_many_requests", "error_description": "Rate limit exceeded"},
                headers={"Retry-After": str(retry_after)},
            )
