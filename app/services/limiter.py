import threading
import time
from typing import Callable, Dict, List, Optional

from fastapi import HTTPException, Request

from app.core.config import settings


class RateLimiter:
    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: float = 60,
        enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Sliding-window limiter keyed by client IP.

        :param max_requests: requests allowed per window, defaults to settings.MAX_REQUESTS_PER_MINUTE
        :param enabled: defaults to settings.RATE_LIMIT_ENABLED, read on every check
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: Dict[str, List[float]] = {}  # Stores IP -> [timestamp1, timestamp2...]

    def _is_enabled(self) -> bool:
        return settings.RATE_LIMIT_ENABLED if self.enabled is None else self.enabled

    def _limit(self) -> int:
        return settings.MAX_REQUESTS_PER_MINUTE if self.max_requests is None else self.max_requests

    def check(self, request: Request):
        """
        Enforces rate limiting based on client IP, raising 429 once the
        window budget is spent
        """
        if not self._is_enabled():
            return

        client_ip = request.client.host if request.client else "unknown"
        now = self._clock()

        with self._lock:
            # Filter out requests older than the window, and forget idle clients
            for ip in list(self._requests):
                kept = [t for t in self._requests[ip] if now - t < self.window_seconds]
                if kept:
                    self._requests[ip] = kept
                else:
                    self._requests.pop(ip)
            recent = self._requests.get(client_ip, [])

            if len(recent) >= self._limit():
                self._requests[client_ip] = recent
                raise HTTPException(status_code=429, detail="Too many requests. Please wait.")

            recent.append(now)
            self._requests[client_ip] = recent

limiter = RateLimiter()
