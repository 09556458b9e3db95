"""In-memory fixed-window rate limiting for batch submissions."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from fastapi import HTTPException, status

from ..domain.models import utcnow


@dataclass
class SubmissionRateLimiter:
    """Simple per-key rate limiter with 1-minute window."""

    limit_per_minute: int = 10
    window_seconds: int = 60
    clock: Callable[[], datetime] = utcnow
    buckets: dict[str, tuple[int, datetime]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _last_sweep: datetime | None = field(default=None, repr=False)

    def check(self, key: str) -> None:
        now = self.clock()
        with self._lock:
            self._evict_expired(now)
            count, window_start = self.buckets.get(key, (0, now))
            if (now - window_start).total_seconds() >= self.window_seconds:
                count, window_start = 0, now
            if count >= self.limit_per_minute:
                retry_after = self.window_seconds - int((now - window_start).total_seconds())
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail={
                        "status": "error",
                        "error_code": "RATE_LIMITED",
                        "limit_per_minute": self.limit_per_minute,
                        "retry_after": max(retry_after, 1),
                    },
                )
            self.buckets[key] = (count + 1, window_start)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self.buckets.clear()
            else:
                self.buckets.pop(key, None)

    def _evict_expired(self, now: datetime) -> None:
        # at most one sweep per window
        if self._last_sweep is not None and (now - self._last_sweep).total_seconds() < self.window_seconds:
            return
        self._last_sweep = now
        expired = [
            key
            for key, (_, window_start) in self.buckets.items()
            if (now - window_start).total_seconds() >= self.window_seconds
        ]
        for key in expired:
            del self.buckets[key]
