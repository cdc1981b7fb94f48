"""
Rate Limiting

Fixed-window request counter keyed by client and route, built on the
``limits`` library (the engine behind SlowAPI).

The store is a plain object owned by the application (app.state) so tests
and alternative backends can swap it. The in-memory store is per process:
several workers each keep their own counters. A Redis deployment would pass
a RedisStorage instead of MemoryStorage.
"""
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Zu viele Anfragen. Bitte versuchen Sie es später erneut."


@dataclass(frozen=True)
class RateLimitConfig:
    """Max requests allowed per window."""
    max_requests: int
    window_seconds: int
    message: str = DEFAULT_MESSAGE

    def as_item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.max_requests, self.window_seconds)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time: float
    retry_after: Optional[int] = None
    message: Optional[str] = None

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset_time, tz=timezone.utc)

    def headers(self) -> Dict[str, str]:
        """Headers attached to a 429 response."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_at.isoformat(),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimits:
    """Preset limits per endpoint family."""

    LOGIN = RateLimitConfig(
        max_requests=5,
        window_seconds=15 * 60,
        message="Too many login attempts, please try again in 15 minutes",
    )
    FORM_CREATE = RateLimitConfig(max_requests=20, window_seconds=60 * 60)
    ENTRY_SAVE = RateLimitConfig(max_requests=100, window_seconds=60)
    ACCESS_CODE = RateLimitConfig(max_requests=10, window_seconds=60)
    EXPORT = RateLimitConfig(max_requests=10, window_seconds=60)
    SCHOOL_SEARCH = RateLimitConfig(max_requests=20, window_seconds=60)
    API_GENERAL = RateLimitConfig(max_requests=100, window_seconds=60)

    # Account flows
    FORGOT_PASSWORD = RateLimitConfig(max_requests=3, window_seconds=60)
    RESET_PASSWORD = RateLimitConfig(max_requests=5, window_seconds=60)
    REGISTER = RateLimitConfig(max_requests=3, window_seconds=60 * 60)


class RateLimitStore(ABC):
    """Interface for rate limit backends."""

    @abstractmethod
    def check(self, client_key: str, route: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request unless the window is already full."""

    @abstractmethod
    def sweep(self) -> int:
        """Drop expired windows. Returns number of entries removed."""

    @abstractmethod
    def clear(self) -> None:
        """Forget every window."""


class MemoryRateLimitStore(RateLimitStore):
    """
    In-process fixed-window store.

    The window opens on the first counted request and lasts
    ``window_seconds``; rejected requests are tested, not hit, so they
    neither count nor move the reset time.
    """

    def __init__(self):
        self._storage = MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def _rejected(self, item: RateLimitItem, client_key: str, route: str,
                  config: RateLimitConfig) -> RateLimitResult:
        stats = self._limiter.get_window_stats(item, client_key, route)
        return RateLimitResult(
            allowed=False,
            limit=config.max_requests,
            remaining=0,
            reset_time=stats.reset_time,
            retry_after=max(1, math.ceil(stats.reset_time - time.time())),
            message=config.message,
        )

    def check(self, client_key: str, route: str, config: RateLimitConfig) -> RateLimitResult:
        item = config.as_item()

        if not self._limiter.test(item, client_key, route):
            return self._rejected(item, client_key, route, config)

        # Lost a race for the last slot between test and hit
        if not self._limiter.hit(item, client_key, route):
            return self._rejected(item, client_key, route, config)

        with self._lock:
            self._keys.add(item.key_for(client_key, route))

        stats = self._limiter.get_window_stats(item, client_key, route)
        return RateLimitResult(
            allowed=True,
            limit=config.max_requests,
            remaining=stats.remaining,
            reset_time=stats.reset_time,
        )

    def sweep(self) -> int:
        with self._lock:
            keys = list(self._keys)

        removed = 0
        for key in keys:
            if self._storage.get_expiry(key) <= time.time():
                self._storage.clear(key)
                with self._lock:
                    self._keys.discard(key)
                removed += 1

        if removed:
            logger.debug(f"Rate limit sweep removed {removed} entries")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._storage.reset()
            self._keys.clear()
