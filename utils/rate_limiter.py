"""
In-memory sliding-window rate limiter for the auth endpoints.

Counts requests per (limit type, client address). State lives in the
process, so several workers each keep their own window.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

# limit types applied to the auth blueprint
LOGIN = "login_ip"
REFRESH = "refresh_ip"
LOGOUT = "logout_ip"


@dataclass
class RateLimitConfig:
    max_requests: int
    window_seconds: int


class RateLimiter:
    """Thread-safe sliding-window limiter, one instance per app."""

    def __init__(self, configs: Dict[str, RateLimitConfig], enabled: bool = True,
                 clock=time.monotonic):
        self.configs = dict(configs)
        self.enabled = enabled
        self._clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._lock = Lock()

    @classmethod
    def for_auth(cls, max_requests: int, window_seconds: int, enabled: bool = True) -> "RateLimiter":
        config = RateLimitConfig(max_requests=max_requests, window_seconds=window_seconds)
        return cls({LOGIN: config, REFRESH: config, LOGOUT: config}, enabled=enabled)

    def _cleanup(self, key: str, window_seconds: int, now: float) -> None:
        cutoff = now - window_seconds
        self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]

    def is_allowed(self, limit_type: str, identifier: str) -> Tuple[bool, int]:
        """
        Record a request and say whether it fits in the window.

        Returns (allowed, retry_after_seconds). Rejected requests are not
        recorded, so a client that backs off regains access on schedule.
        """
        if not self.enabled:
            return True, 0
        if limit_type not in self.configs:
            raise ValueError(f"Unknown rate limit type: {limit_type}")

        config = self.configs[limit_type]
        key = f"{limit_type}:{identifier}"
        with self._lock:
            now = self._clock()
            self._cleanup(key, config.window_seconds, now)
            stamps = self._requests[key]
            if len(stamps) >= config.max_requests:
                retry_after = int(stamps[0] + config.window_seconds - now) + 1
                return False, max(retry_after, 1)
            stamps.append(now)
            return True, 0

    def remaining(self, limit_type: str, identifier: str) -> int:
        config = self.configs[limit_type]
        key = f"{limit_type}:{identifier}"
        with self._lock:
            self._cleanup(key, config.window_seconds, self._clock())
            return max(0, config.max_requests - len(self._requests[key]))

    def reset(self, limit_type: str, identifier: str) -> None:
        with self._lock:
            self._requests.pop(f"{limit_type}:{identifier}", None)
