"""
Process-wide throttle for outbound Gemini calls.

Concurrent outpaint/analyze requests share one budget:
- a token bucket sized from GEMINI_MAX_REQUESTS_PER_MINUTE / GEMINI_BURST_CAPACITY
- a cool-down after each 429 that doubles per consecutive 429 (30s base, 5 min cap)
- burst capacity shrinks while 429s keep coming and grows back on success

Only throttles. A call refused by the remote side is never repeated here.
"""

import logging
import os
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

# Burst capacity never shrinks below this fraction of its configured size.
_MIN_CAPACITY_FACTOR = 0.5
_SHRINK_FACTOR = 0.8
_GROW_FACTOR = 1.1


@dataclass(slots=True)
class _Bucket:
    capacity: float
    rate_per_second: float
    level: float = 0.0
    stamp: float = field(default_factory=time.time)

    def top_up(self, now: float) -> None:
        self.level = min(self.capacity, self.level + (now - self.stamp) * self.rate_per_second)
        self.stamp = now

    def resize(self, capacity: float) -> None:
        self.capacity = capacity
        self.level = min(self.level, capacity)


class GeminiRateLimiter:
    """Thread-safe token bucket with 429 cool-down."""

    def __init__(
        self,
        max_requests_per_minute: int = 10,
        burst_capacity: int = 3,
        min_interval_seconds: float = 0.5,
        base_backoff_seconds: float = 30.0,
        max_backoff_seconds: float = 300.0,
    ):
        """
        Args:
            max_requests_per_minute: Sustained request budget
            burst_capacity: Requests allowed back-to-back from a full bucket
            min_interval_seconds: Minimum spacing between two calls
            base_backoff_seconds: Cool-down imposed after the first 429
            max_backoff_seconds: Upper bound for the doubling cool-down
        """
        self.max_requests_per_minute = max_requests_per_minute
        self.burst_capacity = burst_capacity
        self.min_interval_seconds = min_interval_seconds
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

        self._bucket = _Bucket(
            capacity=float(burst_capacity),
            rate_per_second=max_requests_per_minute / 60.0,
            level=float(burst_capacity),
        )
        self._issued: deque = deque(maxlen=max(1, max_requests_per_minute))
        self._last_issued = 0.0

        self.rate_limited_until: Optional[float] = None
        self.consecutive_429s = 0
        self.backoff_multiplier = 1.0

        self.lock = threading.RLock()

        logger.info(
            "Gemini rate limiter: %d req/min, burst %d, min interval %.2fs",
            max_requests_per_minute,
            burst_capacity,
            min_interval_seconds,
        )

    @property
    def tokens(self) -> float:
        return self._bucket.level

    @property
    def max_tokens(self) -> float:
        return self._bucket.capacity

    def _cooling_down(self, now: float) -> bool:
        if self.rate_limited_until is None:
            return False
        if now < self.rate_limited_until:
            return True

        # The 429 streak and reduced capacity survive the pause; only
        # successful calls wind them down.
        self.rate_limited_until = None
        logger.info(
            "Gemini cool-down over (429 streak %d, burst capacity %.1f)",
            self.consecutive_429s,
            self.max_tokens,
        )
        return False

    def _cool_down_seconds(self) -> float:
        # base, 2x base, 4x base, ... up to the cap
        return min(
            self.base_backoff_seconds * 2 ** (self.consecutive_429s - 1),
            self.max_backoff_seconds,
        )

    def _try_take(self, now: float) -> Optional[float]:
        """Take a token if possible; otherwise return how long to wait."""
        if self._cooling_down(now):
            return min(1.0, max(self.rate_limited_until - now, 0.0))

        self._bucket.top_up(now)
        if self._bucket.level < 1.0:
            return 0.1

        gap = now - self._last_issued
        if gap < self.min_interval_seconds:
            time.sleep(self.min_interval_seconds - gap)
            now = time.time()

        self._bucket.level -= 1.0
        self._last_issued = now
        self._issued.append(now)
        return None

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a call may go out. `timeout=None` waits indefinitely;
        returns False once `timeout` seconds pass without a token.
        """
        deadline = None if timeout is None else time.time() + timeout

        while True:
            with self.lock:
                wait = self._try_take(time.time())
                if wait is None:
                    logger.debug("Gemini call permitted (%.1f/%.1f tokens left)", self.tokens, self.max_tokens)
                    return True
                if self.rate_limited_until is not None:
                    logger.warning(
                        "Gemini cool-down active for another %.1fs (consecutive 429s: %d)",
                        self.rate_limited_until - time.time(),
                        self.consecutive_429s,
                    )

            if deadline is not None:
                remaining = deadline - time.time()
                if remaining <= 0:
                    logger.error("Timed out waiting for a Gemini rate-limit slot")
                    return False
                wait = min(wait, remaining)
            time.sleep(wait)

    def report_429(self) -> None:
        """The remote side refused a call with 429."""
        with self.lock:
            self.consecutive_429s += 1
            pause = self._cool_down_seconds()
            self.rate_limited_until = time.time() + pause

            self.backoff_multiplier = max(_MIN_CAPACITY_FACTOR, self.backoff_multiplier * _SHRINK_FACTOR)
            self._bucket.resize(self.burst_capacity * self.backoff_multiplier)

            logger.error(
                "Gemini returned 429 (%d in a row); pausing %.1fs, burst capacity now %.1f",
                self.consecutive_429s,
                pause,
                self.max_tokens,
            )

    def report_success(self) -> None:
        with self.lock:
            if self.consecutive_429s == 0:
                return
            self.consecutive_429s -= 1
            self.backoff_multiplier = min(1.0, self.backoff_multiplier * _GROW_FACTOR)
            self._bucket.resize(self.burst_capacity * self.backoff_multiplier)
            logger.info("Gemini call succeeded; 429 streak down to %d", self.consecutive_429s)

    def get_stats(self) -> dict:
        with self.lock:
            now = time.time()
            return {
                "tokens_available": self.tokens,
                "max_tokens": self.max_tokens,
                "requests_last_minute": sum(1 for stamp in self._issued if stamp > now - 60.0),
                "max_requests_per_minute": self.max_requests_per_minute,
                "is_rate_limited": self._cooling_down(now),
                "consecutive_429s": self.consecutive_429s,
                "backoff_multiplier": self.backoff_multiplier,
                "rate_limited_until": (
                    datetime.fromtimestamp(self.rate_limited_until).isoformat()
                    if self.rate_limited_until
                    else None
                ),
            }


_rate_limiter: Optional[GeminiRateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> GeminiRateLimiter:
    """Shared limiter, configured from the environment on first use."""
    global _rate_limiter

    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                _rate_limiter = GeminiRateLimiter(
                    max_requests_per_minute=int(os.getenv("GEMINI_MAX_REQUESTS_PER_MINUTE", "10")),
                    burst_capacity=int(os.getenv("GEMINI_BURST_CAPACITY", "3")),
                )

    return _rate_limiter
