"""
Process-wide pacing for generation API calls.

Both the copy and the image calls go through one token bucket so a burst of
campaign runs cannot hammer the provider. A 429 pushes every later call back
by an exponentially growing cool-down; the call that hit the 429 is not
retried here.
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

BASE_BACKOFF_SECONDS = 30.0
MAX_BACKOFF_SECONDS = 300.0


class GenerationRateLimiter:
    """
    Thread-safe token bucket with 429 backoff.

    - `max_requests_per_minute` sets the refill rate
    - `burst_capacity` caps how many calls may go out back to back
    - `min_interval_seconds` spaces consecutive calls
    """

    def __init__(
        self,
        max_requests_per_minute: int = 50,
        burst_capacity: int = 5,
        min_interval_seconds: float = 0.5,
    ):
        self.max_requests_per_minute = max_requests_per_minute
        self.burst_capacity = burst_capacity
        self.min_interval_seconds = min_interval_seconds

        self.tokens = float(burst_capacity)
        self.max_tokens = float(burst_capacity)
        self.refill_rate = max_requests_per_minute / 60.0
        self.last_refill = time.monotonic()

        self.request_times: deque = deque(maxlen=max(1, max_requests_per_minute))
        self.last_request_time = 0.0

        self.rate_limited_until: Optional[float] = None
        self.consecutive_429s = 0

        self.lock = threading.RLock()

        logger.info(
            "Generation rate limiter initialized: %d req/min, burst: %d, min interval: %.1fs",
            max_requests_per_minute,
            burst_capacity,
            min_interval_seconds,
        )

    def _refill_tokens(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.max_tokens, self.tokens + (now - self.last_refill) * self.refill_rate)
        self.last_refill = now

    def _backoff_remaining(self) -> float:
        if self.rate_limited_until is None:
            return 0.0
        remaining = self.rate_limited_until - time.monotonic()
        if remaining > 0:
            return remaining
        self.rate_limited_until = None
        logger.info("Rate limit backoff period expired, resuming normal operation")
        return 0.0

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a call may be made.

        Returns False if `timeout` seconds pass first; None waits forever.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self.lock:
                wait = self._backoff_remaining()
                if wait <= 0:
                    self._refill_tokens()
                    if self.tokens >= 1.0:
                        now = time.monotonic()
                        gap = now - self.last_request_time
                        if gap < self.min_interval_seconds:
                            time.sleep(self.min_interval_seconds - gap)
                            now = time.monotonic()
                        self.tokens -= 1.0
                        self.last_request_time = now
                        self.request_times.append(now)
                        return True
                    wait = (1.0 - self.tokens) / self.refill_rate if self.refill_rate > 0 else 1.0

            if deadline is not None and time.monotonic() + min(wait, 0.1) > deadline:
                logger.error("Rate limiter timeout reached")
                return False
            time.sleep(min(wait, 0.1))

    def report_429(self) -> None:
        """Start (or extend) a cool-down after the provider answered 429."""
        with self.lock:
            self.consecutive_429s += 1
            backoff = min(BASE_BACKOFF_SECONDS * 2 ** (self.consecutive_429s - 1), MAX_BACKOFF_SECONDS)
            self.rate_limited_until = time.monotonic() + backoff
            logger.error(
                "Generation API 429 (consecutive: %d). Backing off for %.1fs",
                self.consecutive_429s,
                backoff,
            )

    def report_success(self) -> None:
        with self.lock:
            if self.consecutive_429s > 0:
                self.consecutive_429s -= 1
                logger.info("Request succeeded, reducing 429 counter to %d", self.consecutive_429s)

    def get_stats(self) -> dict:
        with self.lock:
            now = time.monotonic()
            recent = sum(1 for t in self.request_times if t > now - 60.0)
            remaining = self._backoff_remaining()
            return {
                "tokens_available": self.tokens,
                "max_tokens": self.max_tokens,
                "requests_last_minute": recent,
                "max_requests_per_minute": self.max_requests_per_minute,
                "is_rate_limited": remaining > 0,
                "consecutive_429s": self.consecutive_429s,
                "rate_limited_until": (
                    datetime.fromtimestamp(time.time() + remaining).isoformat() if remaining > 0 else None
                ),
            }


_rate_limiter: Optional[GenerationRateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> GenerationRateLimiter:
    """Get or create the global generation rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                _rate_limiter = GenerationRateLimiter()
    return _rate_limiter
