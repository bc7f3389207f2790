"""
Process-wide rate limiter for image-generation calls.

Restyle jobs for different pages run concurrently but share one generation
quota. Every call acquires a token first; a caller that cannot get one within
its timeout treats the segment as skipped rather than waiting indefinitely.
A 429 from the service puts the limiter into a backoff window.
"""

import logging
import threading
import time
from collections import deque
from typing import Optional

from app.config import get_settings

logger = logging.getLogger(__name__)

BASE_BACKOFF_SECONDS = 30.0
MAX_BACKOFF_SECONDS = 300.0


class GenerationRateLimiter:
    """
    Thread-safe token bucket for generation requests.

    Tokens refill at `max_requests_per_minute / 60` per second up to
    `burst_capacity`. After a 429 no token is handed out until the backoff
    window (30s doubling per consecutive 429, capped at 5 minutes) expires.
    """

    def __init__(
        self,
        max_requests_per_minute: int = 30,
        burst_capacity: int = 5,
        clock=time.monotonic,
        sleep=time.sleep,
    ):
        self.max_requests_per_minute = max_requests_per_minute
        self.burst_capacity = burst_capacity
        self._clock = clock
        self._sleep = sleep

        self.tokens = float(burst_capacity)
        self.refill_rate = max_requests_per_minute / 60.0
        self.last_refill = clock()
        self.request_times: deque = deque(maxlen=max(1, max_requests_per_minute))

        self.backoff_until: Optional[float] = None
        self.consecutive_429s = 0

        self.lock = threading.RLock()

        logger.info(
            "Generation rate limiter initialized: %d req/min, burst %d",
            max_requests_per_minute,
            burst_capacity,
        )

    def _refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        self.tokens = min(float(self.burst_capacity), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def _backoff_remaining(self, now: float) -> float:
        if self.backoff_until is None:
            return 0.0
        if now >= self.backoff_until:
            self.backoff_until = None
            logger.info("Generation backoff window expired, resuming normal operation")
            return 0.0
        return self.backoff_until - now

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a token is available.

        Returns False if `timeout` seconds pass first (None waits forever).
        """
        deadline = None if timeout is None else self._clock() + timeout

        while True:
            with self.lock:
                now = self._clock()
                wait = self._backoff_remaining(now)
                if wait == 0.0:
                    self._refill(now)
                    if self.tokens >= 1.0:
                        self.tokens -= 1.0
                        self.request_times.append(now)
                        return True
                    wait = (1.0 - self.tokens) / self.refill_rate if self.refill_rate else 1.0

            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.error("Generation rate limiter timeout reached")
                    return False
                wait = min(wait, remaining)
            self._sleep(min(wait, 1.0))

    def report_429(self) -> None:
        """Enter (or extend) the backoff window after a rate-limit response."""
        with self.lock:
            self.consecutive_429s += 1
            backoff = min(
                BASE_BACKOFF_SECONDS * 2 ** (self.consecutive_429s - 1),
                MAX_BACKOFF_SECONDS,
            )
            self.backoff_until = self._clock() + backoff
            self.tokens = 0.0
            logger.error(
                "Generation service returned 429 (consecutive: %d); backing off for %.1fs",
                self.consecutive_429s,
                backoff,
            )

    def report_success(self) -> None:
        with self.lock:
            if self.consecutive_429s:
                self.consecutive_429s -= 1

    def get_stats(self) -> dict:
        with self.lock:
            now = self._clock()
            return {
                "tokens_available": self.tokens,
                "burst_capacity": self.burst_capacity,
                "requests_last_minute": sum(1 for t in self.request_times if t > now - 60.0),
                "max_requests_per_minute": self.max_requests_per_minute,
                "is_backing_off": self._backoff_remaining(now) > 0,
                "consecutive_429s": self.consecutive_429s,
            }


_rate_limiter: Optional[GenerationRateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> GenerationRateLimiter:
    """Get or create the process-wide limiter from settings."""
    global _rate_limiter

    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                settings = get_settings()
                _rate_limiter = GenerationRateLimiter(
                    max_requests_per_minute=settings.max_requests_per_minute,
                    burst_capacity=settings.burst_capacity,
                )
    return _rate_limiter
