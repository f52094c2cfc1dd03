"""
Azure API rate limiting.

Activity Log queries are throttled per subscription, so all reconciliation
workers of a run share one token bucket instead of retrying individually.
"""

import asyncio
import time

import structlog

logger = structlog.get_logger()


class RateLimiter:
    """
    Token bucket rate limiter for Azure management API calls.
    """

    def __init__(self, rate_per_second: float):
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        self.rate = rate_per_second
        self.tokens = rate_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a token is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = max(0.0, now - self.last_update)

            # Refill tokens
            self.tokens = min(self.rate, self.tokens + elapsed * self.rate)
            self.last_update = now

            if self.tokens < 1:
                wait_time = (1 - self.tokens) / self.rate
                logger.debug("rate_limit_waiting", wait_seconds=round(wait_time, 3))
                await asyncio.sleep(wait_time)
                self.tokens = 0
                self.last_update = time.monotonic()
            else:
                self.tokens -= 1
