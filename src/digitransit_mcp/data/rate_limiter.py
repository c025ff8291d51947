"""Token-bucket rate limiter for outbound upstream calls."""

import asyncio
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """Capacity-bounded token pool refilled at a fixed rate.

    Refill is computed lazily from elapsed clock time on each access; there is
    no background timer. A burst of up to ``capacity`` calls succeeds
    immediately, after which permits arrive at ``refill_per_second``.

    Usage:
        limiter = TokenBucket(capacity=30, refill_per_second=10)
        if limiter.try_acquire():
            ...
    """

    def __init__(
        self,
        capacity: float = 30,
        refill_per_second: float = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize a full bucket.

        Args:
            capacity: Maximum number of tokens held.
            refill_per_second: Tokens added per elapsed second.
            clock: Monotonic time source in seconds.
        """
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        if refill_per_second < 0:
            raise ValueError("refill_per_second must be >= 0")

        self._capacity = capacity
        self._refill_per_second = refill_per_second
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def refill_per_second(self) -> float:
        return self._refill_per_second

    def _tokens_at(self, now: float) -> float:
        elapsed = max(0.0, now - self._last_refill)
        return min(self._capacity, self._tokens + elapsed * self._refill_per_second)

    def _refill(self) -> None:
        now = self._clock()
        if now > self._last_refill:
            self._tokens = self._tokens_at(now)
            self._last_refill = now

    def try_acquire(self) -> bool:
        """Take one token if available.

        Refill and decrement run as a single synchronous step, so any number of
        same-tick callers never drive the count negative.

        Returns:
            True if a token was taken, False if the bucket is empty.
        """
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        logger.debug("Rate limit bucket empty")
        return False

    def take(self) -> "asyncio.Future[bool]":
        """Awaitable form of try_acquire.

        The token is taken when ``take()`` is called, not when the result is
        awaited, so un-awaited concurrent calls consume tokens in call order.
        Must be called from a running event loop.
        """
        acquired = self.try_acquire()
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        future.set_result(acquired)
        return future

    @property
    def available_tokens(self) -> float:
        """Tokens currently available, within [0, capacity]. Does not mutate state."""
        return max(0.0, self._tokens_at(self._clock()))
