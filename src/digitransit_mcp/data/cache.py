"""TTL + LRU request cache with in-flight request collapsing.

All bookkeeping happens synchronously on the event loop thread, so concurrent
callers for the same key always observe a consistent view of the in-flight
and recent-result tables without any locking.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

_MISSING = object()


class InvalidKeyError(ValueError):
    """Raised when a cache mutation is attempted without a usable key."""


class InflightTimeoutError(TimeoutError):
    """Raised to callers waiting on an in-flight request that took too long."""

    def __init__(self, key: Hashable, timeout: float):
        super().__init__(f"In-flight request for {key!r} timed out after {timeout}s")
        self.key = key
        self.timeout = timeout


def _validate_key(key: Hashable) -> None:
    if key is None or (isinstance(key, str) and key == ""):
        raise InvalidKeyError("Cache key must be a non-empty value")


class RequestCache(Generic[T]):
    """Keyed TTL cache with LRU eviction plus request collapsing.

    Three tables are kept:
    - entries: fetched values, bounded by ``max_size`` and ``ttl``
    - in-flight: one shared future per key while an upstream call runs
    - recent results: short-lived successful results, reused inside a window
    """

    def __init__(
        self,
        ttl: float = 600.0,
        max_size: int = 500,
        recent_results_max_size: int = 100,
        recent_results_ttl: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            ttl: Entry lifetime in seconds. Values <= 0 disable expiry.
            max_size: Maximum number of stored entries.
            recent_results_max_size: Maximum number of recent results kept.
            recent_results_ttl: Lifetime in seconds of a recent result.
            clock: Monotonic time source in seconds.
        """
        self._ttl = ttl
        self._max_size = max_size
        self._recent_max_size = recent_results_max_size
        self._recent_ttl = recent_results_ttl
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[T, float]] = OrderedDict()
        self._inflight: dict[Hashable, asyncio.Future] = {}
        self._recent: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()
        self._tasks: set[asyncio.Task] = set()

    @property
    def size(self) -> int:
        """Number of stored entries, expired ones included until purged."""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def _is_expired(self, inserted_at: float, now: float) -> bool:
        return self._ttl > 0 and now - inserted_at > self._ttl

    def purge_expired(self) -> int:
        """Remove expired entries.

        Iterates over a snapshot of the keys. If the live table stops matching
        that snapshot (another actor removed entries meanwhile), the purge
        stops early and leaves the rest for a later call.

        Returns:
            Number of entries removed.
        """
        if self._ttl <= 0:
            return 0

        now = self._clock()
        snapshot = list(self._entries)
        expected_size = len(snapshot)
        removed = 0

        for key in snapshot:
            if len(self._entries) != expected_size or key not in self._entries:
                logger.debug("Cache changed during purge, stopping early")
                break
            _, inserted_at = self._entries[key]
            if self._is_expired(inserted_at, now):
                del self._entries[key]
                expected_size -= 1
                removed += 1

        return removed

    def set(self, key: Hashable, value: T) -> None:
        """Insert or refresh an entry and mark it most recently used.

        Raises:
            InvalidKeyError: If key is None or an empty string.
        """
        _validate_key(key)
        self.purge_expired()

        self._entries.pop(key, None)
        self._entries[key] = (value, self._clock())

        while len(self._entries) > self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted least recently used cache key {evicted!r}")

    def get(self, key: Hashable, default: T | None = None) -> T | None:
        """Get a stored value, refreshing its recency.

        Returns:
            The value, or ``default`` if missing or expired.
        """
        self.purge_expired()

        entry = self._entries.get(key)
        if entry is None:
            return default

        value, inserted_at = entry
        if self._is_expired(inserted_at, self._clock()):
            del self._entries[key]
            return default

        self._entries.move_to_end(key)
        return value

    def delete(self, key: Hashable) -> bool:
        """Remove an entry. Returns True if it existed."""
        return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        """Clear stored entries and recent results.

        In-flight requests are left alone so their waiters still settle.
        """
        self._entries.clear()
        self._recent.clear()

    # Recent results

    def _purge_recent(self, now: float) -> None:
        if self._recent_ttl <= 0:
            return
        stale = [k for k, (_, at) in self._recent.items() if now - at > self._recent_ttl]
        for k in stale:
            del self._recent[k]

    def set_recent_result(self, key: Hashable, value: Any) -> None:
        """Record a successful result. The object is stored as-is."""
        _validate_key(key)
        self._recent.pop(key, None)
        self._recent[key] = (value, self._clock())

        while len(self._recent) > self._recent_max_size:
            self._recent.popitem(last=False)

    def get_recent_result_within(self, key: Hashable, window: float, default: Any = None) -> Any:
        """Return the recent result for key if recorded at most ``window`` seconds ago."""
        now = self._clock()
        self._purge_recent(now)

        entry = self._recent.get(key)
        if entry is None or window < 0:
            return default

        value, recorded_at = entry
        if now - recorded_at <= window:
            return value
        return default

    # Request collapsing

    @property
    def inflight_count(self) -> int:
        """Number of upstream calls currently in flight."""
        return len(self._inflight)

    def collapse_request(
        self,
        key: Hashable,
        operation: Callable[[], Awaitable[T]],
        reuse_window: float = 0.5,
        inflight_timeout: float | None = None,
    ) -> "asyncio.Future[T]":
        """Share one upstream call between all callers asking for the same key.

        Must be called from a running event loop. The returned future is the
        same object for every caller that joins before the call settles, and
        for callers arriving within ``reuse_window`` seconds after a success.

        Args:
            key: Request identity.
            operation: Zero-argument callable returning an awaitable.
            reuse_window: Seconds a successful result may be reused.
            inflight_timeout: Seconds before waiters are released with
                InflightTimeoutError. The operation itself keeps running.

        Returns:
            Future resolving to the operation's result.
        """
        _validate_key(key)

        recent = self.get_recent_result_within(key, reuse_window, default=_MISSING)
        if recent is not _MISSING:
            logger.debug(f"Reusing recent result for {key!r}")
            return recent

        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight request for {key!r}")
            if inflight_timeout is not None:
                # each waiter's deadline applies to the shared future; earliest wins
                self._schedule_expiry(key, pending, inflight_timeout)
            return pending

        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._inflight[key] = future

        try:
            awaitable = operation()
        except Exception as e:
            self._release(key, future)
            future.set_exception(e)
            return future

        task = loop.create_task(self._settle(key, future, awaitable))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        if inflight_timeout is not None:
            self._schedule_expiry(key, future, inflight_timeout)

        return future

    def _release(self, key: Hashable, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]

    async def _settle(self, key: Hashable, future: asyncio.Future, awaitable: Awaitable[T]) -> None:
        try:
            result = await awaitable
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            # a timed-out future is already done; its late result is dropped
            if not future.done():
                self.set_recent_result(key, future)
                future.set_result(result)
        finally:
            self._release(key, future)

    def _schedule_expiry(self, key: Hashable, future: asyncio.Future, timeout: float) -> None:
        handle = asyncio.get_running_loop().call_later(timeout, self._expire, key, future, timeout)
        future.add_done_callback(lambda _: handle.cancel())

    def _expire(self, key: Hashable, future: asyncio.Future, timeout: float) -> None:
        if future.done():
            return
        logger.warning(f"In-flight request for {key!r} exceeded {timeout}s")
        self._release(key, future)
        future.set_exception(InflightTimeoutError(key, timeout))
