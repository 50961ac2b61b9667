"""In-memory TTL cache with per-key request coalescing."""

import asyncio
import copy
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from .metrics import CACHE_HITS, CACHE_MISSES

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 900

_MISSING = object()


def _consume_outcome(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


def cache_key(endpoint: str, **params: Any) -> str:
    """Build a deterministic key from an endpoint name and its query parameters.

    Parameters are serialised as canonical JSON (sorted keys), so two calls
    with the same values always share a key and different values never do.
    """
    return f"{endpoint}:{json.dumps(params, sort_keys=True, default=str)}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    ttl_seconds: int = DEFAULT_TTL_SECONDS

    def is_valid(self, now: float) -> bool:
        return now < self.created_at + self.ttl_seconds


class TTLCache:
    """Fixed-TTL cache owned by the application.

    ``get_or_compute`` guarantees at most one producer in flight per key:
    concurrent misses wait on the same task and receive the same result.
    A failing producer leaves nothing behind, so the next call retries.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        if not entry.is_valid(self._clock()):
            # only drop the entry we looked at; a concurrent set may have replaced it
            if self._entries.get(key) is entry:
                del self._entries[key]
            return _MISSING
        return copy.deepcopy(entry.value)

    def get(self, key: str) -> Any:
        value = self._lookup(key)
        return None if value is _MISSING else value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(
            key=key,
            value=copy.deepcopy(value),
            created_at=self._clock(),
            ttl_seconds=self.ttl_seconds,
        )

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def get_or_compute(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        cacheable: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Return the cached value for ``key`` or run ``producer`` once to fill it.

        ``cacheable`` can veto storing a result (e.g. an incomplete one); the
        waiters still receive it.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            CACHE_HITS.inc()
            return value

        task = self._inflight.get(key)
        if task is None:
            CACHE_MISSES.inc()
            logger.debug("cache miss", extra={"cache_key": key})
            task = asyncio.ensure_future(self._produce(key, producer, cacheable))
            # the outcome is consumed even if every waiter has been cancelled
            task.add_done_callback(_consume_outcome)
            self._inflight[key] = task
        else:
            logger.debug("joining in-flight request", extra={"cache_key": key})

        # shield so one cancelled waiter does not cancel the fetch for the others
        result = await asyncio.shield(task)
        return copy.deepcopy(result)

    async def _produce(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        cacheable: Callable[[Any], bool] | None,
    ) -> Any:
        try:
            value = await producer()
            if cacheable is None or cacheable(value):
                self.set(key, value)
            else:
                logger.debug("result not cached", extra={"cache_key": key})
            return value
        finally:
            self._inflight.pop(key, None)
