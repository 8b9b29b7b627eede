# variant_gateway/cache.py
# Entity-scoped result caching: TTL store + single-flight de-duplication.

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

log = logging.getLogger("variant_gateway.cache")

Clock = Callable[[], float]
KeyFn = Callable[..., str]


def variant_cache_key(dataset_id: str, entity_kind: str, entity_id: str) -> str:
    return f"clinvar_variants:{dataset_id}:{entity_kind}:{entity_id}"


# ---------- Store interface ----------
class CacheStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...


class MemoryCacheStore:
    """Per-process TTL store. An entry is served while clock() < expires_at."""

    def __init__(self, clock: Clock = time.monotonic):
        self._store: Dict[str, Tuple[float, Any]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            exp, val = item
            if self._clock() >= exp:
                # expired
                self._store.pop(key, None)
                return None
            return val

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            self._store[key] = (self._clock() + ttl_seconds, value)


# ---------- Single-flight wrapper ----------
class SingleFlightCache:
    """
    Memoizes expensive async computations in a CacheStore.

    At most one computation runs per key at a time: callers that arrive while
    one is in flight await the same task and get its value or its exception.
    Failed computations are never written to the store.
    """

    def __init__(self, store: CacheStore):
        self.store = store
        self._inflight: Dict[str, "asyncio.Task[Any]"] = {}

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
    ) -> Any:
        # lookup and registration must not be separated by an await
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._load(key, compute, ttl_seconds))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget, key))
        else:
            log.debug("cache attach %s", key)
        return await asyncio.shield(task)

    async def _load(self, key: str, compute: Callable[[], Awaitable[Any]], ttl_seconds: int) -> Any:
        cached = await self.store.get(key)
        if cached is not None:
            log.debug("cache hit %s", key)
            return cached
        log.debug("cache miss %s", key)
        value = await compute()
        await self.store.set(key, value, ttl_seconds)
        return value

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            # every attached caller already received it
            log.debug("computation for %s failed: %r", key, task.exception())

    def wrap(
        self,
        fn: Callable[..., Awaitable[Any]],
        key_fn: KeyFn,
        ttl_seconds: int,
    ) -> Callable[..., Awaitable[Any]]:
        """Cached version of `fn`; `key_fn` receives the same arguments as `fn`."""

        @functools.wraps(fn)
        async def _wrapped(*args: Any, **kwargs: Any) -> Any:
            key = key_fn(*args, **kwargs)
            return await self.get_or_compute(key, lambda: fn(*args, **kwargs), ttl_seconds)

        return _wrapped
