# variant_gateway/throttle.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

log = logging.getLogger("variant_gateway.throttle")

T = TypeVar("T")


@dataclass
class ThrottleState(Generic[T]):
    last_computed_at: Optional[float] = None
    last_value: Optional[T] = None


class ThrottledRefresher(Generic[T]):
    """
    Runs `fetch` at most once per `window_seconds`; calls inside the window get
    the last value back. A failing fetch leaves the previous state untouched.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "refresher",
    ):
        self._fetch = fetch
        self.window_seconds = window_seconds
        self._clock = clock
        self.name = name
        self.state: ThrottleState[T] = ThrottleState()
        self._lock = asyncio.Lock()

    def _fresh(self, now: float) -> bool:
        at = self.state.last_computed_at
        return at is not None and now - at < self.window_seconds

    async def __call__(self) -> T:
        async with self._lock:
            now = self._clock()
            if self._fresh(now):
                return self.state.last_value  # type: ignore[return-value]
            value = await self._fetch()
            self.state = ThrottleState(last_computed_at=now, last_value=value)
            log.debug("%s refreshed", self.name)
            return value

