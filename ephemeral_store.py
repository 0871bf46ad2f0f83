"""
Ephemeral key/value stores for shared analyses, catalog entries and audio.

Everything lives in process memory and disappears on restart. Handlers only
see the EphemeralStore interface, so a networked backend can replace
InMemoryStore without touching call sites.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Generic, List, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class EphemeralStore(Protocol[V]):
    """Async key/value store contract used by the HTTP handlers."""

    async def put(self, key: str, value: V, ttl_seconds: Optional[float] = None) -> None:
        ...

    async def get(self, key: str) -> Optional[V]:
        ...

    async def list(self) -> List[V]:
        ...

    async def delete(self, key: str) -> bool:
        ...


class InMemoryStore(Generic[V]):
    """
    Process-local store backed by a dict.

    Entries put with a TTL become invisible once their deadline passes and
    are dropped by a scheduled event-loop callback when a loop is running.
    No size bound and no eviction beyond that.
    """

    def __init__(self, name: str, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            name: Label used in log lines
            clock: Monotonic time source, injectable for tests
        """
        self.name = name
        self._clock = clock
        self._data: Dict[str, V] = {}
        self._deadlines: Dict[str, float] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    async def put(self, key: str, value: V, ttl_seconds: Optional[float] = None) -> None:
        """
        Store a value, replacing any previous value and pending expiry.

        Args:
            key: Identifier
            value: Value to store
            ttl_seconds: Optional lifetime after which the entry is deleted
        """
        self._cancel_expiry(key)
        self._data[key] = value

        if ttl_seconds is not None:
            self._deadlines[key] = self._clock() + ttl_seconds
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._timers[key] = loop.call_later(ttl_seconds, self._expire, key)

        logger.debug(f"[{self.name}] Stored {key}")

    async def get(self, key: str) -> Optional[V]:
        if self._is_expired(key):
            self._expire(key)
            return None
        return self._data.get(key)

    async def list(self) -> List[V]:
        """Return all live values in insertion order."""
        for key in [k for k in self._deadlines if self._is_expired(k)]:
            self._expire(key)
        return list(self._data.values())

    async def delete(self, key: str) -> bool:
        self._cancel_expiry(key)
        return self._data.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._data)

    def _is_expired(self, key: str) -> bool:
        deadline = self._deadlines.get(key)
        return deadline is not None and self._clock() >= deadline

    def _expire(self, key: str) -> None:
        self._timers.pop(key, None)
        self._deadlines.pop(key, None)
        if self._data.pop(key, None) is not None:
            logger.info(f"[{self.name}] Expired and deleted {key}")

    def _cancel_expiry(self, key: str) -> None:
        self._deadlines.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

