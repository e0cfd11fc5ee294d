"""
Result cache module for notebridge MCP Server.

Contains the ResultCache class: an optional read-through cache for tool
results, keyed by operation name and arguments. The vault core never
depends on it; a disabled cache simply calls the loader every time.
"""

import json
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ResultCache:
    """In-memory TTL cache for tool results.

    Entries expire ttl seconds after they were stored. A ttl of 0 or an
    unset enabled flag disables caching.
    """

    def __init__(self, ttl: int = 60, enabled: bool = True, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.enabled = enabled and ttl > 0
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(operation: str, arguments: dict[str, Any] | None) -> tuple[str, str]:
        """Build a cache key from an operation name and its arguments."""
        return operation, json.dumps(arguments or {}, sort_keys=True, default=str)

    def get(self, operation: str, arguments: dict[str, Any] | None) -> Any | None:
        """Return a live cached value, or None."""
        key = self.make_key(operation, arguments)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, operation: str, arguments: dict[str, Any] | None, value: Any) -> None:
        self._entries[self.make_key(operation, arguments)] = (self._clock(), value)

    async def get_or_load(
        self,
        operation: str,
        arguments: dict[str, Any] | None,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached value for (operation, arguments), loading it on a miss.

        Loader errors propagate and nothing is stored.
        """
        if not self.enabled:
            return await loader()

        cached = self.get(operation, arguments)
        if cached is not None:
            self.hits += 1
            logger.debug("cache_hit", operation=operation)
            return cached

        self.misses += 1
        value = await loader()
        self.set(operation, arguments, value)
        logger.debug("cache_stored", operation=operation, entries=len(self._entries))
        return value

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
