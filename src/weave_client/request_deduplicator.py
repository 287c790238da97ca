"""
Request Deduplication Module

Collapses identical concurrent GET requests into one network call and keeps
successful results in a short-lived TTL cache so immediate repeat reads never
reach the network.
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

lib_logger = logging.getLogger("weave_client")

_MISSING = object()


def _consume_exception(future: "asyncio.Future[Any]") -> None:
    if not future.cancelled():
        future.exception()


@dataclass
class CacheEntry:
    expires_at: float
    value: Any


class RequestDeduplicator:
    """
    Deduplicates identical concurrent reads and caches their results.

    Keys combine the absolute URL with the Authorization header value, so two
    identities never share an in-flight request or a cached result.
    Entries are evicted lazily when read after expiry; invalidate() drops the
    whole cache after any successful mutation.
    """

    def __init__(self, ttl_seconds: float = 5.0, max_items: int = 500):
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self._pending: Dict[str, "asyncio.Future[Any]"] = {}
        self._store: Dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(url: str, authorization: Optional[str]) -> str:
        key_str = json.dumps([url, authorization or ""], separators=(",", ":"))
        return hashlib.sha256(key_str.encode("utf-8")).hexdigest()

    def _get_cached(self, key: str) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return _MISSING
        if entry.expires_at <= time.monotonic():
            self._store.pop(key, None)
            return _MISSING
        return entry.value

    def _set_cached(self, key: str, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        if key not in self._store and len(self._store) >= self.max_items:
            # oldest insertion goes first
            self._store.pop(next(iter(self._store)))
        self._store[key] = CacheEntry(
            expires_at=time.monotonic() + self.ttl_seconds, value=value
        )

    async def execute_or_wait(
        self, key: str, handler: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Serve from cache, join an identical in-flight read, or run ``handler``.

        Args:
            key: Dedupe key from make_key()
            handler: Async function that performs the actual request

        Returns:
            The (possibly shared) result of the handler
        """
        cached = self._get_cached(key)
        if cached is not _MISSING:
            lib_logger.debug(f"GET cache hit {key[:8]}")
            return cached

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._run(key, handler))
            # the failure is retrieved even if every waiter was cancelled
            pending.add_done_callback(_consume_exception)
            self._pending[key] = pending
        else:
            lib_logger.debug(f"Request deduplication: joining in-flight request {key[:8]}")

        return await asyncio.shield(pending)

    async def _run(self, key: str, handler: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await handler()
            self._set_cached(key, value)
            return value
        finally:
            self._pending.pop(key, None)

    def invalidate(self) -> None:
        """Drop every cached result. In-flight reads are left alone."""
        if self._store:
            lib_logger.debug(f"Invalidating {len(self._store)} cached GET result(s)")
        self._store.clear()

    @property
    def cached_count(self) -> int:
        return len(self._store)

    @property
    def in_flight_count(self) -> int:
        return len(self._pending)
