"""
Tests for GET deduplication and the short-lived result cache.
"""
import asyncio
import gc
import time

import pytest

from weave_client.request_deduplicator import RequestDeduplicator


class CountingHandler:
    def __init__(self, result="value", error=None, delay=0.01):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def test_key_depends_on_identity():
    url = "http://api.test/api/products"
    assert RequestDeduplicator.make_key(url, "Bearer a") != RequestDeduplicator.make_key(url, "Bearer b")
    assert RequestDeduplicator.make_key(url, None) == RequestDeduplicator.make_key(url, "")


@pytest.mark.asyncio
async def test_concurrent_identical_reads_run_once():
    dedup = RequestDeduplicator(ttl_seconds=5)
    handler = CountingHandler(result={"items": [1]})
    key = dedup.make_key("http://api.test/api/items", "Bearer a")

    results = await asyncio.gather(*(dedup.execute_or_wait(key, handler) for _ in range(3)))

    assert handler.calls == 1
    assert results == [{"items": [1]}] * 3
    assert dedup.in_flight_count == 0


@pytest.mark.asyncio
async def test_cache_hit_within_ttl_and_miss_after():
    dedup = RequestDeduplicator(ttl_seconds=5)
    handler = CountingHandler()
    key = dedup.make_key("http://api.test/api/items", None)

    await dedup.execute_or_wait(key, handler)
    await dedup.execute_or_wait(key, handler)
    assert handler.calls == 1

    dedup._store[key].expires_at = time.monotonic() - 1
    await dedup.execute_or_wait(key, handler)
    assert handler.calls == 2
    assert dedup.cached_count == 1


@pytest.mark.asyncio
async def test_failure_is_shared_and_not_cached():
    dedup = RequestDeduplicator(ttl_seconds=5)
    handler = CountingHandler(error=ValueError("down"))
    key = dedup.make_key("http://api.test/api/items", None)

    results = await asyncio.gather(
        dedup.execute_or_wait(key, handler),
        dedup.execute_or_wait(key, handler),
        return_exceptions=True,
    )
    assert handler.calls == 1
    assert all(isinstance(r, ValueError) for r in results)
    assert dedup.in_flight_count == 0
    assert dedup.cached_count == 0

    handler.error = None
    assert await dedup.execute_or_wait(key, handler) == "value"
    assert handler.calls == 2


@pytest.mark.asyncio
async def test_invalidate_drops_all_entries():
    dedup = RequestDeduplicator(ttl_seconds=5)
    handler = CountingHandler()
    for path in ("a", "b"):
        await dedup.execute_or_wait(dedup.make_key(path, None), handler)
    assert dedup.cached_count == 2

    dedup.invalidate()

    assert dedup.cached_count == 0
    await dedup.execute_or_wait(dedup.make_key("a", None), handler)
    assert handler.calls == 3


@pytest.mark.asyncio
async def test_zero_ttl_disables_cache_but_keeps_dedup():
    dedup = RequestDeduplicator(ttl_seconds=0)
    handler = CountingHandler()
    key = dedup.make_key("x", None)

    await asyncio.gather(dedup.execute_or_wait(key, handler), dedup.execute_or_wait(key, handler))
    await dedup.execute_or_wait(key, handler)

    assert handler.calls == 2


@pytest.mark.asyncio
async def test_max_items_evicts_oldest():
    dedup = RequestDeduplicator(ttl_seconds=5, max_items=2)
    handler = CountingHandler()
    for path in ("a", "b", "c"):
        await dedup.execute_or_wait(dedup.make_key(path, None), handler)

    assert dedup.cached_count == 2
    await dedup.execute_or_wait(dedup.make_key("a", None), handler)
    assert handler.calls == 4


@pytest.mark.asyncio
async def test_failure_with_no_waiters_left_is_still_retrieved(caplog):
    dedup = RequestDeduplicator(ttl_seconds=5)
    handler = CountingHandler(error=RuntimeError("boom"), delay=0.02)
    key = dedup.make_key("http://api.test/api/items", None)

    waiter = asyncio.ensure_future(dedup.execute_or_wait(key, handler))
    await asyncio.sleep(0.005)
    pending = dedup._pending[key]
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    while not pending.done():
        await asyncio.sleep(0.005)
    await asyncio.sleep(0)
    del pending, waiter
    gc.collect()

    assert "never retrieved" not in caplog.text
    assert dedup.in_flight_count == 0
