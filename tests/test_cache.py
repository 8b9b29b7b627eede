"""Tests for the TTL store and single-flight cache."""
import asyncio

import pytest

from variant_gateway.cache import MemoryCacheStore, SingleFlightCache, variant_cache_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_key_derivation_is_pure_and_explicit():
    assert variant_cache_key("GRCh38", "gene", "ENSG00000169174") == "clinvar_variants:GRCh38:gene:ENSG00000169174"
    assert variant_cache_key("GRCh38", "gene", "X") == variant_cache_key("GRCh38", "gene", "X")
    assert variant_cache_key("GRCh37", "gene", "X") != variant_cache_key("GRCh38", "gene", "X")


@pytest.mark.asyncio
async def test_memory_store_expires_at_ttl_boundary():
    clock = FakeClock()
    store = MemoryCacheStore(clock=clock)
    await store.set("k", [1], ttl_seconds=604800)

    clock.now += 604799
    assert await store.get("k") == [1]
    clock.now += 1
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_computation():
    cache = SingleFlightCache(MemoryCacheStore())
    calls = 0
    release = asyncio.Event()

    async def compute():
        nonlocal calls
        calls += 1
        await release.wait()
        return ["variant"]

    waiters = [asyncio.ensure_future(cache.get_or_compute("k", compute, 60)) for _ in range(5)]
    await asyncio.sleep(0)
    assert cache.inflight == 1
    release.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert all(r == ["variant"] for r in results)
    assert results[0] is results[4]
    assert cache.inflight == 0


@pytest.mark.asyncio
async def test_concurrent_callers_share_the_error_and_nothing_is_cached():
    store = MemoryCacheStore()
    cache = SingleFlightCache(store)
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        raise RuntimeError("backend timeout")

    results = await asyncio.gather(
        *[cache.get_or_compute("k", compute, 60) for _ in range(3)],
        return_exceptions=True,
    )
    assert calls == 1
    assert all(isinstance(r, RuntimeError) and str(r) == "backend timeout" for r in results)
    assert await store.get("k") is None

    async def succeed():
        return "ok"

    # failure is not cached: the next caller computes immediately
    assert await cache.get_or_compute("k", succeed, 60) == "ok"


@pytest.mark.asyncio
async def test_cached_value_reused_until_expiry():
    clock = FakeClock()
    cache = SingleFlightCache(MemoryCacheStore(clock=clock))
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        return calls

    assert await cache.get_or_compute("gene", compute, 604800) == 1
    clock.now += 604799
    assert await cache.get_or_compute("gene", compute, 604800) == 1
    clock.now += 1
    assert await cache.get_or_compute("gene", compute, 604800) == 2
    assert calls == 2


@pytest.mark.asyncio
async def test_distinct_keys_compute_independently():
    cache = SingleFlightCache(MemoryCacheStore())
    seen = []

    async def compute(key):
        seen.append(key)
        await asyncio.sleep(0)
        return key.upper()

    a, b = await asyncio.gather(
        cache.get_or_compute("a", lambda: compute("a"), 60),
        cache.get_or_compute("b", lambda: compute("b"), 60),
    )
    assert (a, b) == ("A", "B")
    assert sorted(seen) == ["a", "b"]


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_computation():
    cache = SingleFlightCache(MemoryCacheStore())
    release = asyncio.Event()

    async def compute():
        await release.wait()
        return "done"

    first = asyncio.ensure_future(cache.get_or_compute("k", compute, 60))
    second = asyncio.ensure_future(cache.get_or_compute("k", compute, 60))
    await asyncio.sleep(0)
    first.cancel()
    release.set()

    assert await second == "done"
    with pytest.raises(asyncio.CancelledError):
        await first


@pytest.mark.asyncio
async def test_wrap_derives_key_from_call_arguments():
    cache = SingleFlightCache(MemoryCacheStore())
    calls = []

    async def fetch(dataset, gene_id):
        calls.append((dataset, gene_id))
        return [gene_id]

    cached_fetch = cache.wrap(fetch, lambda dataset, gene_id: variant_cache_key(dataset, "gene", gene_id), 60)

    assert await cached_fetch("GRCh38", "G1") == ["G1"]
    assert await cached_fetch("GRCh38", gene_id="G1") == ["G1"]
    assert await cached_fetch("GRCh37", "G1") == ["G1"]
    assert calls == [("GRCh38", "G1"), ("GRCh37", "G1")]
    assert cached_fetch.__name__ == "fetch"
