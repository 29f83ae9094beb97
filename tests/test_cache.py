import asyncio

import pytest

from gamediss_app.resolution import SingleFlightCache


class Loader:
    def __init__(self, value="v", delay=0.01, fail_times=0):
        self.value = value
        self.delay = delay
        self.fail_times = fail_times
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.calls <= self.fail_times:
            raise ValueError("boom")
        return self.value


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_load(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    loader = Loader()

    results = await asyncio.gather(*(cache.get_or_load("k", loader) for _ in range(10)))

    assert results == ["v"] * 10
    assert loader.calls == 1
    stats = cache.stats()
    assert stats['loads'] == 1
    assert stats['joined'] == 9
    assert stats['in_flight'] == 0


@pytest.mark.asyncio
async def test_value_expires_after_ttl(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    loader = Loader(delay=0)

    await cache.get_or_load("k", loader)
    clock.advance(59)
    await cache.get_or_load("k", loader)
    assert loader.calls == 1

    clock.advance(2)
    assert cache.peek("k") is None
    await cache.get_or_load("k", loader)
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_ttl_for_chooses_ttl_per_value(clock):
    cache = SingleFlightCache("test", ttl=1000, ttl_for=lambda v: 10 if v is None else 1000,
                              clock=clock)

    await cache.get_or_load("miss", Loader(value=None, delay=0))
    await cache.get_or_load("hit", Loader(value="x", delay=0))
    clock.advance(11)

    assert cache.stats()['expired_entries'] == 1
    assert cache.peek("hit") == "x"
    assert cache.prune_expired() == 1
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_failures_are_not_cached(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    loader = Loader(fail_times=1)

    results = await asyncio.gather(
        *(cache.get_or_load("k", loader) for _ in range(3)),
        return_exceptions=True,
    )
    assert all(isinstance(r, ValueError) for r in results)
    assert loader.calls == 1
    assert len(cache) == 0

    assert await cache.get_or_load("k", loader) == "v"
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_lru_eviction(clock):
    cache = SingleFlightCache("test", ttl=60, max_size=2, clock=clock)

    await cache.get_or_load("a", Loader(value="A", delay=0))
    await cache.get_or_load("b", Loader(value="B", delay=0))
    await cache.get_or_load("a", Loader(value="unused", delay=0))
    await cache.get_or_load("c", Loader(value="C", delay=0))

    assert cache.peek("a") == "A"
    assert cache.peek("b") is None
    assert cache.peek("c") == "C"


@pytest.mark.asyncio
async def test_cancelled_joiner_does_not_cancel_load(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    loader = Loader(delay=0.05)

    owner = asyncio.ensure_future(cache.get_or_load("k", loader))
    await asyncio.sleep(0)
    joiner = asyncio.ensure_future(cache.get_or_load("k", loader))
    await asyncio.sleep(0)
    joiner.cancel()

    assert await owner == "v"
    assert joiner.cancelled()
    assert cache.peek("k") == "v"


@pytest.mark.asyncio
async def test_cancelled_first_caller_does_not_cancel_load(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    loader = Loader(delay=0.05)

    owner = asyncio.ensure_future(cache.get_or_load("k", loader))
    await asyncio.sleep(0)
    joiner = asyncio.ensure_future(cache.get_or_load("k", loader))
    await asyncio.sleep(0)
    owner.cancel()

    assert await joiner == "v"
    assert owner.cancelled()
    assert loader.calls == 1
    assert cache.peek("k") == "v"


@pytest.mark.asyncio
async def test_load_completes_after_only_caller_gives_up(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    loader = Loader(delay=0.05)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(cache.get_or_load("k", loader), 0.01)
    assert cache.stats()['in_flight'] == 1

    await asyncio.sleep(0.1)
    assert cache.peek("k") == "v"
    assert cache.stats()['in_flight'] == 0
    assert await cache.get_or_load("k", loader) == "v"
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_cancel_pending(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    caller = asyncio.ensure_future(cache.get_or_load("k", Loader(delay=5)))
    await asyncio.sleep(0)

    assert cache.cancel_pending() == 1
    with pytest.raises(asyncio.CancelledError):
        await caller
    assert cache.stats()['in_flight'] == 0
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_invalidate_and_clear(clock):
    cache = SingleFlightCache("test", ttl=60, clock=clock)
    await cache.get_or_load("a", Loader(delay=0))
    await cache.get_or_load("b", Loader(delay=0))

    cache.invalidate("a")
    assert cache.peek("a") is None
    cache.clear()
    assert len(cache) == 0
