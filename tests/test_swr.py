"""Stale-while-revalidate reads."""

from __future__ import annotations

import asyncio

from market_cache.swr import StaleWhileRevalidate
from market_cache.tiered_cache import TieredCache
from tests.fixtures import FakeClock


class Fetcher:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        value = self.values[min(self.calls, len(self.values)) - 1]
        if isinstance(value, Exception):
            raise value
        return value


def test_fresh_entry_served_without_fetch() -> None:
    async def scenario() -> None:
        swr = StaleWhileRevalidate(TieredCache(clock=FakeClock()))
        fetch = Fetcher("v1")

        first = await swr.get("k", fetch, ttl=30)
        second = await swr.get("k", fetch, ttl=30)

        assert first.data == second.data == "v1"
        assert second.stale is False
        assert fetch.calls == 1

    asyncio.run(scenario())


def test_stale_entry_served_while_revalidating_once() -> None:
    async def scenario() -> None:
        clock = FakeClock()
        swr = StaleWhileRevalidate(TieredCache(clock=clock))
        fetch = Fetcher("v1", "v2")

        await swr.get("k", fetch, ttl=30, swr_ttl=30)
        clock.advance(40)

        stale = await swr.get("k", fetch, ttl=30, swr_ttl=30)
        again = await swr.get("k", fetch, ttl=30, swr_ttl=30)
        assert stale.data == again.data == "v1"
        assert stale.stale is True

        await swr.wait_pending()
        assert fetch.calls == 2
        fresh = await swr.get("k", fetch, ttl=30, swr_ttl=30)
        assert fresh.data == "v2"
        assert fresh.stale is False

    asyncio.run(scenario())


def test_failed_revalidation_leaves_entry() -> None:
    async def scenario() -> None:
        clock = FakeClock()
        tiers = TieredCache(clock=clock)
        swr = StaleWhileRevalidate(tiers)
        fetch = Fetcher("v1", RuntimeError("down"))

        await swr.get("k", fetch, ttl=30)
        clock.advance(31)
        assert (await swr.get("k", fetch, ttl=30)).data == "v1"
        await swr.wait_pending()

        assert tiers.main.peek("k").value == "v1"

    asyncio.run(scenario())


def test_beyond_window_fetches_synchronously() -> None:
    async def scenario() -> None:
        clock = FakeClock()
        swr = StaleWhileRevalidate(TieredCache(clock=clock))
        fetch = Fetcher("v1", "v2")

        await swr.get("k", fetch, ttl=30, swr_ttl=30)
        clock.advance(61)
        result = await swr.get("k", fetch, ttl=30, swr_ttl=30)

        assert result.data == "v2"
        assert result.stale is False

    asyncio.run(scenario())


class GatedFetcher:
    """After the initial load, the first revalidation fails when ``first`` opens and the second blocks on ``second``."""

    def __init__(self):
        self.first = asyncio.Event()
        self.second = asyncio.Event()
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls == 2:
            await self.first.wait()
            raise RuntimeError("upstream down")
        if self.calls == 3:
            await self.second.wait()
        return f"v{self.calls}"


def test_late_completion_does_not_release_newer_revalidation() -> None:
    async def scenario() -> None:
        clock = FakeClock()
        swr = StaleWhileRevalidate(TieredCache(clock=clock))
        fetch = GatedFetcher()

        await swr.get("k", fetch, ttl=30, swr_ttl=30)
        clock.advance(31)
        await swr.get("k", fetch, ttl=30, swr_ttl=30)
        await asyncio.sleep(0)

        async def reader():
            await fetch.first.wait()
            return await swr.get("k", fetch, ttl=30, swr_ttl=30)

        waiting = asyncio.create_task(reader())
        await asyncio.sleep(0)
        # the first revalidation fails and the reader starts the second one
        # before the first one's completion callbacks run
        fetch.first.set()
        assert (await waiting).stale is True
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert fetch.calls == 3

        await swr.get("k", fetch, ttl=30, swr_ttl=30)
        await asyncio.sleep(0)
        assert fetch.calls == 3

        fetch.second.set()
        await swr.wait_pending()
        assert (await swr.get("k", fetch, ttl=30, swr_ttl=30)).data == "v3"

    asyncio.run(scenario())
