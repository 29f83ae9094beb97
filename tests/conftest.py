import asyncio
import os

# Keep test runs out of the debug log file
os.environ.setdefault("DEBUG_LOGGING", "false")

import pytest

from gamediss_app.resolution import (
    Aggregator,
    CatalogEntry,
    CatalogProvider,
    CatalogRefreshError,
    CatalogSnapshotStore,
    PlayerCount,
    ResolutionEngine,
    ReviewSummary,
    TagList,
    TitleMatcher,
)
from gamediss_app.resolution.providers.base import BaseSourceFetcher


CATALOG = [
    CatalogEntry("42", "Hollow Knight: Silksong", aliases=("Silksong",)),
    CatalogEntry("367520", "Hollow Knight"),
    CatalogEntry("292030", "The Witcher 3: Wild Hunt", aliases=("Witcher 3",)),
    CatalogEntry("620", "Portal 2"),
    CatalogEntry("400", "Portal"),
    CatalogEntry("379720", "DOOM"),
    CatalogEntry("1091500", "Cyberpunk 2077"),
]


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class StaticCatalogProvider(CatalogProvider):
    """Serves a fixed entry list; flip `fail` to simulate outages."""

    id = "static"

    def __init__(self, entries=None, fail=False):
        self.entries = list(CATALOG if entries is None else entries)
        self.fail = fail
        self.calls = 0
        self.closed = False

    async def fetch_catalog(self):
        self.calls += 1
        if self.fail:
            raise CatalogRefreshError("static: upstream down")
        return list(self.entries)

    async def close(self):
        self.closed = True


class FakeFetcher(BaseSourceFetcher):
    """Source fetcher returning a canned value, optionally slow or failing."""

    def __init__(self, field, value=None, delay=0.0, error=None, clock=None):
        self.field = field
        self.value = value
        self.delay = delay
        self.error = error
        self.calls = 0
        if clock is None:
            super().__init__()
        else:
            super().__init__(clock=clock)

    async def _fetch(self, app_id):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


class CountingMatcher(TitleMatcher):
    """TitleMatcher that records how often it ran."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def match(self, key, snapshot):
        self.calls += 1
        return super().match(key, snapshot)


def default_fetchers(**overrides):
    fetchers = {
        'tags': FakeFetcher('tags', TagList(tags=("Metroidvania", "Souls-like"))),
        'reviews': FakeFetcher('reviews', ReviewSummary(label="Very Positive")),
        'players': FakeFetcher('players', PlayerCount(count=1234)),
    }
    fetchers.update(overrides)
    return fetchers


def make_engine(provider=None, fetchers=None, clock=None, deadline=2.0, **kwargs):
    clock = clock or FakeClock()
    store = CatalogSnapshotStore(provider or StaticCatalogProvider(), clock=clock)
    aggregator = Aggregator(fetchers or default_fetchers(), deadline=deadline)
    matcher = kwargs.pop('matcher', None) or CountingMatcher(clock=clock)
    return ResolutionEngine(store, aggregator, matcher=matcher, clock=clock, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return StaticCatalogProvider()
