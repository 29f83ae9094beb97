"""
================================================================================
GameDiss - Resolution Engine
================================================================================
Turns a free-text game title into a catalog id and aggregates per-field
data about it.

Flow:
    title -> normalize -> resolution cache (hit => done)
          -> matcher against the current catalog snapshot
          -> aggregator (parallel source fetchers) -> GameLookup

Usage:
    engine = ResolutionEngine.from_settings(ResolverSettings.from_env())
    await engine.start()

    lookup = await engine.resolve_and_aggregate(
        "Hollow Knight: Silksong", {"tags", "reviews", "players"}
    )
    if lookup.state is LookupState.COMPLETED:
        print(lookup.data.value("tags"))

    await engine.close()
================================================================================
"""

import asyncio
import logging
import time
from typing import Callable, Iterable, Optional, Tuple

from .aggregator import Aggregator
from .cache import SingleFlightCache
from .catalog import CatalogProvider, CatalogSnapshotStore
from .errors import CatalogNotReady
from .matcher import TitleMatcher
from .models import GameLookup, LookupState, ResolutionResult
from .normalizer import normalize
from .providers import JsonCatalogProvider, SteamAppListProvider, build_default_fetchers


logger = logging.getLogger(__name__)


DEFAULT_POSITIVE_TTL = 7 * 24 * 3600.0  # catalog identity rarely changes
DEFAULT_NEGATIVE_TTL = 3600.0           # the catalog may grow
DEFAULT_PRUNE_INTERVAL = 600.0


class ResolutionEngine:
    """
    Identity resolution and aggregation.

    Owns:
      - the catalog snapshot store and its refresh loop
      - the resolution cache (normalized title -> ResolutionResult)
      - the aggregator and its source fetchers
      - the loop that drops expired cache entries
    """

    def __init__(
        self,
        store: CatalogSnapshotStore,
        aggregator: Aggregator,
        matcher: Optional[TitleMatcher] = None,
        positive_ttl: float = DEFAULT_POSITIVE_TTL,
        negative_ttl: float = DEFAULT_NEGATIVE_TTL,
        cache_size: int = 10000,
        prune_interval: float = DEFAULT_PRUNE_INTERVAL,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.aggregator = aggregator
        self.matcher = matcher or TitleMatcher(clock=clock)
        self.positive_ttl = positive_ttl
        self.negative_ttl = negative_ttl
        self.resolutions: SingleFlightCache[str, ResolutionResult] = SingleFlightCache(
            name="resolution",
            ttl=positive_ttl,
            max_size=cache_size,
            ttl_for=self._ttl_for,
            clock=clock,
        )
        self._started = False
        self.prune_interval = prune_interval
        self._prune_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings) -> "ResolutionEngine":
        """Build an engine with the real Steam providers from ResolverSettings."""
        if settings.catalog_source == 'steam':
            provider: CatalogProvider = SteamAppListProvider()
        else:
            provider = JsonCatalogProvider(settings.catalog_source)

        store = CatalogSnapshotStore(
            provider,
            refresh_interval=settings.catalog_refresh_interval,
            max_staleness=settings.catalog_max_staleness,
        )
        aggregator = Aggregator(
            build_default_fetchers(country=settings.steam_country,
                                   language=settings.steam_language),
            deadline=settings.aggregate_deadline,
        )
        return cls(
            store,
            aggregator,
            matcher=TitleMatcher(threshold=settings.match_threshold),
            positive_ttl=settings.resolution_ttl,
            negative_ttl=settings.negative_resolution_ttl,
            cache_size=settings.resolution_cache_size,
            prune_interval=settings.cache_prune_interval,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        """Load the catalog (best effort) and start the refresh and prune loops."""
        if self._started:
            return
        await self.store.start()
        self._prune_task = asyncio.create_task(self._prune_loop())
        self._started = True

    async def close(self):
        """Stop background work and close HTTP clients."""
        if self._prune_task is not None:
            self._prune_task.cancel()
            try:
                await self._prune_task
            except asyncio.CancelledError:
                pass
            self._prune_task = None
        await self.store.stop()
        self.resolutions.cancel_pending()
        await self.aggregator.close()
        self._started = False

    def prune_caches(self) -> int:
        """
        Drop expired entries from the resolution cache and every source cache.

        Returns:
            Number of entries removed
        """
        removed = self.resolutions.prune_expired()
        for fetcher in self.aggregator.fetchers.values():
            removed += fetcher.cache.prune_expired()
        return removed

    async def _prune_loop(self):
        while True:
            await asyncio.sleep(self.prune_interval)
            self.prune_caches()

    @property
    def available_fields(self) -> frozenset:
        return self.aggregator.available_fields

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def _ttl_for(self, result: ResolutionResult) -> float:
        return self.positive_ttl if result.is_match else self.negative_ttl

    async def resolve(self, title: str) -> ResolutionResult:
        """
        Resolve a free-text title to a catalog entry.

        Returns:
            ResolutionResult (matched_id is None for a confirmed no-match)

        Raises:
            CatalogNotReady: If the catalog has never loaded
        """
        result, _ = await self._resolve(normalize(title))
        return result

    async def _resolve(self, key: str) -> Tuple[ResolutionResult, LookupState]:
        # Fail before touching the cache so no stale result masks NotReady
        self.store.current()

        matched_here = False

        async def _load() -> ResolutionResult:
            nonlocal matched_here
            matched_here = True
            snapshot = self.store.current()
            loop = asyncio.get_running_loop()
            # CPU-bound scan over the whole snapshot
            return await loop.run_in_executor(None, self.matcher.match, key, snapshot)

        result = await self.resolutions.get_or_load(key, _load)
        state = LookupState.MATCHING if matched_here else LookupState.CACHE_HIT
        return result, state

    async def resolve_and_aggregate(
        self,
        title: str,
        wanted_fields: Iterable[str],
        deadline: Optional[float] = None
    ) -> GameLookup:
        """
        Resolve a title and aggregate the wanted fields for it.

        Args:
            title: Free-text game title
            wanted_fields: Field names (see available_fields)
            deadline: Overall aggregation deadline in seconds

        Returns:
            GameLookup in state COMPLETED (possibly with field errors),
            NOT_FOUND or FAILED (catalog not ready)

        Raises:
            ValueError: If a wanted field is unknown
        """
        fields = set(wanted_fields)
        unknown = fields - self.available_fields
        if unknown:
            raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")

        self._transition(title, LookupState.RECEIVED)
        key = normalize(title)
        self._transition(title, LookupState.NORMALIZED, key)

        try:
            result, state = await self._resolve(key)
        except CatalogNotReady as e:
            self._transition(title, LookupState.FAILED, str(e))
            return GameLookup(state=LookupState.FAILED, title=title, error=str(e))
        self._transition(title, state)

        if not result.is_match:
            self._transition(title, LookupState.NOT_FOUND, f"best={result.confidence:.2f}")
            return GameLookup(state=LookupState.NOT_FOUND, title=title, resolution=result)

        self._transition(title, LookupState.RESOLVED,
                         f"{result.matched_id} ({result.confidence:.2f})")

        self._transition(title, LookupState.AGGREGATING)
        data = await self.aggregator.aggregate(result.matched_id, fields, deadline=deadline)

        self._transition(title, LookupState.COMPLETED)
        return GameLookup(state=LookupState.COMPLETED, title=title,
                          resolution=result, data=data)

    @staticmethod
    def _transition(title: str, state: LookupState, detail: str = ""):
        suffix = f" {detail}" if detail else ""
        logger.debug(f"[{title!r}] -> {state.value}{suffix}")

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def stats(self) -> dict:
        return {
            'catalog': self.store.stats(),
            'resolution_cache': self.resolutions.stats(),
            'sources': {
                field: fetcher.cache.stats()
                for field, fetcher in self.aggregator.fetchers.items()
            },
        }
