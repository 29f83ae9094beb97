"""
================================================================================
GameDiss - Catalog Snapshot Store
================================================================================
Keeps an in-memory, immutable copy of the upstream game catalog
(id <-> name <-> aliases) and refreshes it on a fixed interval.

  - current() never touches the network; it returns the last good snapshot
    or raises CatalogNotReady before the first successful load
  - refresh() is serialized and swaps the snapshot reference in one step,
    so readers never see a half-built index
  - a failed refresh is logged and the previous snapshot keeps serving

Usage:
    store = CatalogSnapshotStore(SteamAppListProvider(), refresh_interval=3600)
    await store.start()        # first load + background refresh loop
    snapshot = store.current()
    await store.stop()
================================================================================
"""

import asyncio
import hashlib
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import CatalogNotReady, CatalogRefreshError
from .models import CatalogEntry, CatalogSnapshot
from .normalizer import normalize


logger = logging.getLogger(__name__)


class CatalogProvider(ABC):
    """Bulk source of catalog entries, fetched in full on every refresh."""

    id: str = "base"

    @abstractmethod
    async def fetch_catalog(self) -> List[CatalogEntry]:
        """
        Fetch the full catalog.

        Raises:
            CatalogRefreshError: On network or parse failure
        """

    async def close(self):
        """Release network resources."""


def catalog_checksum(entries: Iterable[CatalogEntry]) -> str:
    """Order-sensitive checksum of a catalog listing."""
    digest = hashlib.sha1()
    for entry in entries:
        digest.update(entry.id.encode('utf-8'))
        digest.update(b'\x1f')
        for name in entry.all_names():
            digest.update(name.encode('utf-8'))
            digest.update(b'\x1e')
        digest.update(b'\x1d')
    return digest.hexdigest()


def build_snapshot(
    entries: Iterable[CatalogEntry],
    version: int,
    loaded_at: Optional[float] = None,
    checksum: Optional[str] = None
) -> CatalogSnapshot:
    """
    Build an indexed, immutable snapshot from catalog entries.

    Duplicate ids keep their first occurrence. Names that normalize to an
    empty key are not indexed.
    """
    ordered: List[CatalogEntry] = []
    seen_ids = set()
    for entry in entries:
        if entry.id in seen_ids:
            continue
        seen_ids.add(entry.id)
        ordered.append(entry)

    index: Dict[str, List[CatalogEntry]] = {}
    names: List[Tuple[str, int]] = []

    for position, entry in enumerate(ordered):
        entry_keys = []
        for name in entry.all_names():
            key = normalize(name)
            if not key or key in entry_keys:
                continue
            entry_keys.append(key)
            index.setdefault(key, []).append(entry)
            names.append((key, position))

    return CatalogSnapshot(
        entries={key: tuple(hits) for key, hits in index.items()},
        ordered=tuple(ordered),
        names=tuple(names),
        loaded_at=time.time() if loaded_at is None else loaded_at,
        checksum=checksum or catalog_checksum(ordered),
        version=version,
    )


class CatalogSnapshotStore:
    """
    Owner of the current CatalogSnapshot.

    Single writer (refresh), many readers (current). A snapshot is replaced
    wholesale; superseded snapshots are dropped once no reader holds them.
    """

    def __init__(
        self,
        provider: CatalogProvider,
        refresh_interval: float = 3600.0,
        max_staleness: float = 6 * 3600.0,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            provider: Catalog provider to load from
            refresh_interval: Seconds between background refreshes
            max_staleness: Age in seconds after which the snapshot is stale
            clock: Time source (seconds)
        """
        self.provider = provider
        self.refresh_interval = refresh_interval
        self.max_staleness = max_staleness
        self._clock = clock
        self._snapshot: Optional[CatalogSnapshot] = None
        self._refresh_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._last_error: Optional[str] = None
        self._last_attempt: Optional[float] = None
        self._refresh_count = 0
        self._failure_count = 0

    # =========================================================================
    # READ SIDE
    # =========================================================================

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    def current(self) -> CatalogSnapshot:
        """
        Get the current snapshot without blocking.

        Raises:
            CatalogNotReady: If no load has ever succeeded
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise CatalogNotReady()
        return snapshot

    def age(self) -> Optional[float]:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return max(0.0, self._clock() - snapshot.loaded_at)

    @property
    def is_stale(self) -> bool:
        age = self.age()
        return age is not None and age > self.max_staleness

    # =========================================================================
    # WRITE SIDE
    # =========================================================================

    async def refresh(self) -> CatalogSnapshot:
        """
        Fetch the catalog and replace the current snapshot on success.

        Refreshes are serialized; a caller arriving while one is running
        waits for it and then runs its own.

        Returns:
            The newly installed snapshot

        Raises:
            CatalogRefreshError: On provider failure or an empty catalog.
                The previous snapshot stays in place.
        """
        async with self._refresh_lock:
            self._last_attempt = self._clock()
            try:
                entries = await self.provider.fetch_catalog()
            except CatalogRefreshError as e:
                self._record_failure(str(e))
                raise
            except Exception as e:
                self._record_failure(f"{type(e).__name__}: {e}")
                raise CatalogRefreshError(str(e)) from e

            if not entries:
                self._record_failure("provider returned an empty catalog")
                raise CatalogRefreshError(
                    f"{self.provider.id}: provider returned an empty catalog"
                )

            now = self._clock()
            checksum = catalog_checksum(entries)
            previous = self._snapshot

            if previous is not None and previous.checksum == checksum:
                snapshot = replace(previous, loaded_at=now)
                logger.info(f"Catalog unchanged (version {previous.version}), "
                            f"{len(previous)} entries")
            else:
                version = previous.version + 1 if previous else 1
                snapshot = build_snapshot(entries, version, loaded_at=now,
                                          checksum=checksum)
                logger.info(f"Catalog loaded: version {version}, "
                            f"{len(snapshot)} entries, {len(snapshot.entries)} keys")

            self._snapshot = snapshot
            self._last_error = None
            self._refresh_count += 1
            return snapshot

    def _record_failure(self, message: str):
        self._failure_count += 1
        self._last_error = message
        if self._snapshot is None:
            logger.error(f"Catalog refresh failed (no snapshot yet): {message}")
        else:
            logger.warning(
                f"Catalog refresh failed, keeping version {self._snapshot.version}: {message}"
            )

    # =========================================================================
    # BACKGROUND REFRESH
    # =========================================================================

    async def start(self, load_now: bool = True):
        """
        Start the background refresh loop on the running event loop.

        Args:
            load_now: Attempt the first load before returning. A failure is
                logged and left to the next scheduled attempt.
        """
        if self._task is not None and not self._task.done():
            return

        if load_now:
            try:
                await self.refresh()
            except CatalogRefreshError:
                pass

        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(f"Catalog refresh loop started (every {self.refresh_interval:.0f}s)")

    async def stop(self):
        """Stop the refresh loop and close the provider."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.provider.close()

    async def _refresh_loop(self):
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except CatalogRefreshError:
                # Already logged; next tick tries again
                continue

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def stats(self) -> dict:
        snapshot = self._snapshot
        age = self.age()
        return {
            'ready': snapshot is not None,
            'provider': self.provider.id,
            'version': snapshot.version if snapshot else None,
            'entries': len(snapshot) if snapshot else 0,
            'checksum': snapshot.checksum if snapshot else None,
            'loaded_at': snapshot.loaded_at if snapshot else None,
            'age_seconds': round(age, 1) if age is not None else None,
            'stale': self.is_stale,
            'refreshes': self._refresh_count,
            'failures': self._failure_count,
            'last_attempt': self._last_attempt,
            'last_error': self._last_error,
        }
