import asyncio
import json

import pytest

from gamediss_app.resolution import (
    CatalogEntry,
    CatalogNotReady,
    CatalogRefreshError,
    CatalogSnapshotStore,
    build_snapshot,
)
from gamediss_app.resolution.providers import JsonCatalogProvider

from conftest import StaticCatalogProvider


def test_current_before_first_load_raises(provider, clock):
    store = CatalogSnapshotStore(provider, clock=clock)

    assert not store.is_ready
    with pytest.raises(CatalogNotReady):
        store.current()
    assert store.stats()['ready'] is False


@pytest.mark.asyncio
async def test_refresh_installs_snapshot(provider, clock):
    store = CatalogSnapshotStore(provider, clock=clock)

    snapshot = await store.refresh()

    assert store.current() is snapshot
    assert snapshot.version == 1
    assert len(snapshot) == len(provider.entries)
    assert snapshot.loaded_at == clock.now
    assert snapshot.lookup("silksong")[0].id == "42"


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_snapshot(provider, clock):
    store = CatalogSnapshotStore(provider, clock=clock)
    first = await store.refresh()

    provider.fail = True
    with pytest.raises(CatalogRefreshError):
        await store.refresh()

    assert store.current() is first
    stats = store.stats()
    assert stats['failures'] == 1
    assert "upstream down" in stats['last_error']


@pytest.mark.asyncio
async def test_unexpected_provider_error_is_wrapped(clock):
    class BrokenProvider(StaticCatalogProvider):
        async def fetch_catalog(self):
            raise RuntimeError("socket closed")

    store = CatalogSnapshotStore(BrokenProvider(), clock=clock)
    with pytest.raises(CatalogRefreshError):
        await store.refresh()
    assert not store.is_ready


@pytest.mark.asyncio
async def test_empty_catalog_is_an_error(clock):
    store = CatalogSnapshotStore(StaticCatalogProvider(entries=[]), clock=clock)

    with pytest.raises(CatalogRefreshError):
        await store.refresh()
    assert not store.is_ready


@pytest.mark.asyncio
async def test_unchanged_catalog_keeps_version(provider, clock):
    store = CatalogSnapshotStore(provider, clock=clock)
    first = await store.refresh()

    clock.advance(100)
    second = await store.refresh()

    assert second.version == first.version
    assert second.checksum == first.checksum
    assert second.loaded_at == first.loaded_at + 100


@pytest.mark.asyncio
async def test_changed_catalog_bumps_version(provider, clock):
    store = CatalogSnapshotStore(provider, clock=clock)
    await store.refresh()

    provider.entries.append(CatalogEntry("1145360", "Hades"))
    snapshot = await store.refresh()

    assert snapshot.version == 2
    assert snapshot.lookup("hades")[0].id == "1145360"


@pytest.mark.asyncio
async def test_staleness(provider, clock):
    store = CatalogSnapshotStore(provider, max_staleness=60, clock=clock)
    await store.refresh()

    assert not store.is_stale
    clock.advance(61)
    assert store.is_stale
    assert store.age() == pytest.approx(61)


@pytest.mark.asyncio
async def test_start_survives_failed_first_load_and_stop_closes_provider(clock):
    provider = StaticCatalogProvider(fail=True)
    store = CatalogSnapshotStore(provider, refresh_interval=0.01, clock=clock)

    await store.start()
    assert not store.is_ready

    provider.fail = False
    for _ in range(100):
        if store.is_ready:
            break
        await asyncio.sleep(0.01)
    assert store.is_ready

    await store.stop()
    assert provider.closed


class GatedProvider(StaticCatalogProvider):
    """Holds every fetch until `gate` is set and tracks overlap."""

    def __init__(self, entries=None):
        super().__init__(entries)
        self.gate = asyncio.Event()
        self.gate.set()
        self.active = 0
        self.max_active = 0

    async def fetch_catalog(self):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.gate.wait()
            return await super().fetch_catalog()
        finally:
            self.active -= 1


@pytest.mark.asyncio
async def test_concurrent_refreshes_are_serialized(clock):
    provider = GatedProvider()
    store = CatalogSnapshotStore(provider, clock=clock)
    first = await store.refresh()

    provider.gate.clear()
    provider.entries.append(CatalogEntry("1145360", "Hades"))
    both = asyncio.ensure_future(asyncio.gather(store.refresh(), store.refresh()))
    await asyncio.sleep(0.05)

    # One fetch in progress, readers still see the old snapshot
    assert provider.active == 1
    assert store.current() is first

    provider.gate.set()
    await both

    assert provider.max_active == 1
    assert provider.calls == 3
    assert store.current().version == 2
    assert store.current().lookup("hades")


def test_build_snapshot_dedupes_ids_and_indexes_aliases():
    snapshot = build_snapshot([
        CatalogEntry("1", "Portal", aliases=("Portal: Still Alive",)),
        CatalogEntry("1", "Portal (duplicate)"),
        CatalogEntry("2", "™"),
    ], version=3, loaded_at=0.0)

    assert [e.id for e in snapshot.ordered] == ["1", "2"]
    assert snapshot.lookup("portal still alive")[0].id == "1"
    assert "" not in snapshot.entries
    assert snapshot.version == 3


@pytest.mark.asyncio
async def test_json_catalog_provider(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([
        {"id": 42, "name": "Hollow Knight: Silksong", "aliases": ["Silksong"]},
        {"id": "620", "name": "Portal 2"},
    ]), encoding="utf-8")

    entries = await JsonCatalogProvider(str(path)).fetch_catalog()

    assert entries[0] == CatalogEntry("42", "Hollow Knight: Silksong", ("Silksong",))
    assert entries[1].aliases == ()


@pytest.mark.asyncio
async def test_json_catalog_provider_errors(tmp_path):
    missing = JsonCatalogProvider(str(tmp_path / "missing.json"))
    with pytest.raises(CatalogRefreshError):
        await missing.fetch_catalog()

    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"id": 1}), encoding="utf-8")
    with pytest.raises(CatalogRefreshError):
        await JsonCatalogProvider(str(path)).fetch_catalog()
