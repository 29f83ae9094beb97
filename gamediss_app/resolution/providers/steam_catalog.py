"""
================================================================================
GameDiss - Catalog Providers
================================================================================
Bulk sources for the catalog snapshot:

  - SteamAppListProvider: every Steam app via ISteamApps/GetAppList/v2,
    minus obvious non-games (soundtracks, demos, DLC packs, ...)
  - JsonCatalogProvider: a local JSON file, for development and for
    hand-curated aliases

JSON file format:
    [
        {"id": "1030300", "name": "Hollow Knight: Silksong",
         "aliases": ["Silksong"]},
        ...
    ]
================================================================================
"""

import asyncio
import json
import logging
from typing import Iterable, List, Optional

import httpx

from .base import USER_AGENT
from ..catalog import CatalogProvider
from ..errors import CatalogRefreshError
from ..models import CatalogEntry


logger = logging.getLogger(__name__)


# Whole-word markers of store items that are not games
NON_GAME_WORDS = {
    'demo', 'beta', 'alpha', 'test', 'soundtrack', 'ost', 'dlc', 'expansion',
    'pack', 'bundle', 'trailer', 'video', 'documentary', 'wallpaper',
    'wallpapers', 'artbook', 'server', 'sdk', 'editor', 'playtest',
}
NON_GAME_PHRASES = ('season pass', 'dedicated server', 'art book')


def is_game_name(name: str) -> bool:
    """True unless the name looks like a soundtrack, demo, DLC pack, etc."""
    lowered = name.lower()
    if any(phrase in lowered for phrase in NON_GAME_PHRASES):
        return False
    words = lowered.replace('-', ' ').replace(':', ' ').split()
    return not any(word in NON_GAME_WORDS for word in words)


class SteamAppListProvider(CatalogProvider):
    """Full Steam app list."""

    id = "steam"
    url = "https://api.steampowered.com/ISteamApps/GetAppList/v2/"
    timeout = 60.0

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 filter_non_games: bool = True):
        self._client = client
        self._owns_client = client is None
        self.filter_non_games = filter_non_games

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={'User-Agent': USER_AGENT, 'Accept': 'application/json'},
            )
            self._owns_client = True
        return self._client

    async def close(self):
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def fetch_catalog(self) -> List[CatalogEntry]:
        client = await self._get_client()
        try:
            response = await client.get(self.url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise CatalogRefreshError(f"steam: app list request failed: {e}") from e
        except ValueError as e:
            raise CatalogRefreshError(f"steam: app list is not valid JSON: {e}") from e

        try:
            apps = data['applist']['apps']
        except (KeyError, TypeError) as e:
            raise CatalogRefreshError("steam: app list payload has no applist.apps") from e

        entries = list(self._parse_apps(apps))
        logger.info(f"Steam app list: {len(apps)} apps, {len(entries)} kept")
        return entries

    def _parse_apps(self, apps: Iterable[dict]) -> Iterable[CatalogEntry]:
        for app in apps:
            if not isinstance(app, dict):
                continue
            app_id = app.get('appid')
            name = (app.get('name') or '').strip()
            if app_id is None or not name:
                continue
            if self.filter_non_games and not is_game_name(name):
                continue
            yield CatalogEntry(id=str(app_id), canonical_name=name)


class JsonCatalogProvider(CatalogProvider):
    """Catalog loaded from a JSON file on every refresh."""

    id = "json"

    def __init__(self, path: str):
        self.path = path

    async def fetch_catalog(self) -> List[CatalogEntry]:
        return await asyncio.to_thread(self._read)

    def _read(self) -> List[CatalogEntry]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CatalogRefreshError(f"json: cannot read {self.path}: {e}") from e

        if not isinstance(data, list):
            raise CatalogRefreshError(f"json: {self.path} must contain a list")

        entries = []
        for item in data:
            try:
                entries.append(CatalogEntry(
                    id=str(item['id']),
                    canonical_name=str(item['name']),
                    aliases=tuple(str(a) for a in item.get('aliases', ())),
                ))
            except (KeyError, TypeError, AttributeError) as e:
                raise CatalogRefreshError(f"json: malformed entry {item!r}") from e
        return entries
