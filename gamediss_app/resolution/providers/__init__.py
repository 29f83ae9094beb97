"""
Upstream providers: catalog listings and per-field source fetchers.
"""

from typing import Dict, Optional

import httpx

from .base import BaseSourceFetcher, RateLimiter
from .steam_api import SteamPlayerCountFetcher, SteamSpyOwnershipFetcher, SteamUserReviewsFetcher
from .steam_catalog import JsonCatalogProvider, SteamAppListProvider, is_game_name
from .steam_store import (
    SteamReviewFetcher,
    SteamStoreDetailsFetcher,
    SteamStorePageFetcher,
    SteamTagsFetcher,
)


FETCHER_CLASSES = {
    cls.field: cls
    for cls in (
        SteamReviewFetcher,
        SteamTagsFetcher,
        SteamPlayerCountFetcher,
        SteamStoreDetailsFetcher,
        SteamSpyOwnershipFetcher,
        SteamUserReviewsFetcher,
    )
}


def build_default_fetchers(
    client: Optional[httpx.AsyncClient] = None,
    country: str = "us",
    language: str = "english"
) -> Dict[str, BaseSourceFetcher]:
    """Create one fetcher per known field, keyed by field name."""
    fetchers: Dict[str, BaseSourceFetcher] = {}
    for field, cls in FETCHER_CLASSES.items():
        if issubclass(cls, SteamStorePageFetcher):
            fetchers[field] = cls(client=client, country=country, language=language)
        elif issubclass(cls, SteamUserReviewsFetcher):
            fetchers[field] = cls(client=client, language=language)
        else:
            fetchers[field] = cls(client=client)
    return fetchers


__all__ = [
    'BaseSourceFetcher',
    'FETCHER_CLASSES',
    'JsonCatalogProvider',
    'RateLimiter',
    'SteamAppListProvider',
    'SteamPlayerCountFetcher',
    'SteamReviewFetcher',
    'SteamSpyOwnershipFetcher',
    'SteamStoreDetailsFetcher',
    'SteamTagsFetcher',
    'SteamUserReviewsFetcher',
    'build_default_fetchers',
    'is_game_name',
]
