"""
Environment-driven settings for the resolution engine.

Values come from the process environment (a .env file is loaded by the app
factory through python-dotenv).
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    return int(_env_float(env, name, default))


@dataclass(frozen=True)
class ResolverSettings:
    # "steam" for the Steam app list, otherwise a path to a JSON catalog
    catalog_source: str = 'steam'
    catalog_refresh_interval: float = 6 * 3600.0
    catalog_max_staleness: float = 24 * 3600.0

    match_threshold: float = 0.8
    resolution_ttl: float = 7 * 24 * 3600.0
    negative_resolution_ttl: float = 3600.0
    resolution_cache_size: int = 10000
    cache_prune_interval: float = 600.0

    aggregate_deadline: float = 8.0

    steam_country: str = 'us'
    steam_language: str = 'english'

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ResolverSettings":
        env = os.environ if env is None else env
        defaults = cls()
        settings = cls(
            catalog_source=env.get('CATALOG_SOURCE', defaults.catalog_source),
            catalog_refresh_interval=_env_float(
                env, 'CATALOG_REFRESH_INTERVAL', defaults.catalog_refresh_interval),
            catalog_max_staleness=_env_float(
                env, 'CATALOG_MAX_STALENESS', defaults.catalog_max_staleness),
            match_threshold=_env_float(env, 'MATCH_THRESHOLD', defaults.match_threshold),
            resolution_ttl=_env_float(env, 'RESOLUTION_TTL', defaults.resolution_ttl),
            negative_resolution_ttl=_env_float(
                env, 'NEGATIVE_RESOLUTION_TTL', defaults.negative_resolution_ttl),
            resolution_cache_size=_env_int(
                env, 'RESOLUTION_CACHE_SIZE', defaults.resolution_cache_size),
            cache_prune_interval=_env_float(
                env, 'CACHE_PRUNE_INTERVAL', defaults.cache_prune_interval),
            aggregate_deadline=_env_float(
                env, 'AGGREGATE_DEADLINE', defaults.aggregate_deadline),
            steam_country=env.get('STEAM_COUNTRY', defaults.steam_country),
            steam_language=env.get('STEAM_LANGUAGE', defaults.steam_language),
        )
        if not 0.0 <= settings.match_threshold <= 1.0:
            raise ValueError(f"MATCH_THRESHOLD must be within [0, 1], got {settings.match_threshold}")
        return settings
