import pytest

from gamediss_app.config import ResolverSettings
from gamediss_app.resolution import ResolutionEngine
from gamediss_app.resolution.providers import JsonCatalogProvider, SteamAppListProvider


def test_defaults_from_empty_env():
    settings = ResolverSettings.from_env({})

    assert settings.catalog_source == "steam"
    assert settings.match_threshold == 0.8
    assert settings.negative_resolution_ttl < settings.resolution_ttl


def test_values_from_env():
    settings = ResolverSettings.from_env({
        "CATALOG_SOURCE": "/data/catalog.json",
        "MATCH_THRESHOLD": "0.9",
        "RESOLUTION_CACHE_SIZE": "50",
        "AGGREGATE_DEADLINE": "2.5",
        "STEAM_COUNTRY": "gb",
    })

    assert settings.catalog_source == "/data/catalog.json"
    assert settings.match_threshold == 0.9
    assert settings.resolution_cache_size == 50
    assert settings.aggregate_deadline == 2.5
    assert settings.steam_country == "gb"


@pytest.mark.parametrize("env", [
    {"MATCH_THRESHOLD": "1.2"},
    {"AGGREGATE_DEADLINE": "soon"},
])
def test_invalid_values(env):
    with pytest.raises(ValueError):
        ResolverSettings.from_env(env)


def test_engine_from_settings():
    steam = ResolutionEngine.from_settings(ResolverSettings())
    local = ResolutionEngine.from_settings(ResolverSettings(catalog_source="catalog.json",
                                                            match_threshold=0.7))

    assert isinstance(steam.store.provider, SteamAppListProvider)
    assert isinstance(local.store.provider, JsonCatalogProvider)
    assert local.matcher.threshold == 0.7
    assert "owners" in steam.available_fields
