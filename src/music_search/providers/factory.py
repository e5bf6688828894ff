"""
Factory functions for creating provider clients.

Provides a unified interface for getting provider clients from configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from music_search.models import ProviderName
from music_search.providers.base import ProviderClient

if TYPE_CHECKING:
    from music_search.config import Config


def get_provider(
    name: ProviderName | str,
    config: Config,
    *,
    client: httpx.Client | None = None,
) -> ProviderClient:
    """
    Get a provider client by name.

    Credentials are read from the config key/value store. A client whose
    credentials are missing is still returned; it reports "not configured" on
    every call instead of raising.

    Args:
        name: Provider name ("spotify" or "discogs")
        config: Loaded configuration
        client: Optional shared httpx client

    Returns:
        Configured ProviderClient instance

    Raises:
        ValueError: If the provider name is unknown
    """
    provider = ProviderName(name)
    settings = config.providers

    if provider == ProviderName.SPOTIFY:
        from music_search.providers.spotify import SpotifyClient

        return SpotifyClient(
            client_id=settings.get("spotify_client_id"),
            client_secret=settings.get("spotify_client_secret"),
            search_limit=settings.search_limit,
            timeout_s=settings.timeout_s,
            client=client,
        )

    from music_search.providers.discogs import DiscogsClient

    return DiscogsClient(
        api_key=settings.get("discogs_api_key"),
        api_secret=settings.get("discogs_api_secret"),
        search_limit=settings.search_limit,
        rate_limit_per_min=settings.discogs_rate_limit,
        user_agent=settings.user_agent,
        timeout_s=settings.timeout_s,
        client=client,
    )


def providers_from_config(
    config: Config,
    *,
    client: httpx.Client | None = None,
) -> dict[str, ProviderClient]:
    """
    Build every supported provider client, keyed by provider name.

    Iteration order is the order results are presented in (Spotify, then Discogs).
    """
    return {provider.value: get_provider(provider, config, client=client) for provider in ProviderName}


## Tests


def test_get_provider_unknown_name():
    from music_search.config import Config

    try:
        get_provider("lastfm", Config())
        raise AssertionError("Should have raised ValueError")
    except ValueError as e:
        assert "lastfm" in str(e)


def test_providers_from_config_order():
    from music_search.config import Config

    providers = providers_from_config(Config())
    assert list(providers) == ["spotify", "discogs"]
    for provider in providers.values():
        provider.close()
