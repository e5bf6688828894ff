"""
Provider clients for external music metadata APIs.

Supports two providers:
- Spotify: client-credentials bearer token
- Discogs: consumer key/secret query parameters
"""

from __future__ import annotations

from music_search.providers.base import ProviderClient
from music_search.providers.discogs import DiscogsClient
from music_search.providers.factory import get_provider, providers_from_config
from music_search.providers.spotify import AccessToken, SpotifyClient

__all__ = [
    "ProviderClient",
    "SpotifyClient",
    "DiscogsClient",
    "AccessToken",
    "get_provider",
    "providers_from_config",
]
