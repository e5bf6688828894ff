"""
Aggregator over all configured provider clients.

Fans a search out to every provider and collects one result list per provider,
so a slow or failing provider never blocks or corrupts another's slot.
Detail lookups are routed to exactly one provider by name.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from music_search.models import (
    MediaType,
    NormalizedDetails,
    NormalizedResult,
    ProviderError,
    ProviderName,
)
from music_search.providers.base import ProviderClient

log = logging.getLogger(__name__)


class Aggregator:
    """
    Multi-provider search and detail routing.

    Provides:
    - search_all(query, type): one result list per provider, empty on failure
    - asearch_all(query, type): asyncio variant with the same contract
    - get_details(provider, id, type): single-provider routing
    - find_band_members(name): Discogs-backed member lookup
    """

    def __init__(self, providers: Mapping[str, ProviderClient], parallel: bool = False):
        """
        Args:
            providers: Provider clients keyed by provider name, in display order
            parallel: Fan searches out on a thread pool instead of sequentially
        """
        self.providers = dict(providers)
        self.parallel = parallel

    def _search_one(self, name: str, query: str, media_type: MediaType | str) -> list[NormalizedResult]:
        try:
            return self.providers[name].search(query, media_type)
        except Exception as e:
            # Clients should never raise; keep the other slots intact if one does
            log.error(f"{name} search error: {e}")
            return []

    def search_all(self, query: str, media_type: MediaType | str = MediaType.ARTIST) -> dict[str, list[NormalizedResult]]:
        """
        Search across every configured provider.

        Args:
            query: The search query
            media_type: artist, album or song

        Returns:
            Mapping of provider name to its result list (empty on failure)
        """
        names = list(self.providers)

        if self.parallel and len(names) > 1:
            with ThreadPoolExecutor(max_workers=len(names)) as pool:
                futures = {name: pool.submit(self._search_one, name, query, media_type) for name in names}
                results = {name: future.result() for name, future in futures.items()}
        else:
            results = {name: self._search_one(name, query, media_type) for name in names}

        log.debug(
            "Search %r (%s): %s",
            query,
            media_type,
            {name: len(items) for name, items in results.items()},
        )
        return results

    async def asearch_all(
        self, query: str, media_type: MediaType | str = MediaType.ARTIST
    ) -> dict[str, list[NormalizedResult]]:
        """
        Async version of search_all with parallel provider calls.

        Each provider call runs in a worker thread; exceptions are collected
        per provider via asyncio.gather(return_exceptions=True).
        """
        names = list(self.providers)
        outcomes: list[Any] = await asyncio.gather(
            *(asyncio.to_thread(self.providers[name].search, query, media_type) for name in names),
            return_exceptions=True,
        )

        results: dict[str, list[NormalizedResult]] = {}
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                log.error(f"{name} search error: {outcome}")
                results[name] = []
            else:
                results[name] = outcome
        return results

    def get_details(
        self, provider: str, item_id: str, media_type: MediaType | str
    ) -> NormalizedDetails | None:
        """
        Get detailed information from a specific provider.

        Args:
            provider: Provider name ("spotify" or "discogs")
            item_id: Provider-specific item ID
            media_type: artist, album or song

        Returns:
            Normalized details, or None for unknown providers and failures
        """
        client = self.providers.get(provider)
        if client is None:
            log.warning(f"Unknown provider requested: {provider!r}")
            return None

        try:
            return client.get_details(item_id, media_type)
        except Exception as e:
            log.error(f"{provider} details error: {e}")
            return None

    def find_band_members(self, name: str) -> list[str] | None:
        """
        Ask Discogs whether `name` is a band with known members.

        Any provider error is swallowed (logged) and reported as None.
        """
        client = self.providers.get(ProviderName.DISCOGS.value)
        lookup = getattr(client, "find_artist_members", None)
        if lookup is None:
            return None

        try:
            result = lookup(name)
        except Exception as e:
            log.warning(f"Band member lookup for {name!r} failed: {e}")
            return None

        if isinstance(result, ProviderError):
            return None
        return result.value

    def close(self) -> None:
        """Close all provider clients."""
        for client in self.providers.values():
            client.close()

    def __enter__(self) -> Aggregator:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
