"""
Discogs API provider client.

Searches the Discogs database and hydrates artist/release details. Discogs
authenticates with a consumer key/secret pair passed as query parameters on
every call; there is no token exchange.
"""

from __future__ import annotations

import os
import time
from typing import Any

import httpx

from music_search.models import (
    ErrorKind,
    MediaType,
    NormalizedDetails,
    NormalizedResult,
    Ok,
    ProviderError,
    ProviderName,
    TrackInfo,
)
from music_search.providers.base import ProviderClient

DISCOGS_SEARCH_TYPES = {
    MediaType.ARTIST: "artist",
    MediaType.ALBUM: "release",
    MediaType.SONG: "release",
}

DISCOGS_DETAIL_ENDPOINTS = {
    MediaType.ARTIST: "artists",
    MediaType.ALBUM: "releases",
    MediaType.SONG: "releases",
}


def _artist_text(item: dict[str, Any]) -> str:
    """Artist display name from a search item; falls back to "Artist - Title" titles."""
    artist = item.get("artist")
    if artist:
        return ", ".join(artist) if isinstance(artist, list) else str(artist)
    title = item.get("title") or ""
    if " - " in title:
        return title.split(" - ", 1)[0]
    return "Unknown"


def _names(entries: list[Any] | None) -> list[str]:
    """Names from a list of Discogs objects (or plain strings)."""
    names = []
    for entry in entries or []:
        name = entry.get("name") if isinstance(entry, dict) else entry
        if name:
            names.append(str(name))
    return names


def _first_image(data: dict[str, Any]) -> str | None:
    images = data.get("images") or []
    return images[0].get("uri") if images else None


class DiscogsClient(ProviderClient):
    """
    Discogs API client for music metadata.

    Rate limits: 60 req/min (authenticated). The limiter is a sliding window
    kept per client instance.
    """

    name = ProviderName.DISCOGS.value

    BASE_URL = "https://api.discogs.com"
    USER_AGENT = "MusicSearch/1.0"

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        search_limit: int = 10,
        rate_limit_per_min: int = 60,
        user_agent: str | None = None,
        timeout_s: float = 10.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize Discogs client.

        Args:
            api_key: Discogs consumer key (env: DISCOGS_API_KEY)
            api_secret: Discogs consumer secret (env: DISCOGS_API_SECRET)
            search_limit: Results per search page
            rate_limit_per_min: Max requests per minute (0 disables limiting)
            user_agent: User-Agent header (Discogs rejects anonymous agents)
            timeout_s: Per-request timeout in seconds
            client: Optional pre-built httpx client
        """
        super().__init__(timeout_s=timeout_s, client=client)
        self.api_key = api_key or os.getenv("DISCOGS_API_KEY")
        self.api_secret = api_secret or os.getenv("DISCOGS_API_SECRET")
        self.search_limit = search_limit
        self.rate_limit_per_min = rate_limit_per_min
        self.user_agent = user_agent or self.USER_AGENT
        self._request_times: list[float] = []

    def has_credentials(self) -> bool:
        return bool(self.api_key) and bool(self.api_secret)

    def _rate_limit(self) -> None:
        """Enforce rate limiting using sliding window."""
        if self.rate_limit_per_min <= 0:
            return

        now = time.time()
        window_start = now - 60.0

        self._request_times = [t for t in self._request_times if t > window_start]

        if len(self._request_times) >= self.rate_limit_per_min:
            # Wait until the oldest request falls outside the window
            oldest = self._request_times[0]
            wait_time = 60.0 - (now - oldest) + 0.1
            if wait_time > 0:
                time.sleep(wait_time)

        self._request_times.append(time.time())

    def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Ok[dict[str, Any]] | ProviderError:
        """Make rate-limited, key/secret-authenticated request to Discogs API."""
        self._rate_limit()
        query = dict(params or {})
        query["key"] = self.api_key
        query["secret"] = self.api_secret
        return self._get_json(
            f"{self.BASE_URL}/{endpoint}",
            params=query,
            headers={"User-Agent": self.user_agent},
        )

    def _search(self, query: str, media_type: MediaType) -> Ok[list[NormalizedResult]] | ProviderError:
        result = self._request(
            "database/search",
            {
                "q": query,
                "type": DISCOGS_SEARCH_TYPES[media_type],
                "per_page": self.search_limit,
            },
        )
        if isinstance(result, ProviderError):
            return result

        items = result.value.get("results") or []
        return Ok([self._format_result(item, media_type) for item in items if item])

    def _details(self, item_id: str, media_type: MediaType) -> Ok[NormalizedDetails] | ProviderError:
        result = self._request(f"{DISCOGS_DETAIL_ENDPOINTS[media_type]}/{item_id}")
        if isinstance(result, ProviderError):
            return result
        return Ok(self._format_details(result.value, media_type))

    def find_artist_members(self, name: str) -> Ok[list[str]] | ProviderError:
        """
        Look up band members for an artist name.

        Searches artists, takes the first result whose title matches `name`
        case-insensitively and returns the member names from its details.

        Args:
            name: Artist/band name as stored in the content repository

        Returns:
            Ok(list of member names, possibly empty) or ProviderError
        """
        result = self._guarded("members", self._find_members, name, MediaType.ARTIST)
        if isinstance(result, ProviderError):
            self._report("members", result)
        return result

    def _find_members(self, name: str, media_type: MediaType) -> Ok[list[str]] | ProviderError:
        found = self._search(name, media_type)
        if isinstance(found, ProviderError):
            return found

        wanted = name.casefold().strip()
        match = next((r for r in found.value if r.name.casefold().strip() == wanted), None)
        if match is None:
            return self._error(ErrorKind.NOT_FOUND, f"No Discogs artist named {name!r}")

        details = self._details(match.id, media_type)
        if isinstance(details, ProviderError):
            return details
        return Ok(details.value.members)

    def _format_result(self, item: dict[str, Any], media_type: MediaType) -> NormalizedResult:
        """Format one search item."""
        image = item.get("cover_image") or item.get("thumb") or None
        year = str(item["year"]) if item.get("year") else None

        if media_type == MediaType.ARTIST:
            return NormalizedResult(
                id=str(item["id"]),
                name=item.get("title") or "Unknown",
                provider=self.name,
                image=image,
            )

        title = item.get("title") or "Unknown"
        artist = _artist_text(item)
        if not item.get("artist") and title.startswith(f"{artist} - "):
            title = title[len(artist) + 3 :]

        if media_type == MediaType.ALBUM:
            return NormalizedResult(
                id=str(item["id"]),
                name=title,
                provider=self.name,
                artist=artist,
                image=image,
                year=year,
                genres=list(item.get("genre") or []) + list(item.get("style") or []),
                formats=list(item.get("format") or []),
                labels=list(item.get("label") or []),
            )

        return NormalizedResult(
            id=str(item["id"]),
            name=title,
            provider=self.name,
            artist=artist,
            image=image,
            year=year,
        )

    def _format_details(self, data: dict[str, Any], media_type: MediaType) -> NormalizedDetails:
        """Format a detail payload."""
        genres = list(data.get("genres") or []) + list(data.get("styles") or [])

        if media_type == MediaType.ARTIST:
            return NormalizedDetails(
                id=str(data["id"]),
                name=data.get("name") or "Unknown",
                provider=self.name,
                image=_first_image(data),
                profile=data.get("profile") or "",
                members=_names(data.get("members")),
                genres=genres,
                discogs_url=data.get("uri"),
            )

        return NormalizedDetails(
            id=str(data["id"]),
            name=data.get("title") or "Unknown",
            provider=self.name,
            artist=data.get("artists_sort") or "Unknown",
            image=_first_image(data),
            year=str(data["year"]) if data.get("year") else None,
            release_date=data.get("released"),
            genres=genres,
            labels=_names(data.get("labels")),
            formats=_names(data.get("formats")),
            tracklist=[
                TrackInfo(
                    title=track.get("title", ""),
                    position=track.get("position") or None,
                    length=track.get("duration") or None,
                )
                for track in data.get("tracklist") or []
                if track.get("type_", "track") == "track"
            ],
            discogs_url=data.get("uri"),
        )


## Tests


def test_discogs_artist_text_fallbacks():
    assert _artist_text({"artist": ["A", "B"]}) == "A, B"
    assert _artist_text({"title": "ABBA - Arrival"}) == "ABBA"
    assert _artist_text({"title": "Arrival"}) == "Unknown"


def test_discogs_rate_limiting():
    """Test rate limiting bookkeeping."""
    client = DiscogsClient(api_key="k", api_secret="s", rate_limit_per_min=5)

    for _ in range(4):
        client._request_times.append(time.time())

    client._rate_limit()
    assert len(client._request_times) == 5
    client.close()
