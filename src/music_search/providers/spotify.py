"""
Spotify Web API provider client.

Searches artists, albums and tracks with the client credentials flow and
normalizes payloads into NormalizedResult/NormalizedDetails.
"""

from __future__ import annotations

import base64
import os
import time
from dataclasses import dataclass
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
    format_length,
    year_from_date,
)
from music_search.providers.base import ProviderClient

# Refresh this long before Spotify's stated expiry
TOKEN_EXPIRY_MARGIN_S = 60

SPOTIFY_TYPES = {
    MediaType.ARTIST: "artist",
    MediaType.ALBUM: "album",
    MediaType.SONG: "track",
}


@dataclass(frozen=True)
class AccessToken:
    """Bearer token with its absolute expiry time (epoch seconds)."""

    value: str
    expires_at: float

    def is_valid(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) < self.expires_at


def _first_image(item: dict[str, Any]) -> str | None:
    images = item.get("images") or []
    return images[0].get("url") if images else None


def _first_artist(item: dict[str, Any]) -> tuple[str, str | None]:
    artists = item.get("artists") or []
    if not artists:
        return "Unknown", None
    return artists[0].get("name", "Unknown"), artists[0].get("id")


class SpotifyClient(ProviderClient):
    """
    Spotify Web API client.

    Uses client credentials flow for authentication. The token is held as an
    immutable AccessToken and swapped for a new one once it expires.
    """

    name = ProviderName.SPOTIFY.value

    BASE_URL = "https://api.spotify.com/v1"
    AUTH_URL = "https://accounts.spotify.com/api/token"

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        search_limit: int = 10,
        timeout_s: float = 10.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize Spotify client with client credentials flow.

        Args:
            client_id: Spotify client ID (env: SPOTIFY_CLIENT_ID)
            client_secret: Spotify client secret (env: SPOTIFY_CLIENT_SECRET)
            search_limit: Max results per search
            timeout_s: Per-request timeout in seconds
            client: Optional pre-built httpx client
        """
        super().__init__(timeout_s=timeout_s, client=client)
        self.client_id = client_id or os.getenv("SPOTIFY_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("SPOTIFY_CLIENT_SECRET")
        self.search_limit = search_limit
        self._token: AccessToken | None = None

    def has_credentials(self) -> bool:
        return bool(self.client_id) and bool(self.client_secret)

    def _get_access_token(self) -> Ok[str] | ProviderError:
        """
        Get access token using client credentials flow.

        Reuses the current token until it expires.
        """
        token = self._token
        if token and token.is_valid():
            return Ok(token.value)

        credentials = f"{self.client_id}:{self.client_secret}"
        b64_credentials = base64.b64encode(credentials.encode()).decode()

        result = self._send(
            "POST",
            self.AUTH_URL,
            headers={"Authorization": f"Basic {b64_credentials}"},
            data={"grant_type": "client_credentials"},
        )
        if isinstance(result, ProviderError):
            if result.kind == ErrorKind.NOT_FOUND:
                return self._error(ErrorKind.AUTH, result.message)
            return result

        value = result.value.get("access_token")
        if not value:
            return self._error(ErrorKind.AUTH, "Token response did not include access_token")

        expires_in = result.value.get("expires_in", 3600)
        self._token = AccessToken(
            value=value,
            expires_at=time.time() + float(expires_in) - TOKEN_EXPIRY_MARGIN_S,
        )
        return Ok(value)

    def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Ok[dict[str, Any]] | ProviderError:
        """Make authenticated request to Spotify API."""
        token = self._get_access_token()
        if isinstance(token, ProviderError):
            return token

        result = self._get_json(
            f"{self.BASE_URL}/{endpoint}",
            params=params,
            headers={"Authorization": f"Bearer {token.value}"},
        )
        if isinstance(result, ProviderError) and result.kind == ErrorKind.AUTH:
            # Token was rejected; force a fresh exchange next time
            self._token = None
        return result

    def _search(self, query: str, media_type: MediaType) -> Ok[list[NormalizedResult]] | ProviderError:
        spotify_type = SPOTIFY_TYPES[media_type]
        result = self._request(
            "search",
            {"q": query, "type": spotify_type, "limit": self.search_limit},
        )
        if isinstance(result, ProviderError):
            return result

        items = result.value.get(f"{spotify_type}s", {}).get("items", [])
        return Ok([self._format_result(item, media_type) for item in items if item])

    def _details(self, item_id: str, media_type: MediaType) -> Ok[NormalizedDetails] | ProviderError:
        result = self._request(f"{SPOTIFY_TYPES[media_type]}s/{item_id}")
        if isinstance(result, ProviderError):
            return result
        return Ok(self._format_details(result.value, media_type))

    def _format_result(self, item: dict[str, Any], media_type: MediaType) -> NormalizedResult:
        """Format one search item."""
        if media_type == MediaType.ARTIST:
            return NormalizedResult(
                id=item["id"],
                name=item.get("name", "Unknown"),
                provider=self.name,
                image=_first_image(item),
                genres=item.get("genres") or [],
            )

        artist, artist_id = _first_artist(item)

        if media_type == MediaType.ALBUM:
            release_date = item.get("release_date")
            return NormalizedResult(
                id=item["id"],
                name=item.get("name", "Unknown"),
                provider=self.name,
                artist=artist,
                artist_id=artist_id,
                image=_first_image(item),
                release_date=release_date,
                year=year_from_date(release_date),
                total_tracks=item.get("total_tracks", 0),
            )

        album = item.get("album") or {}
        duration_ms = item.get("duration_ms") or 0
        return NormalizedResult(
            id=item["id"],
            name=item.get("name", "Unknown"),
            provider=self.name,
            artist=artist,
            artist_id=artist_id,
            album=album.get("name"),
            album_id=album.get("id"),
            image=_first_image(album),
            length=format_length(duration_ms),
            duration_ms=duration_ms,
        )

    def _format_details(self, data: dict[str, Any], media_type: MediaType) -> NormalizedDetails:
        """Format a detail payload."""
        spotify_url = (data.get("external_urls") or {}).get("spotify")

        if media_type == MediaType.ARTIST:
            return NormalizedDetails(
                id=data["id"],
                name=data.get("name", "Unknown"),
                provider=self.name,
                image=_first_image(data),
                genres=data.get("genres") or [],
                spotify_url=spotify_url,
            )

        artist, artist_id = _first_artist(data)

        if media_type == MediaType.ALBUM:
            release_date = data.get("release_date")
            return NormalizedDetails(
                id=data["id"],
                name=data.get("name", "Unknown"),
                provider=self.name,
                artist=artist,
                artist_id=artist_id,
                image=_first_image(data),
                release_date=release_date,
                year=year_from_date(release_date),
                total_tracks=data.get("total_tracks", 0),
                genres=data.get("genres") or [],
                label=data.get("label"),
                labels=[data["label"]] if data.get("label") else [],
                spotify_url=spotify_url,
                tracklist=self._format_tracks((data.get("tracks") or {}).get("items", [])),
            )

        album = data.get("album") or {}
        duration_ms = data.get("duration_ms") or 0
        return NormalizedDetails(
            id=data["id"],
            name=data.get("name", "Unknown"),
            provider=self.name,
            artist=artist,
            artist_id=artist_id,
            album=album.get("name"),
            album_id=album.get("id"),
            image=_first_image(album),
            length=format_length(duration_ms),
            duration_ms=duration_ms,
            track_number=data.get("track_number"),
            spotify_url=spotify_url,
        )

    def _format_tracks(self, tracks: list[dict[str, Any]]) -> list[TrackInfo]:
        return [
            TrackInfo(
                id=track.get("id"),
                title=track.get("name", ""),
                position=str(track["track_number"]) if track.get("track_number") else None,
                length=format_length(track.get("duration_ms")),
            )
            for track in tracks
        ]


## Tests


def test_access_token_validity():
    token = AccessToken(value="abc", expires_at=1000.0)
    assert token.is_valid(now=999.0)
    assert not token.is_valid(now=1000.0)


def test_spotify_client_without_credentials_returns_empty(monkeypatch):
    monkeypatch.delenv("SPOTIFY_CLIENT_ID", raising=False)
    monkeypatch.delenv("SPOTIFY_CLIENT_SECRET", raising=False)
    with SpotifyClient() as client:
        assert client.search("abba", "artist") == []
        assert client.get_details("abc", "artist") is None
