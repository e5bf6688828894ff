"""Pytest configuration and shared fixtures for music-search tests."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import pytest

from music_search.models import (
    ErrorKind,
    MediaType,
    NormalizedDetails,
    NormalizedResult,
    Ok,
    ProviderError,
)
from music_search.reconcile import ContentReconciler
from music_search.repository import SqliteContentRepository

# =============================================================================
# Content Fixtures
# =============================================================================


@pytest.fixture
def repo(tmp_path):
    """Provide a temporary SQLite content repository."""
    return SqliteContentRepository(tmp_path / "content.sqlite")


@pytest.fixture
def media_store(repo, tmp_path):
    """Provide a MediaStore writing into a temporary directory."""
    from music_search.media import MediaStore

    store = MediaStore(repo, tmp_path / "music_images", timeout_s=2.0)
    yield store
    store.close()


@pytest.fixture
def reconciler(repo):
    """Reconciler without images or member lookup."""
    return ContentReconciler(repo)


class FakeMemberLookup:
    """Member lookup returning canned members and recording every call."""

    def __init__(self, bands: Mapping[str, list[str]] | None = None, fail: bool = False):
        self.bands = dict(bands or {})
        self.fail = fail
        self.calls: list[str] = []

    def __call__(self, name: str) -> list[str] | None:
        self.calls.append(name)
        if self.fail:
            raise RuntimeError("lookup unavailable")
        return self.bands.get(name)


@pytest.fixture
def member_lookup():
    return FakeMemberLookup()


# =============================================================================
# Provider Fixtures
# =============================================================================


class FakeProvider:
    """In-memory provider with the ProviderClient boundary contract."""

    def __init__(
        self,
        name: str,
        results: Iterable[NormalizedResult] = (),
        details: Mapping[str, NormalizedDetails] | None = None,
        members: Mapping[str, list[str]] | None = None,
        raises: bool = False,
    ):
        self.name = name
        self.results = list(results)
        self.details = dict(details or {})
        self.members = dict(members or {})
        self.raises = raises
        self.closed = False
        self.searches: list[tuple[str, Any]] = []

    def search(self, query: str, media_type: MediaType | str) -> list[NormalizedResult]:
        self.searches.append((query, media_type))
        if self.raises:
            raise RuntimeError(f"{self.name} exploded")
        return list(self.results)

    def get_details(self, item_id: str, media_type: MediaType | str) -> NormalizedDetails | None:
        if self.raises:
            raise RuntimeError(f"{self.name} exploded")
        return self.details.get(item_id)

    def find_artist_members(self, name: str) -> Ok[list[str]] | ProviderError:
        if self.raises:
            raise RuntimeError(f"{self.name} exploded")
        if name not in self.members:
            return ProviderError(provider=self.name, kind=ErrorKind.NOT_FOUND, message=name)
        return Ok(self.members[name])

    def close(self) -> None:
        self.closed = True


def spotify_song(item_id: str = "sp-song-1", **overrides: Any) -> NormalizedDetails:
    """Spotify-shaped song details."""
    values: dict[str, Any] = {
        "id": item_id,
        "name": "Dancing Queen",
        "provider": "spotify",
        "artist": "ABBA",
        "artist_id": "sp-abba",
        "album": "Arrival",
        "length": "3:50",
        "duration_ms": 230000,
        "spotify_url": f"https://open.spotify.com/track/{item_id}",
    }
    values.update(overrides)
    return NormalizedDetails(**values)


def discogs_artist(item_id: str = "69866", **overrides: Any) -> NormalizedDetails:
    """Discogs-shaped artist details."""
    values: dict[str, Any] = {
        "id": item_id,
        "name": "ABBA",
        "provider": "discogs",
        "profile": "Swedish pop group.",
        "members": ["Agnetha Fältskog", "Björn Ulvaeus", "Benny Andersson", "Anni-Frid Lyngstad"],
        "genres": ["Pop"],
        "discogs_url": "https://www.discogs.com/artist/69866-ABBA",
    }
    values.update(overrides)
    return NormalizedDetails(**values)
