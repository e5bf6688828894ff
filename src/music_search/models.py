"""
Normalized record shapes shared by all provider clients.

Provider clients translate their raw JSON into these dataclasses so that the
aggregator, merge helper and reconciliation engine never see provider-specific
payloads. Also hosts the explicit result/option types used instead of
exceptions for "failed" and "not found" outcomes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class MediaType(StrEnum):
    """Kind of entity being searched for or materialized."""

    ARTIST = "artist"
    ALBUM = "album"
    SONG = "song"


class ProviderName(StrEnum):
    """Supported external music metadata providers."""

    SPOTIFY = "spotify"
    DISCOGS = "discogs"


class ErrorKind(StrEnum):
    """Classification of provider failures."""

    MISSING_CREDENTIALS = "missing_credentials"
    AUTH = "auth"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful provider call."""

    value: T


@dataclass(frozen=True)
class ProviderError:
    """Failed provider call. Returned, never raised."""

    provider: str
    kind: ErrorKind
    message: str = ""


@dataclass(frozen=True)
class Found(Generic[T]):
    """Identity lookup hit."""

    node: T


@dataclass(frozen=True)
class NotFound:
    """Identity lookup miss."""

    name: str


@dataclass
class TrackInfo:
    """One entry of an album tracklist."""

    title: str
    position: str | None = None
    length: str | None = None
    id: str | None = None


@dataclass
class NormalizedResult:
    """Provider-agnostic search result. Identity is the (provider, id) pair."""

    id: str
    name: str
    provider: str
    image: str | None = None
    artist: str | None = None
    artist_id: str | None = None
    album: str | None = None
    album_id: str | None = None
    year: str | None = None
    release_date: str | None = None
    length: str | None = None
    duration_ms: int | None = None
    total_tracks: int | None = None
    genres: list[str] = field(default_factory=list)
    formats: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        """Return a plain mapping without unset (None) values."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class NormalizedDetails(NormalizedResult):
    """Detail lookup result: a superset of NormalizedResult."""

    profile: str | None = None
    members: list[str] = field(default_factory=list)
    spotify_url: str | None = None
    discogs_url: str | None = None
    label: str | None = None
    track_number: int | None = None
    tracklist: list[TrackInfo] = field(default_factory=list)

    @property
    def website(self) -> str | None:
        return self.spotify_url or self.discogs_url

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        if self.website:
            data["website"] = self.website
        return data

    def as_record(self) -> dict[str, Any]:
        """
        Flat mapping consumed by the reconciliation engine.

        Carries the `{provider}_id` provenance tag the same way a merged
        record does, so single-provider details can be materialized directly.
        """
        record = self.as_dict()
        record[f"{self.provider}_id"] = self.id
        return record


def format_length(duration_ms: int | None) -> str:
    """Render milliseconds as an "M:SS" display string (floor division)."""
    duration_ms = int(duration_ms or 0)
    minutes = duration_ms // 60000
    seconds = (duration_ms % 60000) // 1000
    return f"{minutes}:{seconds:02d}"


def parse_length(length: str) -> int:
    """
    Parse an "M:SS" string back into total seconds.

    Missing or non-numeric parts count as zero, so "3" is 180 seconds and
    "x:05" is 5 seconds.
    """
    parts = str(length).split(":")

    def _int(part: str) -> int:
        try:
            return int(part.strip())
        except ValueError:
            return 0

    minutes = _int(parts[0]) if len(parts) > 0 else 0
    seconds = _int(parts[1]) if len(parts) > 1 else 0
    return minutes * 60 + seconds


def iso_duration(total_seconds: int) -> str:
    """Render seconds as an ISO-8601 duration, e.g. PT3M5S."""
    return f"PT{total_seconds // 60}M{total_seconds % 60}S"


def year_from_date(release_date: str | None) -> str | None:
    """First four characters of a release date, or None when absent."""
    if not release_date:
        return None
    return release_date[:4]


## Tests


def test_format_length_floor_division():
    assert format_length(185000) == "3:05"
    assert format_length(185999) == "3:05"
    assert format_length(None) == "0:00"


def test_parse_length_lenient():
    assert parse_length("3:05") == 185
    assert parse_length("3") == 180
    assert parse_length("x:05") == 5


def test_details_record_carries_provider_id():
    details = NormalizedDetails(id="abc", name="X", provider="spotify", spotify_url="https://x")
    record = details.as_record()
    assert record["spotify_id"] == "abc"
    assert record["website"] == "https://x"
    assert "image" not in record
