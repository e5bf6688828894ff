"""
Reconciliation of normalized/merged records into content nodes.

Identity policy: artists and bands are matched by exact title within their
bundle, never by provider ID. Two distinct real-world artists sharing a name
collide on purpose; provider IDs are stored but not used as keys.

Per-title state machine for artist-like content:

    absent -> artist      (upsert_artist, lazy creation from song/album references)
    absent -> band        (upsert_band)
    artist -> band        (upsert_band + adopt_artist; one-way, no band -> artist)

Albums and songs are always created fresh; they are not deduplicated.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from music_search.media import MediaStore
from music_search.merge import is_empty
from music_search.models import Found, MediaType, NotFound, iso_duration, parse_length
from music_search.repository import ContentRepository, Node
from music_search.safe_logging import redact_dict
from music_search.taxonomy import GENRE_VOCABULARY, get_or_create_terms

log = logging.getLogger(__name__)

ARTIST = "artist"
BAND = "band"
ALBUM = "album"
SONG = "song"

# Provider fallback placeholder, not a real identity
UNKNOWN_ARTIST = "Unknown"

TEXT_FORMAT = "basic_html"

# Single-valued references to an artist-like node: (bundle, field)
ARTIST_REFERENCES = (
    (SONG, "field_artist_song"),
    (ALBUM, "field_artist"),
)

# Artist data carried over to the band that supersedes it, when the band lacks it
ARTIST_TO_BAND_FIELDS = {
    "field_spotify_id": "field_spotify_id",
    "field_discogs_id": "field_discogs_id",
    "field_artist_image": "field_band_logo",
    "field_artist_description_long": "field_band_description",
    "field_website": "field_website",
}

MemberLookup = Callable[[str], list[str] | None]


def _text(value: Any) -> str | None:
    if is_empty(value) or not isinstance(value, str | int | float):
        return None
    return str(value).strip()


def _title(record: Mapping[str, Any]) -> str:
    title = _text(record.get("name")) or _text(record.get("title"))
    if not title:
        raise ValueError("Record has no name")
    return title


def _members(record: Mapping[str, Any]) -> list[str]:
    members = record.get("members") or []
    if isinstance(members, str):
        members = [members]
    names = []
    for member in members:
        name = member.get("name") if isinstance(member, Mapping) else member
        if (text := _text(name)) and text not in names:
            names.append(text)
    return names


def _website(record: Mapping[str, Any]) -> dict[str, str] | None:
    uri = _text(record.get("website")) or _text(record.get("spotify_url")) or _text(record.get("discogs_url"))
    if not uri:
        return None
    if "spotify.com" in uri:
        title = "Spotify Profile"
    elif "discogs.com" in uri:
        title = "Discogs Profile"
    else:
        title = "Website"
    return {"uri": uri, "title": title}


def _description(record: Mapping[str, Any]) -> dict[str, str] | None:
    text = _text(record.get("profile")) or _text(record.get("description"))
    if not text:
        return None
    return {"value": text, "format": TEXT_FORMAT}


class ContentReconciler:
    """
    Turns records into persisted content.

    `materialize` is the only public entry point that never raises; the
    upsert_* methods raise on repository failures and are composed by it.
    """

    def __init__(
        self,
        repository: ContentRepository,
        media: MediaStore | None = None,
        member_lookup: MemberLookup | None = None,
        genre_vocabulary: str = GENRE_VOCABULARY,
    ):
        """
        Args:
            repository: Content repository to write through
            media: Image materializer; images are skipped when None
            member_lookup: Name -> band member names (or None), used by the
                speculative artist -> band promotion
            genre_vocabulary: Vocabulary for genre terms
        """
        self.repository = repository
        self.media = media
        self.member_lookup = member_lookup
        self.genre_vocabulary = genre_vocabulary

    # --- Public entry point ---

    def materialize(self, record: Mapping[str, Any], media_type: MediaType | str) -> Node | None:
        """
        Create or update content for a record.

        Args:
            record: Flat record (merged record or single-provider details)
            media_type: artist, album or song

        Returns:
            The created/updated node, or None on any failure (logged)
        """
        log.debug(
            "Raw record for %s: %s",
            media_type,
            json.dumps(redact_dict(record), indent=2, default=str),
        )

        try:
            kind = MediaType(media_type)
            if kind == MediaType.ARTIST:
                node = self._materialize_artist(record)
            elif kind == MediaType.ALBUM:
                node = self.upsert_album(record)
            else:
                node = self.upsert_song(record)
        except Exception as e:
            log.error(f"Error creating content: {e}")
            return None

        log.info(f"Saved {node.bundle}: {node.title} (nid: {node.id})")
        return node

    def _materialize_artist(self, record: Mapping[str, Any]) -> Node:
        if _members(record):
            return self.upsert_band(record)
        return self.upsert_artist(record)

    # --- Identity ---

    def resolve_identity(self, name: str) -> Found[Node] | NotFound:
        """
        Pure name lookup: band first, then artist. No network, no writes.
        """
        for bundle in (BAND, ARTIST):
            nodes = self.repository.load_nodes(bundle, title=name)
            if nodes:
                return Found(nodes[0])
        return NotFound(name)

    def maybe_promote_to_band(self, node: Node) -> Node:
        """
        Speculatively promote an artist to a band.

        Asks the member lookup whether the artist's name is a band; when it
        reports members the artist is converted (see upsert_band). Any lookup
        error is swallowed and the artist returned unchanged.
        """
        if node.bundle != ARTIST or self.member_lookup is None:
            return node

        try:
            members = self.member_lookup(node.title)
        except Exception as e:
            log.warning(f"Band check for {node.title!r} failed, keeping artist: {e}")
            return node

        if not members:
            return node

        log.info(f"Artist {node.title!r} has members {members}; promoting to band")
        return self.upsert_band({"name": node.title, "members": members})

    def resolve_artist(self, name: str, record: Mapping[str, Any], promote: bool = False) -> Node:
        """
        Resolve an artist reference by name, creating the artist lazily.

        Args:
            name: Artist name from the record
            record: Enclosing record (supplies artist provider IDs on creation)
            promote: Run the speculative band check on an existing artist
        """
        match self.resolve_identity(name):
            case Found(node=node):
                log.info(f"Found existing {node.bundle}: {name} (nid: {node.id})")
                if promote:
                    return self.maybe_promote_to_band(node)
                return node
            case NotFound():
                pass

        values: dict[str, Any] = {}
        if spotify_artist_id := _text(record.get("artist_id")):
            values["field_spotify_id"] = spotify_artist_id
        if discogs_artist_id := _text(record.get("discogs_artist_id")):
            values["field_discogs_id"] = discogs_artist_id

        node = self.repository.create_node(ARTIST, name, values)
        log.info(f"Created new artist: {name} (nid: {node.id})")
        return node

    # --- Upserts ---

    def upsert_artist(self, record: Mapping[str, Any]) -> Node:
        """
        Create an artist, or merge non-empty fields into the same-titled one.

        Fields without a new value are left untouched; nothing is deleted.
        A title that is already a band updates the band instead.
        """
        title = _title(record)

        # A known band is terminal: never fall back to an artist for its title
        match self.resolve_identity(title):
            case Found(node=node) if node.bundle == BAND:
                return self.upsert_band(record)

        values = self._provider_values(record)

        if genres := record.get("genres"):
            values["field_music_genre_artist"] = self._terms(genres)
        if image := _text(record.get("image")):
            if (media_id := self._image(image, title)) is not None:
                values["field_artist_image"] = media_id
        if description := _description(record):
            values["field_artist_description_long"] = description
        if website := _website(record):
            values["field_website"] = website

        return self._upsert(ARTIST, title, values)

    def upsert_band(self, record: Mapping[str, Any]) -> Node:
        """
        Create or partially update a band, resolve its members, then adopt
        any same-titled artist.
        """
        title = _title(record)
        values = self._provider_values(record)

        if image := _text(record.get("image")):
            if (media_id := self._image(image, title)) is not None:
                values["field_band_logo"] = media_id
        if description := _description(record):
            values["field_band_description"] = description
        if website := _website(record):
            values["field_website"] = website

        member_ids: list[int] = []
        for member in _members(record):
            if member == title:
                continue
            member_node = self.resolve_artist(member, {})
            if member_node.id not in member_ids:
                member_ids.append(member_node.id)
        if member_ids:
            values["field_band_members"] = member_ids

        band = self._upsert(BAND, title, values)
        self.adopt_artist(band)
        return band

    def upsert_album(self, record: Mapping[str, Any]) -> Node:
        """Create an album node (albums are not deduplicated)."""
        title = _title(record)
        values = self._provider_values(record)

        artist = _text(record.get("artist"))
        if artist and artist != UNKNOWN_ARTIST:
            values["field_artist"] = self.resolve_artist(artist, record).id
        if year := _text(record.get("year")):
            values["field_release_year"] = year
        if genres := record.get("genres"):
            values["field_music_genre"] = self._terms(genres)
        if image := _text(record.get("image")):
            if (media_id := self._image(image, title)) is not None:
                values["field_album_cover"] = media_id

        return self.repository.create_node(ALBUM, title, values)

    def upsert_song(self, record: Mapping[str, Any]) -> Node:
        """
        Create a song node (songs are not deduplicated).

        The artist is resolved by name with the speculative band check, so a
        song submission can convert an existing artist into a band.
        """
        title = _title(record)
        values = self._provider_values(record)

        artist = _text(record.get("artist"))
        if artist and artist != UNKNOWN_ARTIST:
            values["field_artist_song"] = self.resolve_artist(artist, record, promote=True).id
        if album := _text(record.get("album")):
            values["field_album"] = album
        if genres := record.get("genres"):
            values["field_music_genre"] = self._terms(genres)
        if length := _text(record.get("length")):
            seconds = parse_length(length)
            values["field_song_duration"] = {"duration": iso_duration(seconds), "seconds": seconds}
            log.info(f"Song duration: {length} -> {seconds // 60} minutes {seconds % 60} seconds")

        return self.repository.create_node(SONG, title, values)

    # --- Reclassification ---

    def adopt_artist(self, band: Node) -> bool:
        """
        Convert the same-titled artist (if any) into `band`.

        Repoints every reference to the artist at the band and deletes the
        artist. A failed repoint is logged and the artist is kept so no
        reference dangles; the band itself is never rolled back.

        Returns:
            True if an artist was absorbed and deleted
        """
        artists = self.repository.load_nodes(ARTIST, title=band.title)
        if not artists:
            return False

        absorbed = False
        for artist in artists:
            self._carry_over(artist, band)
            if self._repoint_references(artist.id, band.id):
                self.repository.delete_node(artist.id)
                log.info(f"Converted artist {artist.title!r} (nid: {artist.id}) to band (nid: {band.id})")
                absorbed = True
            else:
                log.error(f"Kept artist {artist.title!r} (nid: {artist.id}): reference rewiring failed")
        return absorbed

    def _carry_over(self, artist: Node, band: Node) -> None:
        changed = False
        for artist_field, band_field in ARTIST_TO_BAND_FIELDS.items():
            value = artist.get(artist_field)
            if not is_empty(value) and is_empty(band.get(band_field)):
                band.fields[band_field] = value
                changed = True
        if changed:
            self.repository.update_node(band)

    def _repoint_references(self, old_id: int, new_id: int) -> bool:
        ok = True

        for bundle, field_name in ARTIST_REFERENCES:
            for node in self.repository.load_nodes(bundle, **{field_name: old_id}):
                node.fields[field_name] = new_id
                ok = self._save_rewired(node, old_id, new_id) and ok

        for band in self.repository.load_nodes(BAND):
            members = band.get("field_band_members") or []
            if old_id in members:
                band.fields["field_band_members"] = list(dict.fromkeys(new_id if m == old_id else m for m in members))
                ok = self._save_rewired(band, old_id, new_id) and ok

        return ok

    def _save_rewired(self, node: Node, old_id: int, new_id: int) -> bool:
        try:
            self.repository.update_node(node)
        except Exception as e:
            log.error(f"Failed to repoint {node.bundle} {node.id} from {old_id} to {new_id}: {e}")
            return False
        log.info(f"Repointed {node.bundle} {node.title!r} (nid: {node.id}) from {old_id} to {new_id}")
        return True

    # --- Helpers ---

    def _upsert(self, bundle: str, title: str, values: dict[str, Any]) -> Node:
        existing = self.repository.load_nodes(bundle, title=title)
        if existing:
            node = existing[0]
            node.fields.update(values)
            self.repository.update_node(node)
            log.info(f"Updated {bundle}: {title} (nid: {node.id})")
            return node

        node = self.repository.create_node(bundle, title, values)
        log.info(f"Created new {bundle}: {title} (nid: {node.id})")
        return node

    def _provider_values(self, record: Mapping[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if spotify_id := _text(record.get("spotify_id")):
            values["field_spotify_id"] = spotify_id
        if discogs_id := _text(record.get("discogs_id")):
            values["field_discogs_id"] = discogs_id
        return values

    def _terms(self, genres: Any) -> list[int]:
        if isinstance(genres, str):
            genres = [genres]
        return get_or_create_terms(self.repository, genres, self.genre_vocabulary)

    def _image(self, url: str, label: str) -> int | None:
        if self.media is None:
            return None
        return self.media.create_media_from_url(url, label)
