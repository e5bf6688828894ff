"""Tests for the reconciliation engine: upserts, identity and artist -> band reclassification."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from conftest import FakeMemberLookup, discogs_artist, spotify_song

from music_search.models import Found, NotFound
from music_search.reconcile import ContentReconciler
from music_search.repository import Node, SqliteContentRepository

ABBA_MEMBERS = ["Agnetha Fältskog", "Björn Ulvaeus", "Benny Andersson", "Anni-Frid Lyngstad"]


def titles(repo: SqliteContentRepository, bundle: str) -> list[str]:
    return [node.title for node in repo.load_nodes(bundle)]


class TestArtistUpsert:
    def test_same_title_twice_is_one_node(self, repo, reconciler):
        first = reconciler.upsert_artist({"name": "Prince", "genres": ["Funk"]})
        second = reconciler.upsert_artist({"name": "Prince", "genres": ["Funk"]})

        assert first.id == second.id
        assert titles(repo, "artist") == ["Prince"]

    def test_update_only_touches_fields_with_values(self, repo, reconciler):
        reconciler.upsert_artist({"name": "Prince", "genres": ["Funk"], "spotify_id": "sp-prince"})
        reconciler.upsert_artist(
            {"name": "Prince", "genres": [], "profile": "", "website": "https://prince.example"}
        )

        node = repo.load_nodes("artist", title="Prince")[0]
        assert node.get("field_spotify_id") == "sp-prince"
        assert len(node.get("field_music_genre_artist")) == 1
        assert node.get("field_website") == {"uri": "https://prince.example", "title": "Website"}
        assert "field_artist_description_long" not in node.fields

    def test_field_mapping(self, repo, reconciler):
        record = discogs_artist(members=[]).as_record()

        node = reconciler.upsert_artist(record)

        assert node.get("field_discogs_id") == "69866"
        assert node.get("field_artist_description_long") == {
            "value": "Swedish pop group.",
            "format": "basic_html",
        }
        assert node.get("field_website") == {
            "uri": "https://www.discogs.com/artist/69866-ABBA",
            "title": "Discogs Profile",
        }

    def test_spotify_website_title(self, reconciler):
        node = reconciler.upsert_artist({"name": "ABBA", "website": "https://open.spotify.com/artist/x"})

        assert node.get("field_website")["title"] == "Spotify Profile"

    def test_genre_terms_are_deduplicated(self, repo, reconciler):
        first = reconciler.upsert_artist({"name": "ABBA", "genres": ["Pop", "Disco", "Pop"]})
        second = reconciler.upsert_artist({"name": "Boney M.", "genres": ["Disco"]})

        assert repo.count_terms("music_genre") == 2
        assert first.get("field_music_genre_artist")[0] == first.get("field_music_genre_artist")[2]
        assert second.get("field_music_genre_artist") == [first.get("field_music_genre_artist")[1]]

    def test_existing_band_title_updates_the_band(self, repo, reconciler):
        band = reconciler.upsert_band({"name": "ABBA", "members": ABBA_MEMBERS})

        node = reconciler.upsert_artist({"name": "ABBA", "website": "https://abba.example"})

        assert node.id == band.id
        assert node.bundle == "band"
        assert "ABBA" not in titles(repo, "artist")
        assert titles(repo, "band") == ["ABBA"]
        assert repo.get_node(band.id).get("field_website") == {"uri": "https://abba.example", "title": "Website"}

    def test_update_is_logged_as_saved(self, reconciler, caplog):
        caplog.set_level(logging.INFO, logger="music_search.reconcile")

        reconciler.materialize({"name": "Prince"}, "artist")
        reconciler.materialize({"name": "Prince", "genres": ["Funk"]}, "artist")

        messages = [r.getMessage() for r in caplog.records]
        assert len([m for m in messages if m.startswith("Created new artist: Prince")]) == 1
        assert any(m.startswith("Updated artist: Prince") for m in messages)
        assert len([m for m in messages if m.startswith("Saved artist: Prince")]) == 2


class TestSongsAndAlbums:
    def test_song_creates_artist_lazily(self, repo, reconciler):
        song = reconciler.upsert_song(spotify_song().as_record())

        artist = repo.load_nodes("artist", title="ABBA")[0]
        assert song.get("field_artist_song") == artist.id
        assert artist.get("field_spotify_id") == "sp-abba"
        assert song.get("field_album") == "Arrival"
        assert song.get("field_spotify_id") == "sp-song-1"

    def test_song_duration(self, reconciler):
        song = reconciler.upsert_song({"name": "Waterloo", "length": "3:05"})

        assert song.get("field_song_duration") == {"duration": "PT3M5S", "seconds": 185}

    def test_songs_share_artist_but_are_never_deduplicated(self, repo, reconciler):
        first = reconciler.upsert_song(spotify_song().as_record())
        second = reconciler.upsert_song(spotify_song().as_record())

        assert first.id != second.id
        assert first.get("field_artist_song") == second.get("field_artist_song")
        assert titles(repo, "artist") == ["ABBA"]
        assert titles(repo, "song") == ["Dancing Queen", "Dancing Queen"]

    def test_unknown_artist_placeholder_is_not_created(self, repo, reconciler):
        song = reconciler.upsert_song({"name": "Untitled Track", "artist": "Unknown"})

        assert "field_artist_song" not in song.fields
        assert repo.load_nodes("artist") == []

    def test_album_fields(self, repo, reconciler):
        album = reconciler.upsert_album(
            {"name": "Arrival", "artist": "ABBA", "year": "1976", "genres": ["Pop"], "discogs_id": "1234"}
        )

        artist = repo.load_nodes("artist", title="ABBA")[0]
        assert album.get("field_artist") == artist.id
        assert album.get("field_release_year") == "1976"
        assert album.get("field_discogs_id") == "1234"
        assert len(album.get("field_music_genre")) == 1

    def test_album_does_not_promote(self, repo):
        lookup = FakeMemberLookup({"ABBA": ABBA_MEMBERS})
        reconciler = ContentReconciler(repo, member_lookup=lookup)
        repo.create_node("artist", "ABBA")

        album = reconciler.upsert_album({"name": "Arrival", "artist": "ABBA"})

        assert lookup.calls == []
        assert repo.get_node(album.get("field_artist")).bundle == "artist"


class TestIdentity:
    def test_band_takes_precedence(self, repo, reconciler):
        repo.create_node("artist", "Queen")
        band = repo.create_node("band", "Queen")

        match = reconciler.resolve_identity("Queen")

        assert isinstance(match, Found)
        assert match.node.id == band.id

    def test_miss(self, reconciler):
        assert reconciler.resolve_identity("Nobody") == NotFound("Nobody")

    def test_lookup_has_no_side_effects(self, repo, reconciler):
        reconciler.resolve_identity("Nobody")

        assert repo.load_nodes("artist") == []
        assert repo.load_nodes("band") == []


class TestReclassification:
    """An artist gains members later: references move to the band and the artist disappears."""

    def test_artist_becomes_band(self, repo, reconciler):
        song = reconciler.materialize(spotify_song().as_record(), "song")
        album = reconciler.materialize({"name": "Arrival", "artist": "ABBA"}, "album")
        old_artist = repo.load_nodes("artist", title="ABBA")[0]

        band = reconciler.materialize(discogs_artist().as_record(), "artist")

        assert band is not None and band.bundle == "band"
        assert repo.get_node(old_artist.id) is None
        assert repo.get_node(song.id).get("field_artist_song") == band.id
        assert repo.get_node(album.id).get("field_artist") == band.id
        assert titles(repo, "artist") == ABBA_MEMBERS
        assert isinstance(reconciler.resolve_identity("ABBA"), Found)
        assert reconciler.resolve_identity("ABBA").node.bundle == "band"

    def test_band_inherits_artist_provider_ids(self, repo, reconciler):
        reconciler.materialize(spotify_song().as_record(), "song")

        band = reconciler.materialize(discogs_artist().as_record(), "artist")

        stored = repo.get_node(band.id)
        assert stored.get("field_spotify_id") == "sp-abba"
        assert stored.get("field_discogs_id") == "69866"

    def test_band_members_are_resolved_once(self, repo, reconciler):
        reconciler.materialize(discogs_artist().as_record(), "artist")
        band = reconciler.materialize(discogs_artist().as_record(), "artist")

        assert titles(repo, "band") == ["ABBA"]
        assert titles(repo, "artist") == ABBA_MEMBERS
        members = repo.get_node(band.id).get("field_band_members")
        assert [repo.get_node(m).title for m in members] == ABBA_MEMBERS

    def test_band_is_terminal(self, repo, reconciler):
        band = reconciler.materialize(discogs_artist().as_record(), "artist")

        again = reconciler.materialize({"name": "ABBA", "genres": ["Pop"]}, "artist")

        assert again.id == band.id
        assert again.bundle == "band"
        assert "ABBA" not in titles(repo, "artist")

    def test_member_already_a_band_is_referenced(self, repo, reconciler):
        supergroup_member = repo.create_node("band", "Cream")

        band = reconciler.upsert_band({"name": "Blind Faith", "members": ["Cream", "Steve Winwood"]})

        members = band.get("field_band_members")
        assert members[0] == supergroup_member.id
        assert titles(repo, "artist") == ["Steve Winwood"]

    def test_member_lists_pointing_at_artist_are_repointed(self, repo, reconciler):
        reconciler.upsert_band({"name": "Supergroup", "members": ["ABBA", "Someone"]})
        abba_artist = repo.load_nodes("artist", title="ABBA")[0]

        abba_band = reconciler.upsert_band({"name": "ABBA", "members": ABBA_MEMBERS})

        supergroup = repo.load_nodes("band", title="Supergroup")[0]
        assert abba_artist.id not in supergroup.get("field_band_members")
        assert abba_band.id in supergroup.get("field_band_members")


class TestSpeculativePromotion:
    def test_song_submission_promotes_artist(self, repo):
        lookup = FakeMemberLookup()
        reconciler = ContentReconciler(repo, member_lookup=lookup)
        first_song = reconciler.materialize(spotify_song().as_record(), "song")

        lookup.bands["ABBA"] = ABBA_MEMBERS
        second_song = reconciler.materialize(spotify_song("sp-song-2", name="Waterloo").as_record(), "song")

        band = repo.load_nodes("band", title="ABBA")[0]
        assert second_song.get("field_artist_song") == band.id
        assert repo.get_node(first_song.id).get("field_artist_song") == band.id
        assert "ABBA" not in titles(repo, "artist")
        assert lookup.calls == ["ABBA"]

    def test_lookup_failure_keeps_artist(self, repo):
        reconciler = ContentReconciler(repo, member_lookup=FakeMemberLookup(fail=True))
        artist = repo.create_node("artist", "ABBA")

        song = reconciler.materialize(spotify_song().as_record(), "song")

        assert song is not None
        assert song.get("field_artist_song") == artist.id
        assert repo.load_nodes("band") == []

    def test_no_members_keeps_artist(self, repo):
        lookup = FakeMemberLookup({"Prince": []})
        reconciler = ContentReconciler(repo, member_lookup=lookup)
        artist = repo.create_node("artist", "Prince")

        promoted = reconciler.maybe_promote_to_band(artist)

        assert promoted.id == artist.id
        assert lookup.calls == ["Prince"]

    def test_bands_are_not_checked(self, repo):
        lookup = FakeMemberLookup({"ABBA": ABBA_MEMBERS})
        reconciler = ContentReconciler(repo, member_lookup=lookup)
        band = repo.create_node("band", "ABBA")

        assert reconciler.maybe_promote_to_band(band).id == band.id
        assert lookup.calls == []


class SongUpdateFailingRepository(SqliteContentRepository):
    def update_node(self, node: Node) -> Node:
        if node.bundle == "song":
            raise RuntimeError("disk full")
        return super().update_node(node)


class CreateFailingRepository(SqliteContentRepository):
    def create_node(self, bundle, title, fields=None):
        raise RuntimeError("database is locked")


class TestFailures:
    def test_failed_repoint_keeps_artist(self, tmp_path):
        repo = SongUpdateFailingRepository(tmp_path / "content.sqlite")
        reconciler = ContentReconciler(repo)
        song = reconciler.upsert_song(spotify_song().as_record())
        artist_id = song.get("field_artist_song")

        band = reconciler.materialize(discogs_artist().as_record(), "artist")

        assert band is not None and band.bundle == "band"
        assert repo.get_node(artist_id) is not None
        assert repo.get_node(song.id).get("field_artist_song") == artist_id

    def test_materialize_returns_none_on_repository_error(self, tmp_path):
        reconciler = ContentReconciler(CreateFailingRepository(tmp_path / "content.sqlite"))

        assert reconciler.materialize({"name": "ABBA"}, "artist") is None

    def test_materialize_returns_none_without_name(self, reconciler):
        assert reconciler.materialize({"genres": ["Pop"]}, "artist") is None

    def test_materialize_returns_none_for_unknown_type(self, reconciler):
        assert reconciler.materialize({"name": "ABBA"}, "podcast") is None


class TestImages:
    def test_artist_image_is_attached(self, repo, media_store, httpx_mock):
        httpx_mock.add_response(url="https://i.scdn.co/image/abba.jpg", content=b"\xff\xd8jpeg")
        reconciler = ContentReconciler(repo, media=media_store)

        node = reconciler.materialize({"name": "ABBA", "image": "https://i.scdn.co/image/abba.jpg"}, "artist")

        media = repo.get_media(node.get("field_artist_image"))
        assert media is not None
        assert media.name == "ABBA"
        assert media.alt == "ABBA"
        assert Path(media.uri).name == "ABBA.jpg"
        assert Path(media.uri).read_bytes() == b"\xff\xd8jpeg"

    def test_same_label_is_renamed(self, repo, media_store, httpx_mock):
        httpx_mock.add_response(url="https://img.example/a.jpg", content=b"one")
        httpx_mock.add_response(url="https://img.example/b.jpg", content=b"two")
        reconciler = ContentReconciler(repo, media=media_store)

        first = reconciler.upsert_album({"name": "Greatest Hits", "image": "https://img.example/a.jpg"})
        second = reconciler.upsert_album({"name": "Greatest Hits", "image": "https://img.example/b.jpg"})

        first_uri = repo.get_media(first.get("field_album_cover")).uri
        second_uri = repo.get_media(second.get("field_album_cover")).uri
        assert Path(first_uri).name == "Greatest_Hits.jpg"
        assert Path(second_uri).name == "Greatest_Hits_0.jpg"

    def test_same_image_under_two_labels_is_stored_twice(self, repo, media_store, httpx_mock):
        # No content hashing: each label gets its own file and media entity
        httpx_mock.add_response(url="https://img.example/cover.jpg", content=b"cover")
        httpx_mock.add_response(url="https://img.example/cover.jpg", content=b"cover")
        reconciler = ContentReconciler(repo, media=media_store)

        first = reconciler.upsert_album({"name": "Arrival", "image": "https://img.example/cover.jpg"})
        second = reconciler.upsert_album({"name": "Waterloo", "image": "https://img.example/cover.jpg"})

        first_id = first.get("field_album_cover")
        second_id = second.get("field_album_cover")
        assert first_id is not None and second_id is not None
        assert first_id != second_id
        first_path = Path(repo.get_media(first_id).uri)
        second_path = Path(repo.get_media(second_id).uri)
        assert (first_path.name, second_path.name) == ("Arrival.jpg", "Waterloo.jpg")
        assert first_path.read_bytes() == second_path.read_bytes() == b"cover"
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.parametrize("status_code", [404, 500])
    def test_failed_download_skips_image(self, repo, media_store, httpx_mock, status_code):
        httpx_mock.add_response(url="https://img.example/missing.jpg", status_code=status_code)
        reconciler = ContentReconciler(repo, media=media_store)

        node = reconciler.materialize({"name": "Arrival", "image": "https://img.example/missing.jpg"}, "album")

        assert node is not None
        assert "field_album_cover" not in node.fields

    def test_invalid_image_url_skips_image(self, repo, media_store, httpx_mock):
        reconciler = ContentReconciler(repo, media=media_store)

        node = reconciler.materialize({"name": "Arrival", "image": "https://img.example/\x00.jpg"}, "album")

        assert node is not None
        assert "field_album_cover" not in node.fields
        assert httpx_mock.get_requests() == []


def test_reclassification_scenario(repo, reconciler):
    """An artist with one referencing song is converted by a record carrying members."""
    artist = repo.create_node("artist", "The Example")
    song = repo.create_node("song", "Example Song", {"field_artist_song": artist.id})

    band = reconciler.materialize({"name": "The Example", "members": ["A", "B"]}, "artist")

    assert band is not None and band.bundle == "band"
    assert titles(repo, "band") == ["The Example"]
    assert repo.get_node(song.id).get("field_artist_song") == band.id
    assert "The Example" not in titles(repo, "artist")


def test_term_dedup_across_calls(repo):
    from music_search.taxonomy import get_or_create_terms

    first = get_or_create_terms(repo, ["Rock", "Jazz"])
    second = get_or_create_terms(repo, ["Rock"])

    assert second == [first[0]]
    assert repo.count_terms("music_genre") == 2
