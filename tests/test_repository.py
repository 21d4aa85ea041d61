"""Tests for the SQLite entity store."""

import pytest

from scrobblify.models import Album, Artist, ScrobbleRecord, Tag
from scrobblify.repository import RepositoryError, SqliteRepository
from tests.conftest import at, make_track


@pytest.fixture
def repo(tmp_path):
    r = SqliteRepository(str(tmp_path / "scrobblify.db"))
    yield r
    r.close()


class TestInsertIfAbsent:
    def test_existing_rows_are_not_overwritten(self, repo):
        repo.insert_artist_if_absent(Artist("art1", "Original"))
        repo.insert_artist_if_absent(Artist("art1", "Renamed"))
        repo.insert_album_if_absent(Album("alb1", "First", ""))
        repo.insert_album_if_absent(Album("alb1", "Second", "cover"))
        repo.insert_track_if_absent(make_track(title="First"))
        repo.insert_track_if_absent(make_track(title="Second"))
        repo.link_track_artist("trk1", "art1")
        repo.link_track_album("trk1", "alb1")

        track = repo.get_track_by_id("trk1")
        assert track.title == "First"
        assert track.artists == (Artist("art1", "Original"),)
        assert track.album == Album("alb1", "First", "")
        assert repo.count("artists") == 1
        assert repo.count("albums") == 1

    def test_links_are_idempotent(self, repo):
        for _ in range(3):
            repo.link_track_artist("trk1", "art1")
            repo.link_track_album("trk1", "alb1")
            repo.link_track_tag("trk1", "idm")
            repo.link_album_artist("alb1", "art1")
        for table in ("artists_tracks", "albums_tracks", "tags_tracks", "albums_artists"):
            assert repo.count(table) == 1

    def test_tags_round_trip_sorted(self, repo):
        repo.insert_tag_if_absent(Tag("idm"))
        repo.insert_tag_if_absent(Tag("ambient"))
        repo.insert_tag_if_absent(Tag("idm"))
        repo.link_track_tag("trk1", "idm")
        repo.link_track_tag("trk1", "ambient")
        assert repo.count("tags") == 2
        assert repo.track_tags("trk1") == [Tag("ambient"), Tag("idm")]

    def test_unknown_track_is_none(self, repo):
        assert repo.get_track_by_id("missing") is None


class TestScrobbles:
    def test_empty_store_has_no_last_scrobble(self, repo):
        assert repo.last_scrobble() is None
        assert repo.last_scrobble_timestamp() is None

    def test_last_scrobble_is_latest_by_timestamp(self, repo):
        repo.insert_scrobble(ScrobbleRecord(at(500), 200.0, "b"))
        repo.insert_scrobble(ScrobbleRecord(at(0), 180.0, "a"))
        last = repo.last_scrobble()
        assert last == ScrobbleRecord(at(500), 200.0, "b", "spotify")
        assert repo.last_scrobble_timestamp() == at(500)
        assert [s.track_id for s in repo.scrobbles()] == ["a", "b"]

    def test_duplicate_timestamp_is_ignored(self, repo):
        repo.insert_scrobble(ScrobbleRecord(at(0), 180.0, "a"))
        repo.insert_scrobble(ScrobbleRecord(at(0), 180.0, "a"))
        assert repo.count("scrobbles") == 1

    def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "db.sqlite")
        first = SqliteRepository(path)
        first.insert_scrobble(ScrobbleRecord(at(60), 180.0, "a"))
        first.close()
        second = SqliteRepository(path)
        assert second.last_scrobble_timestamp() == at(60)
        second.close()


class TestErrors:
    def test_unopenable_path(self, tmp_path):
        with pytest.raises(RepositoryError):
            SqliteRepository(str(tmp_path / "missing" / "dir" / "db.sqlite"))

    def test_closed_connection_raises_repository_error(self, tmp_path):
        repo = SqliteRepository(str(tmp_path / "db.sqlite"))
        repo.close()
        with pytest.raises(RepositoryError):
            repo.insert_tag_if_absent(Tag("idm"))

    def test_count_rejects_unknown_table(self, repo):
        with pytest.raises(ValueError):
            repo.count("sqlite_master")
