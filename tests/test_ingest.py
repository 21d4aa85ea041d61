"""Tests for the ingestion pipeline."""

import pytest

from scrobblify.ingest import IngestionError
from scrobblify.models import ScrobbleEvent, Tag
from tests.conftest import at, make_track


def event(track=None, seconds=0):
    track = track or make_track()
    return ScrobbleEvent(timestamp=at(seconds), duration_secs=track.duration_secs, track=track)


class TestFirstSighting:
    def test_creates_entity_graph(self, pipeline, repository, source):
        """A new track gets its track, artist, album and tag rows plus links."""
        track = make_track(artists=(("art1", "Boards of Canada"), ("art2", "Tycho")))
        stored = pipeline.ingest(event(track))

        assert source.tag_calls == [["art1", "art2"]]
        assert stored.tags == (Tag("ambient"), Tag("electronica"), Tag("idm"))
        assert repository.count("tracks") == 1
        assert repository.count("artists") == 2
        assert repository.count("albums") == 1
        assert repository.count("tags") == 3
        assert repository.count("scrobbles") == 1
        assert repository.count("artists_tracks") == 2
        assert repository.count("albums_artists") == 2
        assert repository.count("albums_tracks") == 1
        assert repository.count("tags_tracks") == 3

    def test_scrobble_record_fields(self, pipeline, repository):
        pipeline.ingest(event(make_track(duration_secs=212.5), seconds=30))
        record = repository.last_scrobble()
        assert record.timestamp == at(30)
        assert record.duration_secs == 212.5
        assert record.track_id == "trk1"
        assert record.origin == "spotify"

    def test_origin_override(self, pipeline, repository):
        pipeline.ingest(event(), origin="history")
        assert repository.last_scrobble().origin == "history"

    def test_track_without_artists_skips_tag_lookup(self, pipeline, source, repository):
        pipeline.ingest(event(make_track(artists=())))
        assert source.tag_calls == []
        assert repository.count("tracks") == 1


class TestIdempotence:
    def test_second_scrobble_skips_entities_and_tags(self, pipeline, repository, source):
        """Ingesting the same track twice adds a scrobble but no entity rows or tag fetches."""
        pipeline.ingest(event(seconds=0))
        stored = pipeline.ingest(event(seconds=400))

        assert len(source.tag_calls) == 1
        assert stored.tags == (Tag("electronica"), Tag("idm"))
        assert repository.count("tracks") == 1
        assert repository.count("artists") == 1
        assert repository.count("albums") == 1
        assert repository.count("tags") == 2
        assert repository.count("scrobbles") == 2
        assert repository.count("tags_tracks") == 2

    def test_shared_artist_and_album_stored_once(self, pipeline, repository, source):
        pipeline.ingest(event(make_track("t1"), seconds=0))
        pipeline.ingest(event(make_track("t2"), seconds=200))
        assert len(source.tag_calls) == 2
        assert repository.count("tracks") == 2
        assert repository.count("artists") == 1
        assert repository.count("albums") == 1
        assert repository.count("albums_artists") == 1

    def test_same_timestamp_twice_is_one_row(self, pipeline, repository):
        pipeline.ingest(event(seconds=0))
        pipeline.ingest(event(seconds=0))
        assert repository.count("scrobbles") == 1


class TestFailures:
    def test_store_failure_raises_ingestion_error(self, pipeline, repository):
        repository.fail_on.add("insert_scrobble")
        with pytest.raises(IngestionError) as exc:
            pipeline.ingest(event())
        assert "insert_scrobble failed" in str(exc.value)
        # no cleanup of what was already written
        assert repository.count("tracks") == 1
        assert repository.count("scrobbles") == 0

    def test_tag_fetch_failure_raises_ingestion_error(self, pipeline, repository, source):
        source.fail_tags = True
        with pytest.raises(IngestionError):
            pipeline.ingest(event())
        assert repository.count("scrobbles") == 0

    def test_track_insert_failure_aborts_early(self, pipeline, repository, source):
        repository.fail_on.add("insert_track_if_absent")
        with pytest.raises(IngestionError):
            pipeline.ingest(event())
        assert source.tag_calls == []
        assert repository.count("artists") == 0
