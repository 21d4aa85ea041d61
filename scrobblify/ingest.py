import logging
from typing import Protocol

from scrobblify.models import ScrobbleEvent, ScrobbleRecord, Tag, TrackInfo
from scrobblify.repository import Repository, RepositoryError
from scrobblify.spotify import SourceFetchError

log = logging.getLogger("ingest")


class IngestionError(Exception): ...


class TagSource(Protocol):
    def tags_for_artists(self, artist_ids: list[str]) -> list[Tag]: ...


class IngestionPipeline:
    """Persists a scrobble event and the entity graph it references.

    Tracks, artists, albums and tags are created at most once; the artist tag
    lookup only happens the first time a track is seen.
    """

    def __init__(self, repository: Repository, tag_source: TagSource, origin: str = "spotify"):
        self.repository = repository
        self.tag_source = tag_source
        self.origin = origin

    def ingest(self, event: ScrobbleEvent, origin: str | None = None) -> TrackInfo:
        """Store ``event``; ``origin`` labels the record and defaults to the pipeline's."""
        try:
            track = self._resolve_track(event.track)
            self._append(event, track, origin or self.origin)
        except (RepositoryError, SourceFetchError) as e:
            raise IngestionError(f"failed to ingest {event.track.id} @ {event.timestamp.isoformat()}: {e}") from e
        return track

    def _resolve_track(self, track: TrackInfo) -> TrackInfo:
        repo = self.repository
        existing = repo.get_track_by_id(track.id)
        if existing is not None:
            log.debug("Track %s already stored; skipping entity inserts", track.id)
            return track.with_tags(existing.tags)

        repo.insert_track_if_absent(track)
        for artist in track.artists:
            repo.insert_artist_if_absent(artist)

        # genres from the artist profile; per-track genre data is unreliable
        tags = self.tag_source.tags_for_artists([a.id for a in track.artists]) if track.artists else []
        for tag in tags:
            repo.insert_tag_if_absent(tag)
        track = track.with_tags(tags)

        repo.insert_album_if_absent(track.album)
        log.info("New track stored: %s — %s (%d tags)", track.artist_names, track.title, len(tags))
        return track

    def _append(self, event: ScrobbleEvent, track: TrackInfo, origin: str) -> None:
        repo = self.repository
        repo.insert_scrobble(ScrobbleRecord(
            timestamp=event.timestamp,
            duration_secs=event.duration_secs,
            track_id=track.id,
            origin=origin,
        ))
        for tag in track.tags:
            repo.link_track_tag(track.id, tag.id)
        for artist in track.artists:
            repo.link_track_artist(track.id, artist.id)
            repo.link_album_artist(track.album.id, artist.id)
        repo.link_track_album(track.id, track.album.id)
