"""Fake track source and failing repository for tests."""

from datetime import datetime, timedelta, timezone

from scrobblify.models import HistoryEntry, Snapshot, Tag
from scrobblify.repository import RepositoryError, SqliteRepository
from scrobblify.spotify import SourceFetchError


class MockTrackSource:
    """Track source that replays whatever the test puts in ``current``.

    ``current`` may be a Snapshot, None, or an exception instance to raise.
    """

    def __init__(self):
        self.current: Snapshot | Exception | None = None
        self.history: list[HistoryEntry] = []
        self.genres: dict[str, list[str]] = {}
        self.fail_tags = False
        self.tag_calls: list[list[str]] = []
        self.history_calls: list[datetime] = []

    def currently_playing(self) -> Snapshot | None:
        if isinstance(self.current, Exception):
            raise self.current
        return self.current

    def recently_played(self, since: datetime) -> list[HistoryEntry]:
        self.history_calls.append(since)
        if isinstance(self.history, Exception):
            raise self.history
        return [h for h in self.history if h.played_at > since]

    def tags_for_artists(self, artist_ids: list[str]) -> list[Tag]:
        self.tag_calls.append(list(artist_ids))
        if self.fail_tags:
            raise SourceFetchError("artists endpoint down")
        names = {g for aid in artist_ids for g in self.genres.get(aid, [])}
        return [Tag(n) for n in sorted(names)]


class FlakyRepository(SqliteRepository):
    """In-memory repository whose named operations can be made to fail."""

    def __init__(self):
        super().__init__(":memory:")
        self.fail_on: set[str] = set()

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise RepositoryError(f"{op} failed")

    def insert_track_if_absent(self, track):
        self._maybe_fail("insert_track_if_absent")
        super().insert_track_if_absent(track)

    def insert_scrobble(self, record):
        self._maybe_fail("insert_scrobble")
        super().insert_scrobble(record)

    def last_scrobble(self):
        self._maybe_fail("last_scrobble")
        return super().last_scrobble()


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now
