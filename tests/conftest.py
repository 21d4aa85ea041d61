"""Shared test fixtures and utilities."""

from datetime import datetime, timedelta, timezone

import pytest

from scrobblify.ingest import IngestionPipeline
from scrobblify.models import Album, Artist, HistoryEntry, Snapshot, TrackInfo
from scrobblify.scheduler import Scheduler
from tests.mocks.mock_source import FakeClock, FlakyRepository, MockTrackSource

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_track(
    track_id: str = "trk1",
    title: str = "(Fine Layers of) Slaysenflite",
    duration_secs: float = 180.0,
    artists: tuple[tuple[str, str], ...] = (("art1", "Boards of Canada"),),
    album_id: str = "alb1",
) -> TrackInfo:
    """Helper to create test TrackInfo instances."""
    return TrackInfo(
        id=track_id,
        title=title,
        album=Album(album_id, f"Album {album_id}", f"https://img/{album_id}.jpg"),
        artists=tuple(Artist(aid, name) for aid, name in artists),
        duration_secs=duration_secs,
        isrc=f"ISRC-{track_id}",
        cover=f"https://img/{album_id}.jpg",
    )


def make_snapshot(track: TrackInfo | None = None, started_at: datetime = T0, scrobbled: bool = False) -> Snapshot:
    return Snapshot(track=track or make_track(), timestamp=started_at, progress_secs=0.0, scrobbled=scrobbled)


def make_history(track: TrackInfo, played_at: datetime) -> HistoryEntry:
    return HistoryEntry(track=track, played_at=played_at)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def source() -> MockTrackSource:
    src = MockTrackSource()
    src.genres = {"art1": ["idm", "electronica"], "art2": ["ambient", "idm"]}
    return src


@pytest.fixture
def repository() -> FlakyRepository:
    repo = FlakyRepository()
    yield repo
    repo.close()


@pytest.fixture
def pipeline(repository, source) -> IngestionPipeline:
    return IngestionPipeline(repository, source)


@pytest.fixture
def scheduler(source, pipeline, repository, clock) -> Scheduler:
    return Scheduler(source, pipeline, repository, interval=0, clock=clock)
