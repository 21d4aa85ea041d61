from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


@dataclass(frozen=True, order=True)
class Tag:
    id: str  # the display name


@dataclass(frozen=True)
class Artist:
    id: str
    name: str


@dataclass(frozen=True)
class Album:
    id: str
    title: str
    cover: str = ""


@dataclass(frozen=True)
class TrackInfo:
    id: str
    title: str
    album: Album
    artists: tuple[Artist, ...]
    duration_secs: float
    isrc: str
    cover: str = ""
    tags: tuple[Tag, ...] = ()

    def with_tags(self, tags) -> "TrackInfo":
        return replace(self, tags=tuple(tags))

    @property
    def artist_names(self) -> str:
        return ", ".join(a.name for a in self.artists)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "album": {"id": self.album.id, "title": self.album.title, "cover": self.album.cover},
            "artists": [{"id": a.id, "name": a.name} for a in self.artists],
            "duration_secs": self.duration_secs,
            "isrc": self.isrc,
            "cover": self.cover,
            "tags": [t.id for t in self.tags],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrackInfo":
        return cls(
            id=data["id"],
            title=data["title"],
            album=Album(**data["album"]),
            artists=tuple(Artist(**a) for a in data["artists"]),
            duration_secs=float(data["duration_secs"]),
            isrc=data["isrc"],
            cover=data.get("cover", ""),
            tags=tuple(Tag(t) for t in data.get("tags", [])),
        )


@dataclass(frozen=True)
class Snapshot:
    """One poll's view of what is currently playing.

    Two snapshots belong to the same listening session iff both carry a
    track and the track ids match.
    """
    track: TrackInfo | None
    timestamp: datetime | None = None
    progress_secs: float | None = None
    scrobbled: bool = False

    def same_session(self, other: "Snapshot | None") -> bool:
        if other is None or self.track is None or other.track is None:
            return False
        return self.track.id == other.track.id

    def mark_scrobbled(self) -> "Snapshot":
        return replace(self, scrobbled=True)


@dataclass(frozen=True)
class ScrobbleEvent:
    timestamp: datetime  # start of the counted session
    duration_secs: float
    track: TrackInfo

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "duration_secs": self.duration_secs,
            "track": self.track.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScrobbleEvent":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            duration_secs=float(data["duration_secs"]),
            track=TrackInfo.from_dict(data["track"]),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """A completed play reported by the provider's history feed."""
    track: TrackInfo
    played_at: datetime

    def to_event(self) -> ScrobbleEvent:
        return ScrobbleEvent(
            timestamp=self.played_at,
            duration_secs=self.track.duration_secs,
            track=self.track,
        )


@dataclass(frozen=True)
class ScrobbleRecord:
    timestamp: datetime
    duration_secs: float
    track_id: str
    origin: str = "spotify"


# -------------------------
# Playable items as reported by the provider
# -------------------------
@dataclass(frozen=True)
class PlayableTrack:
    track: TrackInfo


@dataclass(frozen=True)
class PlayableEpisode:
    id: str | None
    name: str | None


@dataclass(frozen=True)
class PlayableUnknown:
    type: str | None
    raw: dict = field(default_factory=dict, compare=False, repr=False)


PlayableItem = PlayableTrack | PlayableEpisode | PlayableUnknown


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_millis(ms: int | float) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def to_millis(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)
