import logging
from datetime import datetime

import requests

from scrobblify.auth import AuthError
from scrobblify.models import (
    Album, Artist, HistoryEntry, PlayableEpisode, PlayableItem, PlayableTrack,
    PlayableUnknown, Snapshot, Tag, TrackInfo, from_millis, to_millis,
)

log = logging.getLogger("spotify")

API_BASE = "https://api.spotify.com/v1"
HISTORY_PAGE_LIMIT = 50
ARTISTS_BATCH_SIZE = 50
COVER_HEIGHT = 640


# Custom error classes so callers can branch
class SourceFetchError(Exception): ...
class TrackResolutionError(Exception): ...


# -------------------------
# Payload parsing
# -------------------------
def parse_album(data: dict) -> Album:
    cover = next(
        (img.get("url", "") for img in data.get("images") or [] if img.get("height") == COVER_HEIGHT),
        "",
    )
    return Album(id=data.get("id") or "", title=data.get("name") or "", cover=cover)


def parse_track(data: dict) -> TrackInfo:
    track_id = data.get("id")
    isrc = (data.get("external_ids") or {}).get("isrc")
    if not track_id:
        raise TrackResolutionError("track has no id (local file?)")
    if not isrc:
        raise TrackResolutionError(f"track {track_id} has no ISRC")
    duration_ms = data.get("duration_ms")
    if duration_ms is None:
        raise TrackResolutionError(f"track {track_id} has no duration")

    album = parse_album(data.get("album") or {})
    artists = tuple(
        Artist(id=a["id"], name=a.get("name", ""))
        for a in data.get("artists") or []
        if a.get("id")
    )
    return TrackInfo(
        id=track_id,
        title=data.get("name", ""),
        album=album,
        artists=artists,
        duration_secs=duration_ms / 1000,
        isrc=isrc,
        cover=album.cover,
    )


def parse_playable(item: dict | None) -> PlayableItem:
    if not item:
        return PlayableUnknown(type=None)
    kind = item.get("type")
    if kind == "track":
        return PlayableTrack(parse_track(item))
    if kind == "episode":
        return PlayableEpisode(id=item.get("id"), name=item.get("name"))
    return PlayableUnknown(type=kind, raw=item)


def parse_currently_playing(data: dict) -> Snapshot:
    playable = parse_playable(data.get("item"))
    if isinstance(playable, PlayableEpisode):
        raise TrackResolutionError(f"currently playing an episode: {playable.name}")
    if isinstance(playable, PlayableUnknown):
        raise TrackResolutionError(f"unsupported playable item type: {playable.type}")

    progress_ms = data.get("progress_ms")
    ts = data.get("timestamp")
    return Snapshot(
        track=playable.track,
        timestamp=from_millis(ts) if ts is not None else None,
        progress_secs=progress_ms / 1000 if progress_ms is not None else None,
    )


def parse_history_item(data: dict) -> HistoryEntry:
    played_at = data.get("played_at")
    if not played_at:
        raise TrackResolutionError("history item without played_at")
    return HistoryEntry(
        track=parse_track(data.get("track") or {}),
        played_at=datetime.fromisoformat(played_at.replace("Z", "+00:00")),
    )


class SpotifyClient:
    """
    Track source over the Spotify Web API.
    Polls currently-playing, reads recently-played history and artist genres.
    """
    def __init__(self, auth, base_url: str = API_BASE, timeout: float = 10,
                 session: requests.Session | None = None):
        self.auth = auth
        self.base = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, endpoint: str, params: dict | None = None) -> dict | None:
        try:
            token = self.auth.access_token()
        except AuthError as e:
            raise SourceFetchError(f"no usable Spotify token: {e}") from e

        try:
            resp = self.session.get(
                f"{self.base}/{endpoint}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.Timeout as e:
            raise SourceFetchError(f"GET {endpoint} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise SourceFetchError(f"GET {endpoint} failed: {e}") from e

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise SourceFetchError(f"GET {endpoint} returned invalid JSON") from e

    def currently_playing(self) -> Snapshot | None:
        data = self._get("me/player/currently-playing", params={"additional_types": "track"})
        if not data or not data.get("item"):
            return None
        return parse_currently_playing(data)

    def recently_played(self, since: datetime, limit: int = HISTORY_PAGE_LIMIT) -> list[HistoryEntry]:
        """Completed plays strictly after ``since``, oldest first."""
        data = self._get("me/player/recently-played", params={"after": to_millis(since), "limit": limit})
        entries = []
        for item in (data or {}).get("items", []):
            try:
                entry = parse_history_item(item)
            except (TrackResolutionError, KeyError, ValueError) as e:
                log.debug("Skipping history item: %s", e)
                continue
            if entry.played_at > since:
                entries.append(entry)
        entries.sort(key=lambda e: e.played_at)
        return entries

    def tags_for_artists(self, artist_ids: list[str]) -> list[Tag]:
        genres: set[str] = set()
        for i in range(0, len(artist_ids), ARTISTS_BATCH_SIZE):
            batch = artist_ids[i:i + ARTISTS_BATCH_SIZE]
            data = self._get("artists", params={"ids": ",".join(batch)}) or {}
            for artist in data.get("artists") or []:
                if artist:
                    genres.update(artist.get("genres") or [])
        return [Tag(g) for g in sorted(genres)]
