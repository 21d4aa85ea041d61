"""
SQLite entity store.

- Normalized tables for tracks, albums, artists, tags and their links, plus the scrobble log.
- Every insert is insert-if-absent: existing rows are never modified and
  a repeated key never surfaces as an error.
- Timestamps are stored as ISO-8601 UTC strings so lexical order is time order.
"""

from __future__ import annotations
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Protocol

from scrobblify.models import Album, Artist, ScrobbleRecord, Tag, TrackInfo

log = logging.getLogger("repository")


class RepositoryError(Exception): ...


class Repository(Protocol):
    def insert_track_if_absent(self, track: TrackInfo) -> None: ...
    def get_track_by_id(self, track_id: str) -> TrackInfo | None: ...
    def insert_album_if_absent(self, album: Album) -> None: ...
    def insert_artist_if_absent(self, artist: Artist) -> None: ...
    def insert_tag_if_absent(self, tag: Tag) -> None: ...
    def insert_scrobble(self, record: ScrobbleRecord) -> None: ...
    def link_track_artist(self, track_id: str, artist_id: str) -> None: ...
    def link_track_album(self, track_id: str, album_id: str) -> None: ...
    def link_track_tag(self, track_id: str, tag_id: str) -> None: ...
    def link_album_artist(self, album_id: str, artist_id: str) -> None: ...
    def last_scrobble(self) -> ScrobbleRecord | None: ...
    def last_scrobble_timestamp(self) -> datetime | None: ...


_SCHEMA = """
CREATE TABLE IF NOT EXISTS tracks (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    duration_secs REAL NOT NULL,
    isrc TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS albums (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    cover TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS artists (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY
);
CREATE TABLE IF NOT EXISTS scrobbles (
    timestamp TEXT PRIMARY KEY,
    origin TEXT NOT NULL,
    duration_secs REAL NOT NULL,
    track_id TEXT NOT NULL REFERENCES tracks(id)
);
CREATE TABLE IF NOT EXISTS artists_tracks (
    artist_id TEXT NOT NULL REFERENCES artists(id),
    track_id TEXT NOT NULL REFERENCES tracks(id),
    PRIMARY KEY (artist_id, track_id)
);
CREATE TABLE IF NOT EXISTS albums_tracks (
    album_id TEXT NOT NULL REFERENCES albums(id),
    track_id TEXT NOT NULL REFERENCES tracks(id),
    PRIMARY KEY (album_id, track_id)
);
CREATE TABLE IF NOT EXISTS tags_tracks (
    tag_id TEXT NOT NULL REFERENCES tags(id),
    track_id TEXT NOT NULL REFERENCES tracks(id),
    PRIMARY KEY (tag_id, track_id)
);
CREATE TABLE IF NOT EXISTS albums_artists (
    album_id TEXT NOT NULL REFERENCES albums(id),
    artist_id TEXT NOT NULL REFERENCES artists(id),
    PRIMARY KEY (album_id, artist_id)
);
"""


def _ts_to_db(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def _ts_from_db(s: str) -> datetime:
    return datetime.fromisoformat(s)


class SqliteRepository:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False)
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"cannot open database {path}: {e}") from e
        log.debug("Opened database %s", path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -------- helpers --------
    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            try:
                # commits on success, rolls back on error
                with self._conn:
                    self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise RepositoryError(str(e)) from e

    def _read(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise RepositoryError(str(e)) from e

    # -------- entities --------
    def insert_track_if_absent(self, track: TrackInfo) -> None:
        self._write(
            "INSERT OR IGNORE INTO tracks (id, title, duration_secs, isrc) VALUES (?, ?, ?, ?)",
            (track.id, track.title, track.duration_secs, track.isrc),
        )

    def get_track_by_id(self, track_id: str) -> TrackInfo | None:
        rows = self._read(
            """
            SELECT t.id, t.title, t.duration_secs, t.isrc, a.id, a.title, a.cover
            FROM tracks t
            LEFT JOIN albums_tracks lnk ON lnk.track_id = t.id
            LEFT JOIN albums a ON a.id = lnk.album_id
            WHERE t.id = ?
            """,
            (track_id,),
        )
        if not rows:
            return None
        tid, title, duration, isrc, album_id, album_title, cover = rows[0]
        artists = self._read(
            """
            SELECT ar.id, ar.name FROM artists ar
            JOIN artists_tracks lnk ON lnk.artist_id = ar.id
            WHERE lnk.track_id = ? ORDER BY ar.name
            """,
            (track_id,),
        )
        return TrackInfo(
            id=tid,
            title=title,
            album=Album(album_id or "", album_title or "", cover or ""),
            artists=tuple(Artist(aid, name) for aid, name in artists),
            duration_secs=duration,
            isrc=isrc,
            cover=cover or "",
            tags=tuple(self.track_tags(track_id)),
        )

    def insert_album_if_absent(self, album: Album) -> None:
        self._write(
            "INSERT OR IGNORE INTO albums (id, title, cover) VALUES (?, ?, ?)",
            (album.id, album.title, album.cover),
        )

    def insert_artist_if_absent(self, artist: Artist) -> None:
        self._write("INSERT OR IGNORE INTO artists (id, name) VALUES (?, ?)", (artist.id, artist.name))

    def insert_tag_if_absent(self, tag: Tag) -> None:
        self._write("INSERT OR IGNORE INTO tags (id) VALUES (?)", (tag.id,))

    def track_tags(self, track_id: str) -> list[Tag]:
        rows = self._read("SELECT tag_id FROM tags_tracks WHERE track_id = ? ORDER BY tag_id", (track_id,))
        return [Tag(r[0]) for r in rows]

    # -------- links --------
    def link_track_artist(self, track_id: str, artist_id: str) -> None:
        self._write(
            "INSERT OR IGNORE INTO artists_tracks (artist_id, track_id) VALUES (?, ?)",
            (artist_id, track_id),
        )

    def link_track_album(self, track_id: str, album_id: str) -> None:
        self._write(
            "INSERT OR IGNORE INTO albums_tracks (album_id, track_id) VALUES (?, ?)",
            (album_id, track_id),
        )

    def link_track_tag(self, track_id: str, tag_id: str) -> None:
        self._write(
            "INSERT OR IGNORE INTO tags_tracks (tag_id, track_id) VALUES (?, ?)",
            (tag_id, track_id),
        )

    def link_album_artist(self, album_id: str, artist_id: str) -> None:
        self._write(
            "INSERT OR IGNORE INTO albums_artists (album_id, artist_id) VALUES (?, ?)",
            (album_id, artist_id),
        )

    # -------- scrobbles --------
    def insert_scrobble(self, record: ScrobbleRecord) -> None:
        self._write(
            "INSERT OR IGNORE INTO scrobbles (timestamp, origin, duration_secs, track_id) VALUES (?, ?, ?, ?)",
            (_ts_to_db(record.timestamp), record.origin, record.duration_secs, record.track_id),
        )

    def last_scrobble(self) -> ScrobbleRecord | None:
        rows = self._read(
            "SELECT timestamp, duration_secs, track_id, origin FROM scrobbles ORDER BY timestamp DESC LIMIT 1"
        )
        if not rows:
            return None
        ts, duration, track_id, origin = rows[0]
        return ScrobbleRecord(_ts_from_db(ts), duration, track_id, origin)

    def last_scrobble_timestamp(self) -> datetime | None:
        last = self.last_scrobble()
        return last.timestamp if last else None

    def scrobbles(self) -> list[ScrobbleRecord]:
        rows = self._read("SELECT timestamp, duration_secs, track_id, origin FROM scrobbles ORDER BY timestamp")
        return [ScrobbleRecord(_ts_from_db(ts), d, tid, o) for ts, d, tid, o in rows]

    def count(self, table: str) -> int:
        if table not in {"tracks", "albums", "artists", "tags", "scrobbles",
                         "artists_tracks", "albums_tracks", "tags_tracks", "albums_artists"}:
            raise ValueError(f"unknown table {table}")
        return self._read(f"SELECT COUNT(*) FROM {table}")[0][0]
