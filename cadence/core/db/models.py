"""
Row models (DTOs) and small helpers for the catalog DB.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from cadence.core.db.errors import ConstraintViolation


class EventType(str, Enum):
    """Playback event kinds accepted by the events table CHECK constraint."""

    PLAY = "PLAY"
    STOP = "STOP"
    PAUSE = "PAUSE"
    RESUME = "RESUME"


class ItemKind(str, Enum):
    """Catalog entity kinds that carry favorite/pinned flags."""

    SONG = "song"
    ALBUM = "album"
    ARTIST = "artist"
    PLAYLIST = "playlist"


@dataclass(frozen=True, slots=True)
class ImageRow:
    """Image blob as stored in SQLite."""

    id: str
    data: bytes
    content_hash: str | None
    date_created: str
    date_updated: str


@dataclass(frozen=True, slots=True)
class ArtistRow:
    id: str
    name: str
    image_id: str | None
    favorite: bool
    pinned: bool


@dataclass(frozen=True, slots=True)
class AlbumRow:
    id: str
    title: str
    artist_id: str | None
    image_id: str | None
    favorite: bool
    pinned: bool


@dataclass(frozen=True, slots=True)
class SongRow:
    """
    Canonical song record as stored in SQLite.

    Notes:
    - `file_path` is the stable unique identifier for a local file.
    - `duration` is in seconds.
    """

    id: str
    title: str
    artist_id: str | None
    album_id: str | None
    file_path: str
    file_size: int
    file_modified: int
    genre: str | None
    date: str | None
    duration: int
    image_id: str | None
    track_number: int | None
    favorite: bool
    lufs: float | None
    pinned: bool
    date_added: str
    date_updated: str


@dataclass(frozen=True, slots=True)
class NewSong:
    """
    Input record used by importers.

    `file_path` must identify the same file across imports.
    `file_size` and `file_modified` are used to detect changes.
    """

    title: str
    file_path: str
    duration: int
    artist_id: str | None = None
    album_id: str | None = None
    file_size: int = 0
    file_modified: int = 0
    genre: str | None = None
    date: str | None = None
    image_id: str | None = None
    track_number: int | None = None
    lufs: float | None = None
    favorite: bool = False
    pinned: bool = False


@dataclass(frozen=True, slots=True)
class PlaylistRow:
    id: str
    name: str
    description: str | None
    image_id: str | None
    pinned: bool
    date_created: str
    date_updated: str


@dataclass(frozen=True, slots=True)
class PlaylistTrackRow:
    """Playlist membership row. `position` is zero-based and dense per playlist."""

    id: str
    playlist_id: str
    song_id: str
    position: int
    date_added: str


@dataclass(frozen=True, slots=True)
class EventContextRow:
    id: str
    song_id: str | None
    playlist_id: str | None
    date_created: str


@dataclass(frozen=True, slots=True)
class EventRow:
    id: str
    event_type: EventType
    context_id: str | None
    date_created: str
    timestamp: str


@dataclass(frozen=True, slots=True)
class PinnedItem:
    """One entry of the pinned-items union listing."""

    id: str
    name: str
    image_id: str | None
    kind: ItemKind


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Matches per kind, best match first."""

    artists: tuple[ArtistRow, ...]
    albums: tuple[AlbumRow, ...]
    songs: tuple[SongRow, ...]
    playlists: tuple[PlaylistRow, ...] = ()


@dataclass(frozen=True, slots=True)
class SearchCounts:
    """Number of matches per kind for a search query, without limit."""

    songs: int
    albums: int
    artists: int
    playlists: int

    @property
    def total(self) -> int:
        return self.songs + self.albums + self.artists + self.playlists


@dataclass(frozen=True, slots=True)
class RecentItem:
    """
    One entry of the grouped "recently added" feed.

    Songs added together that share an album and a cover collapse into one
    item; a song without a cover is always its own item.
    """

    first_song_id: str
    first_song_title: str
    song_count: int
    image_id: str | None
    album_id: str | None
    album_title: str | None
    artist_id: str | None
    artist_name: str | None
    year: str | None
    most_recent: str


def new_id() -> str:
    """Return a fresh opaque entity id."""
    return uuid.uuid4().hex


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def require_text(value: str | None, field_name: str) -> str:
    """Normalize a required text field; empty values are a constraint violation."""
    v = normalize_text(value)
    if v is None:
        raise ConstraintViolation(f"{field_name} must not be empty")
    return v


def image_row(row: Mapping[str, Any]) -> ImageRow:
    return ImageRow(
        id=row["id"],
        data=bytes(row["data"]),
        content_hash=row["content_hash"],
        date_created=row["date_created"],
        date_updated=row["date_updated"],
    )


def artist_row(row: Mapping[str, Any]) -> ArtistRow:
    return ArtistRow(
        id=row["id"],
        name=row["name"],
        image_id=row["image_id"],
        favorite=bool(row["favorite"]),
        pinned=bool(row["pinned"]),
    )


def album_row(row: Mapping[str, Any]) -> AlbumRow:
    return AlbumRow(
        id=row["id"],
        title=row["title"],
        artist_id=row["artist_id"],
        image_id=row["image_id"],
        favorite=bool(row["favorite"]),
        pinned=bool(row["pinned"]),
    )


def song_row(row: Mapping[str, Any]) -> SongRow:
    return SongRow(
        id=row["id"],
        title=row["title"],
        artist_id=row["artist_id"],
        album_id=row["album_id"],
        file_path=row["file_path"],
        file_size=int(row["file_size"]),
        file_modified=int(row["file_modified"]),
        genre=row["genre"],
        date=row["date"],
        duration=int(row["duration"]),
        image_id=row["image_id"],
        track_number=row["track_number"],
        favorite=bool(row["favorite"]),
        lufs=row["lufs"],
        pinned=bool(row["pinned"]),
        date_added=row["date_added"],
        date_updated=row["date_updated"],
    )


def playlist_row(row: Mapping[str, Any]) -> PlaylistRow:
    return PlaylistRow(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        image_id=row["image_id"],
        pinned=bool(row["pinned"]),
        date_created=row["date_created"],
        date_updated=row["date_updated"],
    )


def playlist_track_row(row: Mapping[str, Any]) -> PlaylistTrackRow:
    return PlaylistTrackRow(
        id=row["id"],
        playlist_id=row["playlist_id"],
        song_id=row["song_id"],
        position=int(row["position"]),
        date_added=row["date_added"],
    )


def event_context_row(row: Mapping[str, Any]) -> EventContextRow:
    return EventContextRow(
        id=row["id"],
        song_id=row["song_id"],
        playlist_id=row["playlist_id"],
        date_created=row["date_created"],
    )


def event_row(row: Mapping[str, Any]) -> EventRow:
    return EventRow(
        id=row["id"],
        event_type=EventType(row["event_type"]),
        context_id=row["context_id"],
        date_created=row["date_created"],
        timestamp=row["timestamp"],
    )


def recent_item(row: Mapping[str, Any]) -> RecentItem:
    return RecentItem(
        first_song_id=row["first_song_id"],
        first_song_title=row["first_song_title"],
        song_count=int(row["song_count"]),
        image_id=row["image_id"],
        album_id=row["album_id"],
        album_title=row["album_title"],
        artist_id=row["artist_id"],
        artist_name=row["artist_name"],
        year=row["year"],
        most_recent=row["most_recent"],
    )
