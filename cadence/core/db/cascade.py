"""
Conditional cascade and garbage collection for catalog deletes.

Rules (bottom-up, evaluated after every structural delete):
- Song deleted -> its album is deleted when no song is left in it.
- Album deleted -> its artist is deleted when no album is left for it.
- Every image touched by the chain (songs, albums, artists, playlists removed,
  or images replaced by an update) is deleted once nothing references it.

Forward paths:
- `delete_album` removes every song in the album first, then the album, then
  applies the artist rule.
- `delete_artist` removes each of its albums (with their songs), then the
  artist. Songs credited to the artist but filed elsewhere survive; the
  `songs.artist_id` foreign key sets them to NULL.

Ordering inside one run:
1. structural deletes (songs, albums, artists, playlists)
2. position repair of every playlist that lost a track
3. image reference checks, deduplicated, against the post-delete state

Everything here runs inside the caller's write transaction and never commits.
The storage-level cascades (playlist_tracks, event_contexts, events) fire on
the row deletes below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

import aiosqlite

from cadence.core.db.queries_albums import count_songs_by_album, get_album, list_album_ids_by_artist
from cadence.core.db.queries_artists import count_albums_by_artist, get_artist
from cadence.core.db.queries_images import delete_image_if_unreferenced, list_unreferenced_image_ids
from cadence.core.db.queries_playlists import (
    compact_positions,
    get_playlist,
    list_playlist_ids_for_songs,
)
from cadence.core.db.queries_songs import get_song

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CascadeReport:
    """Ids removed by one cascade run, in deletion order."""

    songs: list[str] = field(default_factory=list)
    albums: list[str] = field(default_factory=list)
    artists: list[str] = field(default_factory=list)
    playlists: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.songs or self.albums or self.artists or self.playlists or self.images)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "songs": list(self.songs),
            "albums": list(self.albums),
            "artists": list(self.artists),
            "playlists": list(self.playlists),
            "images": list(self.images),
        }

    def summary(self) -> str:
        return (
            f"songs={len(self.songs)} albums={len(self.albums)} "
            f"artists={len(self.artists)} playlists={len(self.playlists)} "
            f"images={len(self.images)}"
        )


class _CascadeRun:
    """State of one cascade: what was removed and what still needs checking."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.report = CascadeReport()
        # dicts keep first-touch order and dedupe
        self._images: dict[str, None] = {}
        self._playlists: dict[str, None] = {}

    def touch_image(self, image_id: str | None) -> None:
        if image_id is not None:
            self._images.setdefault(image_id, None)

    async def remove_song(self, song_id: str, *, collect_album: bool = True) -> None:
        song = await get_song(self.conn, song_id)
        for playlist_id in await list_playlist_ids_for_songs(self.conn, [song_id]):
            self._playlists.setdefault(playlist_id, None)

        await self.conn.execute("DELETE FROM songs WHERE id = ?;", (song_id,))
        self.report.songs.append(song_id)
        self.touch_image(song.image_id)
        logger.debug("Deleted song %s (%s)", song_id, song.file_path)

        if collect_album and song.album_id is not None:
            await self.collect_album_if_empty(song.album_id)

    async def collect_album_if_empty(self, album_id: str) -> None:
        if await count_songs_by_album(self.conn, album_id) > 0:
            return
        await self.remove_album_row(album_id)

    async def remove_album_row(self, album_id: str, *, collect_artist: bool = True) -> None:
        album = await get_album(self.conn, album_id)
        await self.conn.execute("DELETE FROM albums WHERE id = ?;", (album_id,))
        self.report.albums.append(album_id)
        self.touch_image(album.image_id)
        logger.debug("Deleted album %s (%r)", album_id, album.title)

        if collect_artist and album.artist_id is not None:
            await self.collect_artist_if_albumless(album.artist_id)

    async def collect_artist_if_albumless(self, artist_id: str) -> None:
        if await count_albums_by_artist(self.conn, artist_id) > 0:
            return
        await self.remove_artist_row(artist_id)

    async def remove_artist_row(self, artist_id: str) -> None:
        artist = await get_artist(self.conn, artist_id)
        # songs.artist_id is ON DELETE SET NULL
        await self.conn.execute("DELETE FROM artists WHERE id = ?;", (artist_id,))
        self.report.artists.append(artist_id)
        self.touch_image(artist.image_id)
        logger.debug("Deleted artist %s (%r)", artist_id, artist.name)

    async def remove_album_forward(self, album_id: str, *, collect_artist: bool) -> None:
        cursor = await self.conn.execute(
            "SELECT id FROM songs WHERE album_id = ? ORDER BY id ASC;", (album_id,)
        )
        song_ids = [r["id"] for r in await cursor.fetchall()]
        for song_id in song_ids:
            await self.remove_song(song_id, collect_album=False)
        await self.remove_album_row(album_id, collect_artist=collect_artist)

    async def finish(self, label: str) -> CascadeReport:
        removed = set(self.report.playlists)
        for playlist_id in self._playlists:
            if playlist_id in removed:
                continue
            changed = await compact_positions(self.conn, playlist_id)
            if changed:
                logger.debug("Recompacted playlist %s (%d positions moved)", playlist_id, changed)

        for image_id in self._images:
            if await delete_image_if_unreferenced(self.conn, image_id):
                self.report.images.append(image_id)

        if not self.report.is_empty():
            logger.info("Cascade %s removed %s", label, self.report.summary())
        return self.report


async def delete_song(conn: aiosqlite.Connection, song_id: str) -> CascadeReport:
    """Delete a song and collect its album, artist and images when orphaned."""
    run = _CascadeRun(conn)
    await run.remove_song(song_id)
    return await run.finish(f"delete_song({song_id})")


async def delete_album(conn: aiosqlite.Connection, album_id: str) -> CascadeReport:
    """Delete an album with all its songs, then collect its artist when albumless."""
    run = _CascadeRun(conn)
    await get_album(conn, album_id)
    await run.remove_album_forward(album_id, collect_artist=True)
    return await run.finish(f"delete_album({album_id})")


async def delete_artist(conn: aiosqlite.Connection, artist_id: str) -> CascadeReport:
    """Delete an artist with its albums and their songs."""
    run = _CascadeRun(conn)
    await get_artist(conn, artist_id)
    for album_id in await list_album_ids_by_artist(conn, artist_id):
        await run.remove_album_forward(album_id, collect_artist=False)
    await run.remove_artist_row(artist_id)
    return await run.finish(f"delete_artist({artist_id})")


async def delete_playlist(conn: aiosqlite.Connection, playlist_id: str) -> CascadeReport:
    """Delete a playlist. Its tracks and event contexts go with it; songs stay."""
    run = _CascadeRun(conn)
    playlist = await get_playlist(conn, playlist_id)
    await conn.execute("DELETE FROM playlists WHERE id = ?;", (playlist_id,))
    run.report.playlists.append(playlist_id)
    run.touch_image(playlist.image_id)
    return await run.finish(f"delete_playlist({playlist_id})")


async def release_images(
    conn: aiosqlite.Connection, image_ids: Iterable[str | None]
) -> CascadeReport:
    """Check images that just lost a reference through an update."""
    run = _CascadeRun(conn)
    for image_id in image_ids:
        run.touch_image(image_id)
    return await run.finish("release_images")


async def collect_orphans(conn: aiosqlite.Connection) -> CascadeReport:
    """
    Sweep the whole catalog for orphans.

    Removes albums without songs, then artists with neither albums nor songs,
    then every reference-free image. Deletes nothing on a clean catalog.
    """
    run = _CascadeRun(conn)

    cursor = await conn.execute(
        """
        SELECT a.id FROM albums a
        WHERE NOT EXISTS (SELECT 1 FROM songs s WHERE s.album_id = a.id)
        ORDER BY a.id ASC;
        """
    )
    for r in await cursor.fetchall():
        await run.remove_album_row(r["id"], collect_artist=False)

    cursor = await conn.execute(
        """
        SELECT ar.id FROM artists ar
        WHERE NOT EXISTS (SELECT 1 FROM albums a WHERE a.artist_id = ar.id)
          AND NOT EXISTS (SELECT 1 FROM songs s WHERE s.artist_id = ar.id)
        ORDER BY ar.id ASC;
        """
    )
    for r in await cursor.fetchall():
        await run.remove_artist_row(r["id"])

    for image_id in await list_unreferenced_image_ids(conn):
        run.touch_image(image_id)

    return await run.finish("collect_orphans")
