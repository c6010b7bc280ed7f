"""
Playlist and playlist-membership DB queries.

Position model:
- `playlist_tracks.position` is zero-based and dense: a playlist with N tracks
  holds exactly the positions 0..N-1.
- Every mutating helper here restores that invariant before returning, except
  `remove_track(..., compact=False)` which leaves the hole for a later
  `compact_positions()` call. `add_track` and `move_track` compact first, so
  a hole left behind in an earlier transaction never decides where they land.
- There is no unique index on (playlist_id, position): the
  range shifts below pass through transient duplicates mid-statement.

All helpers assume they run inside the caller's write transaction, so readers
never see a half-shifted playlist.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import aiosqlite

from cadence.core.db.errors import ConstraintViolation, NotFound
from cadence.core.db.models import (
    PlaylistRow,
    PlaylistTrackRow,
    new_id,
    playlist_row,
    playlist_track_row,
)
from cadence.core.db.updates import update_columns

PLAYLIST_UPDATABLE = frozenset({"name", "description", "image_id", "pinned"})


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


async def insert_playlist(
    conn: aiosqlite.Connection,
    name: str,
    *,
    description: str | None = None,
    image_id: str | None = None,
    pinned: bool = False,
) -> str:
    playlist_id = new_id()
    await conn.execute(
        """
        INSERT INTO playlists (id, name, description, image_id, pinned)
        VALUES (?, ?, ?, ?, ?);
        """,
        (playlist_id, name, description, image_id, int(pinned)),
    )
    return playlist_id


async def get_playlist(conn: aiosqlite.Connection, playlist_id: str) -> PlaylistRow:
    cursor = await conn.execute("SELECT * FROM playlists WHERE id = ?;", (playlist_id,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound("playlist", playlist_id)
    return playlist_row(row)


async def update_playlist(
    conn: aiosqlite.Connection, playlist_id: str, fields: Mapping[str, Any]
) -> None:
    await update_columns(
        conn,
        table="playlists",
        kind="playlist",
        entity_id=playlist_id,
        fields=fields,
        allowed=PLAYLIST_UPDATABLE,
        touch_column="date_updated",
    )


async def list_playlists(conn: aiosqlite.Connection) -> list[PlaylistRow]:
    cursor = await conn.execute(
        "SELECT * FROM playlists ORDER BY date_created ASC, name COLLATE NOCASE ASC, id ASC;"
    )
    rows = await cursor.fetchall()
    return [playlist_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


async def count_tracks(conn: aiosqlite.Connection, playlist_id: str) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM playlist_tracks WHERE playlist_id = ?;", (playlist_id,)
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def list_tracks(conn: aiosqlite.Connection, playlist_id: str) -> list[PlaylistTrackRow]:
    cursor = await conn.execute(
        """
        SELECT * FROM playlist_tracks
        WHERE playlist_id = ?
        ORDER BY position ASC, date_added ASC, id ASC;
        """,
        (playlist_id,),
    )
    rows = await cursor.fetchall()
    return [playlist_track_row(r) for r in rows]


async def _get_track(
    conn: aiosqlite.Connection, playlist_id: str, song_id: str
) -> PlaylistTrackRow | None:
    cursor = await conn.execute(
        "SELECT * FROM playlist_tracks WHERE playlist_id = ? AND song_id = ?;",
        (playlist_id, song_id),
    )
    row = await cursor.fetchone()
    return playlist_track_row(row) if row is not None else None


async def add_track(
    conn: aiosqlite.Connection,
    playlist_id: str,
    song_id: str,
    position: int | None = None,
) -> PlaylistTrackRow:
    """
    Insert a song into a playlist.

    `position=None` appends. Any other value is clamped to [0, N]; tracks at
    or after it move up by one.
    """
    await get_playlist(conn, playlist_id)
    if await _get_track(conn, playlist_id, song_id) is not None:
        raise ConstraintViolation(f"Song {song_id!r} is already in playlist {playlist_id!r}")

    await compact_positions(conn, playlist_id)
    size = await count_tracks(conn, playlist_id)
    target = size if position is None else max(0, min(int(position), size))

    await conn.execute(
        """
        UPDATE playlist_tracks
        SET position = position + 1
        WHERE playlist_id = ? AND position >= ?;
        """,
        (playlist_id, target),
    )
    track_id = new_id()
    await conn.execute(
        """
        INSERT INTO playlist_tracks (id, playlist_id, song_id, position)
        VALUES (?, ?, ?, ?);
        """,
        (track_id, playlist_id, song_id, target),
    )
    track = await _get_track(conn, playlist_id, song_id)
    if track is None:
        raise RuntimeError("Insert failed: playlist track not found after insert.")
    return track


async def remove_track(
    conn: aiosqlite.Connection, playlist_id: str, song_id: str, *, compact: bool = True
) -> None:
    """Remove a song from a playlist. The song itself is never deleted."""
    track = await _get_track(conn, playlist_id, song_id)
    if track is None:
        raise NotFound("playlist track", f"{playlist_id}/{song_id}")

    await conn.execute("DELETE FROM playlist_tracks WHERE id = ?;", (track.id,))
    if compact:
        await compact_positions(conn, playlist_id)


async def move_track(
    conn: aiosqlite.Connection, playlist_id: str, song_id: str, new_position: int
) -> PlaylistTrackRow:
    """Move a track to `new_position` (clamped to [0, N-1]), shifting the range between."""
    if await _get_track(conn, playlist_id, song_id) is None:
        raise NotFound("playlist track", f"{playlist_id}/{song_id}")

    await compact_positions(conn, playlist_id)
    track = await _get_track(conn, playlist_id, song_id)
    if track is None:
        raise RuntimeError("Move failed: playlist track vanished during compaction.")
    size = await count_tracks(conn, playlist_id)
    old = track.position
    new = max(0, min(int(new_position), size - 1))
    if new == old:
        return track

    if new < old:
        await conn.execute(
            """
            UPDATE playlist_tracks
            SET position = position + 1
            WHERE playlist_id = ? AND position >= ? AND position < ?;
            """,
            (playlist_id, new, old),
        )
    else:
        await conn.execute(
            """
            UPDATE playlist_tracks
            SET position = position - 1
            WHERE playlist_id = ? AND position > ? AND position <= ?;
            """,
            (playlist_id, old, new),
        )
    await conn.execute(
        "UPDATE playlist_tracks SET position = ? WHERE id = ?;",
        (new, track.id),
    )
    moved = await _get_track(conn, playlist_id, song_id)
    if moved is None:
        raise RuntimeError("Move failed: playlist track vanished mid-update.")
    return moved


async def reorder_tracks(
    conn: aiosqlite.Connection, playlist_id: str, ordered_song_ids: Sequence[str]
) -> None:
    """Rewrite the whole order. `ordered_song_ids` must be a permutation of the members."""
    current = await list_tracks(conn, playlist_id)
    if len(ordered_song_ids) != len(set(ordered_song_ids)) or set(ordered_song_ids) != {
        t.song_id for t in current
    }:
        raise ConstraintViolation(
            f"Reorder of playlist {playlist_id!r} must list every member exactly once"
        )

    for position, song_id in enumerate(ordered_song_ids):
        await conn.execute(
            """
            UPDATE playlist_tracks
            SET position = ?
            WHERE playlist_id = ? AND song_id = ?;
            """,
            (position, playlist_id, song_id),
        )


async def compact_positions(conn: aiosqlite.Connection, playlist_id: str) -> int:
    """
    Reindex positions to 0..N-1 keeping the current relative order.

    Returns the number of rows whose position changed.
    """
    tracks = await list_tracks(conn, playlist_id)
    changed = 0
    for new_position, track in enumerate(tracks):
        if track.position == new_position:
            continue
        await conn.execute(
            "UPDATE playlist_tracks SET position = ? WHERE id = ?;",
            (new_position, track.id),
        )
        changed += 1
    return changed


async def list_playlist_ids_for_songs(
    conn: aiosqlite.Connection, song_ids: Sequence[str]
) -> list[str]:
    if not song_ids:
        return []
    placeholders = ",".join("?" * len(song_ids))
    cursor = await conn.execute(
        f"""
        SELECT DISTINCT playlist_id FROM playlist_tracks
        WHERE song_id IN ({placeholders})
        ORDER BY playlist_id ASC;
        """,
        list(song_ids),
    )
    rows = await cursor.fetchall()
    return [r["playlist_id"] for r in rows]
