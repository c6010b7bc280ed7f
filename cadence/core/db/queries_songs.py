"""
Song-related DB queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return row models.
- Ordering is centralized via `cadence.core.db.ordering.songs_order_clause`.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Uniqueness of `file_path` and the artist/album/image foreign keys are enforced
by SQLite; the resulting IntegrityErrors are translated at the transaction
boundary.
"""

from __future__ import annotations

from typing import Any, Mapping

import aiosqlite

from cadence.core.db.errors import NotFound
from cadence.core.db.models import NewSong, RecentItem, SongRow, new_id, recent_item, song_row
from cadence.core.db.ordering import SongsOrderBy, contains_pattern, songs_order_clause
from cadence.core.db.updates import update_columns

SONG_UPDATABLE = frozenset(
    {
        "title",
        "artist_id",
        "album_id",
        "file_path",
        "file_size",
        "file_modified",
        "genre",
        "date",
        "duration",
        "image_id",
        "track_number",
        "favorite",
        "lufs",
        "pinned",
    }
)


def _song_params(song: NewSong) -> dict[str, Any]:
    return {
        "title": song.title,
        "artist_id": song.artist_id,
        "album_id": song.album_id,
        "file_path": song.file_path,
        "file_size": int(song.file_size),
        "file_modified": int(song.file_modified),
        "genre": song.genre,
        "date": song.date,
        "duration": int(song.duration),
        "image_id": song.image_id,
        "track_number": song.track_number,
        "favorite": int(song.favorite),
        "lufs": song.lufs,
        "pinned": int(song.pinned),
    }


async def insert_song(conn: aiosqlite.Connection, song: NewSong) -> str:
    params = _song_params(song)
    params["id"] = new_id()
    await conn.execute(
        """
        INSERT INTO songs (
            id, title, artist_id, album_id, file_path, file_size, file_modified,
            genre, date, duration, image_id, track_number, favorite, lufs, pinned
        ) VALUES (
            :id, :title, :artist_id, :album_id, :file_path, :file_size, :file_modified,
            :genre, :date, :duration, :image_id, :track_number, :favorite, :lufs, :pinned
        );
        """,
        params,
    )
    return params["id"]


async def upsert_song(conn: aiosqlite.Connection, song: NewSong) -> str:
    """
    Insert or update a song by its file_path. Returns the song id.

    The id of an existing row is kept; favorite/pinned flags are user state
    and are not overwritten by an import.
    """
    params = _song_params(song)
    params["id"] = new_id()
    await conn.execute(
        """
        INSERT INTO songs (
            id, title, artist_id, album_id, file_path, file_size, file_modified,
            genre, date, duration, image_id, track_number, favorite, lufs, pinned
        ) VALUES (
            :id, :title, :artist_id, :album_id, :file_path, :file_size, :file_modified,
            :genre, :date, :duration, :image_id, :track_number, :favorite, :lufs, :pinned
        )
        ON CONFLICT(file_path) DO UPDATE SET
            title         = excluded.title,
            artist_id     = excluded.artist_id,
            album_id      = excluded.album_id,
            file_size     = excluded.file_size,
            file_modified = excluded.file_modified,
            genre         = excluded.genre,
            date          = excluded.date,
            duration      = excluded.duration,
            image_id      = excluded.image_id,
            track_number  = excluded.track_number,
            lufs          = excluded.lufs,
            date_updated  = DATETIME('now')
        """,
        params,
    )

    # Fetch id deterministically
    cursor = await conn.execute("SELECT id FROM songs WHERE file_path = ?;", (song.file_path,))
    row = await cursor.fetchone()
    if row is None:
        raise RuntimeError("Upsert failed: song row not found after insert/update.")
    return row["id"]


async def get_song(conn: aiosqlite.Connection, song_id: str) -> SongRow:
    cursor = await conn.execute("SELECT * FROM songs WHERE id = ?;", (song_id,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound("song", song_id)
    return song_row(row)


async def get_song_by_path(conn: aiosqlite.Connection, file_path: str) -> SongRow | None:
    cursor = await conn.execute("SELECT * FROM songs WHERE file_path = ?;", (file_path,))
    row = await cursor.fetchone()
    return song_row(row) if row is not None else None


async def update_song(
    conn: aiosqlite.Connection, song_id: str, fields: Mapping[str, Any]
) -> None:
    await update_columns(
        conn,
        table="songs",
        kind="song",
        entity_id=song_id,
        fields=fields,
        allowed=SONG_UPDATABLE,
        touch_column="date_updated",
    )


_SONG_FILTER = """
    (:pattern IS NULL
     OR s.title LIKE :pattern ESCAPE '\\'
     OR ar.name LIKE :pattern ESCAPE '\\'
     OR al.title LIKE :pattern ESCAPE '\\')
"""

_SONG_FILTER_JOINS = """
    LEFT JOIN artists ar ON ar.id = s.artist_id
    LEFT JOIN albums al ON al.id = s.album_id
"""


async def list_songs(
    conn: aiosqlite.Connection,
    *,
    limit: int,
    offset: int,
    order_by: SongsOrderBy = "title",
    query: str | None = None,
) -> list[SongRow]:
    """`query` keeps songs whose title, artist name or album title contains it."""
    order_clause = songs_order_clause(order_by)
    cursor = await conn.execute(
        f"""
        SELECT s.* FROM songs s
        {_SONG_FILTER_JOINS}
        WHERE {_SONG_FILTER}
        {order_clause}
        LIMIT :limit OFFSET :offset;
        """,
        {"pattern": contains_pattern(query), "limit": int(limit), "offset": int(offset)},
    )
    rows = await cursor.fetchall()
    return [song_row(r) for r in rows]


async def count_songs(conn: aiosqlite.Connection, query: str | None = None) -> int:
    cursor = await conn.execute(
        f"""
        SELECT COUNT(*) AS c FROM songs s
        {_SONG_FILTER_JOINS}
        WHERE {_SONG_FILTER};
        """,
        {"pattern": contains_pattern(query)},
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def list_album_songs(conn: aiosqlite.Connection, album_id: str) -> list[SongRow]:
    order_clause = songs_order_clause("tracknum")
    cursor = await conn.execute(
        f"SELECT * FROM songs s WHERE s.album_id = ? {order_clause};", (album_id,)
    )
    rows = await cursor.fetchall()
    return [song_row(r) for r in rows]


async def list_recently_added_songs(conn: aiosqlite.Connection, limit: int) -> list[SongRow]:
    return await list_songs(conn, limit=limit, offset=0, order_by="added")


async def list_favorite_songs(conn: aiosqlite.Connection) -> list[SongRow]:
    order_clause = songs_order_clause("title")
    cursor = await conn.execute(f"SELECT * FROM songs s WHERE s.favorite = 1 {order_clause};")
    rows = await cursor.fetchall()
    return [song_row(r) for r in rows]


async def list_recently_added_items(conn: aiosqlite.Connection, limit: int) -> list[RecentItem]:
    """
    Group the `limit` newest songs into feed items, newest item first.

    Songs sharing a cover and an album form one item represented by the
    earliest-added of them. Songs without a cover are never grouped.
    """
    cursor = await conn.execute(
        """
        WITH recent AS (
            SELECT s.rowid AS rid, s.id, s.image_id, s.album_id, s.date_added
            FROM songs s
            ORDER BY s.date_added DESC, s.rowid DESC
            LIMIT ?
        ),
        grouped AS (
            SELECT
                COALESCE(image_id, 'song:' || id) AS group_key,
                image_id,
                album_id,
                MAX(date_added) AS most_recent,
                MAX(rid) AS latest_rid,
                MIN(rid) AS first_rid,
                COUNT(*) AS song_count
            FROM recent
            GROUP BY group_key, image_id, album_id
        )
        SELECT
            s.id AS first_song_id,
            s.title AS first_song_title,
            g.song_count,
            g.image_id,
            g.album_id,
            al.title AS album_title,
            s.artist_id,
            ar.name AS artist_name,
            s.date AS year,
            g.most_recent
        FROM grouped g
        JOIN songs s ON s.rowid = g.first_rid
        LEFT JOIN albums al ON al.id = g.album_id
        LEFT JOIN artists ar ON ar.id = s.artist_id
        ORDER BY g.most_recent DESC, g.latest_rid DESC;
        """,
        (int(limit),),
    )
    rows = await cursor.fetchall()
    return [recent_item(r) for r in rows]
