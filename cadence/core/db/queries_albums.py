"""
Album-related DB queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return row models.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- SQLite unique indexes treat NULLs as distinct, so the (title, artist_id)
  index alone would accept two artist-less albums with the same title. The
  pair is checked explicitly with `IS` before every insert/update.
"""

from __future__ import annotations

from typing import Any, Mapping

import aiosqlite

from cadence.core.db.errors import ConstraintViolation, NotFound
from cadence.core.db.models import AlbumRow, album_row, new_id
from cadence.core.db.ordering import AlbumsOrderBy, albums_order_clause, contains_pattern
from cadence.core.db.updates import update_columns

ALBUM_UPDATABLE = frozenset({"title", "artist_id", "image_id", "favorite", "pinned"})


async def _check_unique_title(
    conn: aiosqlite.Connection, title: str, artist_id: str | None, exclude_id: str | None = None
) -> None:
    cursor = await conn.execute(
        """
        SELECT id FROM albums
        WHERE title = ? AND artist_id IS ? AND (? IS NULL OR id != ?)
        LIMIT 1;
        """,
        (title, artist_id, exclude_id, exclude_id),
    )
    if await cursor.fetchone() is not None:
        raise ConstraintViolation(
            f"Album {title!r} already exists for artist {artist_id!r}"
        )


async def insert_album(
    conn: aiosqlite.Connection,
    title: str,
    *,
    artist_id: str | None = None,
    image_id: str | None = None,
    favorite: bool = False,
    pinned: bool = False,
) -> str:
    await _check_unique_title(conn, title, artist_id)
    album_id = new_id()
    await conn.execute(
        """
        INSERT INTO albums (id, title, artist_id, image_id, favorite, pinned)
        VALUES (?, ?, ?, ?, ?, ?);
        """,
        (album_id, title, artist_id, image_id, int(favorite), int(pinned)),
    )
    return album_id


async def ensure_album(conn: aiosqlite.Connection, title: str, artist_id: str | None) -> str:
    """Get or create an album by title + artist_id, return ID."""
    cursor = await conn.execute(
        "SELECT id FROM albums WHERE title = ? AND artist_id IS ? LIMIT 1;",
        (title, artist_id),
    )
    row = await cursor.fetchone()
    if row is not None:
        return row["id"]
    return await insert_album(conn, title, artist_id=artist_id)


async def get_album(conn: aiosqlite.Connection, album_id: str) -> AlbumRow:
    cursor = await conn.execute("SELECT * FROM albums WHERE id = ?;", (album_id,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound("album", album_id)
    return album_row(row)


async def update_album(
    conn: aiosqlite.Connection, album_id: str, fields: Mapping[str, Any]
) -> None:
    if "title" in fields or "artist_id" in fields:
        current = await get_album(conn, album_id)
        title = fields.get("title", current.title)
        artist_id = fields.get("artist_id", current.artist_id)
        await _check_unique_title(conn, title, artist_id, exclude_id=album_id)

    await update_columns(
        conn,
        table="albums",
        kind="album",
        entity_id=album_id,
        fields=fields,
        allowed=ALBUM_UPDATABLE,
    )


_ALBUM_FILTER = """
    (:pattern IS NULL
     OR a.title LIKE :pattern ESCAPE '\\'
     OR ar.name LIKE :pattern ESCAPE '\\')
"""


async def list_albums(
    conn: aiosqlite.Connection,
    *,
    limit: int,
    offset: int,
    order_by: AlbumsOrderBy = "title",
    query: str | None = None,
) -> list[dict[str, Any]]:
    """
    List albums as {album, artist_name, song_count, year}.

    `query` keeps albums whose title or artist name contains it. `year` is the
    earliest `date` among the album's songs.
    """
    order_clause = albums_order_clause(order_by)
    cursor = await conn.execute(
        f"""
        SELECT
            a.*,
            ar.name AS artist_name,
            (SELECT COUNT(*) FROM songs s WHERE s.album_id = a.id) AS song_count,
            (SELECT MIN(s.date) FROM songs s WHERE s.album_id = a.id) AS year
        FROM albums a
        LEFT JOIN artists ar ON ar.id = a.artist_id
        WHERE {_ALBUM_FILTER}
        {order_clause}
        LIMIT :limit OFFSET :offset;
        """,
        {"pattern": contains_pattern(query), "limit": int(limit), "offset": int(offset)},
    )
    rows = await cursor.fetchall()
    return [
        {
            "album": album_row(r),
            "artist_name": r["artist_name"],
            "song_count": int(r["song_count"]),
            "year": r["year"],
        }
        for r in rows
    ]


async def count_albums(conn: aiosqlite.Connection, query: str | None = None) -> int:
    cursor = await conn.execute(
        f"""
        SELECT COUNT(*) AS c
        FROM albums a
        LEFT JOIN artists ar ON ar.id = a.artist_id
        WHERE {_ALBUM_FILTER};
        """,
        {"pattern": contains_pattern(query)},
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def count_songs_by_album(conn: aiosqlite.Connection, album_id: str) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM songs WHERE album_id = ?;", (album_id,))
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def list_album_ids_by_artist(conn: aiosqlite.Connection, artist_id: str) -> list[str]:
    cursor = await conn.execute(
        "SELECT id FROM albums WHERE artist_id = ? ORDER BY id ASC;", (artist_id,)
    )
    rows = await cursor.fetchall()
    return [r["id"] for r in rows]


async def list_favorite_albums(conn: aiosqlite.Connection) -> list[AlbumRow]:
    cursor = await conn.execute(
        "SELECT * FROM albums WHERE favorite = 1 ORDER BY title COLLATE NOCASE ASC, id ASC;"
    )
    rows = await cursor.fetchall()
    return [album_row(r) for r in rows]
