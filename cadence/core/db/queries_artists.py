"""
Artist-related DB queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return row models.
- Ordering is centralized via `cadence.core.db.ordering.artists_order_clause`.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- Deleting an artist row is a cascade concern; see `cascade.py`.
"""

from __future__ import annotations

from typing import Any, Mapping

import aiosqlite

from cadence.core.db.errors import NotFound
from cadence.core.db.models import ArtistRow, artist_row, new_id
from cadence.core.db.ordering import ArtistsOrderBy, artists_order_clause
from cadence.core.db.updates import update_columns

ARTIST_UPDATABLE = frozenset({"name", "image_id", "favorite", "pinned"})


async def insert_artist(
    conn: aiosqlite.Connection,
    name: str,
    *,
    image_id: str | None = None,
    favorite: bool = False,
    pinned: bool = False,
) -> str:
    artist_id = new_id()
    await conn.execute(
        "INSERT INTO artists (id, name, image_id, favorite, pinned) VALUES (?, ?, ?, ?, ?);",
        (artist_id, name, image_id, int(favorite), int(pinned)),
    )
    return artist_id


async def ensure_artist(conn: aiosqlite.Connection, name: str) -> str:
    """Get or create an artist by name, return ID."""
    existing = await get_artist_by_name(conn, name)
    if existing is not None:
        return existing.id
    return await insert_artist(conn, name)


async def get_artist(conn: aiosqlite.Connection, artist_id: str) -> ArtistRow:
    cursor = await conn.execute("SELECT * FROM artists WHERE id = ?;", (artist_id,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound("artist", artist_id)
    return artist_row(row)


async def get_artist_by_name(conn: aiosqlite.Connection, name: str) -> ArtistRow | None:
    cursor = await conn.execute("SELECT * FROM artists WHERE name = ?;", (name,))
    row = await cursor.fetchone()
    return artist_row(row) if row is not None else None


async def update_artist(
    conn: aiosqlite.Connection, artist_id: str, fields: Mapping[str, Any]
) -> None:
    await update_columns(
        conn,
        table="artists",
        kind="artist",
        entity_id=artist_id,
        fields=fields,
        allowed=ARTIST_UPDATABLE,
    )


async def list_artists(
    conn: aiosqlite.Connection,
    *,
    limit: int,
    offset: int,
    order_by: ArtistsOrderBy = "name",
) -> list[dict[str, Any]]:
    """List artists with their album counts: {artist: ArtistRow, album_count: int}."""
    order_clause = artists_order_clause(order_by)
    cursor = await conn.execute(
        f"""
        SELECT
            ar.*,
            (SELECT COUNT(*) FROM albums a WHERE a.artist_id = ar.id) AS album_count
        FROM artists ar
        {order_clause}
        LIMIT ? OFFSET ?;
        """,
        (int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [{"artist": artist_row(r), "album_count": int(r["album_count"])} for r in rows]


async def count_artists(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM artists;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def count_albums_by_artist(conn: aiosqlite.Connection, artist_id: str) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM albums WHERE artist_id = ?;", (artist_id,)
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def list_favorite_artists(conn: aiosqlite.Connection) -> list[ArtistRow]:
    cursor = await conn.execute(
        "SELECT * FROM artists ar WHERE favorite = 1 ORDER BY ar.name COLLATE NOCASE ASC;"
    )
    rows = await cursor.fetchall()
    return [artist_row(r) for r in rows]
