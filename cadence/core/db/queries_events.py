"""
Playback event log queries.

The log is append-only: there is no update and no direct delete. Contexts and
events disappear only through the storage-level ON DELETE CASCADE from their
song or playlist.
"""

from __future__ import annotations

import aiosqlite

from cadence.core.db.errors import NotFound
from cadence.core.db.models import (
    EventContextRow,
    EventRow,
    EventType,
    event_context_row,
    event_row,
    new_id,
)


async def insert_event_context(
    conn: aiosqlite.Connection,
    *,
    song_id: str | None = None,
    playlist_id: str | None = None,
) -> str:
    context_id = new_id()
    await conn.execute(
        "INSERT INTO event_contexts (id, song_id, playlist_id) VALUES (?, ?, ?);",
        (context_id, song_id, playlist_id),
    )
    return context_id


async def insert_event(
    conn: aiosqlite.Connection, event_type: EventType, context_id: str | None
) -> str:
    event_id = new_id()
    await conn.execute(
        "INSERT INTO events (id, event_type, context_id) VALUES (?, ?, ?);",
        (event_id, event_type.value, context_id),
    )
    return event_id


async def get_event(conn: aiosqlite.Connection, event_id: str) -> EventRow:
    cursor = await conn.execute("SELECT * FROM events WHERE id = ?;", (event_id,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound("event", event_id)
    return event_row(row)


async def get_event_context(conn: aiosqlite.Connection, context_id: str) -> EventContextRow:
    cursor = await conn.execute("SELECT * FROM event_contexts WHERE id = ?;", (context_id,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound("event context", context_id)
    return event_context_row(row)


async def list_events_by_type(
    conn: aiosqlite.Connection, event_type: EventType
) -> list[EventRow]:
    """Newest first."""
    cursor = await conn.execute(
        """
        SELECT * FROM events
        WHERE event_type = ?
        ORDER BY timestamp DESC, rowid DESC;
        """,
        (event_type.value,),
    )
    rows = await cursor.fetchall()
    return [event_row(r) for r in rows]


async def list_event_contexts_for_song(
    conn: aiosqlite.Connection, song_id: str
) -> list[EventContextRow]:
    cursor = await conn.execute(
        "SELECT * FROM event_contexts WHERE song_id = ? ORDER BY date_created ASC, rowid ASC;",
        (song_id,),
    )
    rows = await cursor.fetchall()
    return [event_context_row(r) for r in rows]


async def list_event_contexts_for_playlist(
    conn: aiosqlite.Connection, playlist_id: str
) -> list[EventContextRow]:
    cursor = await conn.execute(
        "SELECT * FROM event_contexts WHERE playlist_id = ? ORDER BY date_created ASC, rowid ASC;",
        (playlist_id,),
    )
    rows = await cursor.fetchall()
    return [event_context_row(r) for r in rows]
