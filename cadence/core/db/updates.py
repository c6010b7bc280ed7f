"""
Column-whitelisted UPDATE helpers shared by the entity query modules.

Only column names from the caller's whitelist are ever interpolated into SQL;
values are always bound parameters.
"""

from __future__ import annotations

from typing import Any, Mapping

import aiosqlite

from cadence.core.db.errors import ConstraintViolation, NotFound
from cadence.core.db.models import ItemKind

# kind -> (table, flags it supports)
_FLAG_TABLES: dict[ItemKind, tuple[str, frozenset[str]]] = {
    ItemKind.SONG: ("songs", frozenset({"favorite", "pinned"})),
    ItemKind.ALBUM: ("albums", frozenset({"favorite", "pinned"})),
    ItemKind.ARTIST: ("artists", frozenset({"favorite", "pinned"})),
    ItemKind.PLAYLIST: ("playlists", frozenset({"pinned"})),
}


async def update_columns(
    conn: aiosqlite.Connection,
    *,
    table: str,
    kind: str,
    entity_id: str,
    fields: Mapping[str, Any],
    allowed: frozenset[str],
    touch_column: str | None = None,
) -> None:
    """
    UPDATE `table` SET <fields> WHERE id = entity_id.

    Raises:
        ConstraintViolation: a field name is not in `allowed`
        NotFound: no row with that id
    """
    unknown = set(fields) - allowed
    if unknown:
        raise ConstraintViolation(f"Cannot update {kind} field(s): {', '.join(sorted(unknown))}")

    assignments = [f"{column} = :{column}" for column in fields]
    if touch_column is not None:
        assignments.append(f"{touch_column} = DATETIME('now')")
    if not assignments:
        # Nothing to change; still report a missing row.
        cursor = await conn.execute(f"SELECT 1 FROM {table} WHERE id = ?;", (entity_id,))
        if await cursor.fetchone() is None:
            raise NotFound(kind, entity_id)
        return

    params = dict(fields)
    params["_id"] = entity_id
    cursor = await conn.execute(
        f"UPDATE {table} SET {', '.join(assignments)} WHERE id = :_id;",
        params,
    )
    if cursor.rowcount == 0:
        raise NotFound(kind, entity_id)


async def set_flag(
    conn: aiosqlite.Connection, kind: ItemKind, entity_id: str, flag: str, value: bool
) -> None:
    """Set `favorite` or `pinned` on a catalog entity."""
    table, flags = _FLAG_TABLES[kind]
    if flag not in flags:
        raise ConstraintViolation(f"{kind.value} has no {flag} flag")
    touch = "date_updated" if kind in (ItemKind.SONG, ItemKind.PLAYLIST) else None
    await update_columns(
        conn,
        table=table,
        kind=kind.value,
        entity_id=entity_id,
        fields={flag: 1 if value else 0},
        allowed=flags,
        touch_column=touch,
    )
