"""
Image asset DB queries.

Images are shared, reference-counted blobs: any artist, album, song or playlist
may point at one. The reference count is not stored; it is computed on demand
by scanning the four referrer tables (all of them have an index on image_id).

Deletion helpers in this module are private collaborators of
`cadence.core.db.cascade`. Nothing else should call them; the public facade
exposes no image delete.
"""

from __future__ import annotations

import hashlib

import aiosqlite

from cadence.core.db.errors import NotFound
from cadence.core.db.models import ImageRow, image_row, new_id
from cadence.core.db.schema import IMAGE_REFERRERS

_REFERENCED_SQL = " OR ".join(
    f"EXISTS (SELECT 1 FROM {table} WHERE image_id = :image_id)" for table in IMAGE_REFERRERS
)

_UNREFERENCED_FILTER = " AND ".join(
    f"NOT EXISTS (SELECT 1 FROM {table} r WHERE r.image_id = i.id)" for table in IMAGE_REFERRERS
)


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


async def insert_image(conn: aiosqlite.Connection, data: bytes, *, dedupe: bool = False) -> str:
    """
    Store a blob and return its id.

    With `dedupe=True` an existing image with identical content is reused.
    """
    digest = content_hash(data)
    if dedupe:
        cursor = await conn.execute(
            "SELECT id FROM images WHERE content_hash = ? ORDER BY date_created ASC LIMIT 1;",
            (digest,),
        )
        row = await cursor.fetchone()
        if row is not None:
            return row["id"]

    image_id = new_id()
    await conn.execute(
        "INSERT INTO images (id, data, content_hash) VALUES (?, ?, ?);",
        (image_id, data, digest),
    )
    return image_id


async def get_image(conn: aiosqlite.Connection, image_id: str) -> ImageRow:
    cursor = await conn.execute("SELECT * FROM images WHERE id = ?;", (image_id,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound("image", image_id)
    return image_row(row)


async def replace_image_data(conn: aiosqlite.Connection, image_id: str, data: bytes) -> None:
    cursor = await conn.execute(
        """
        UPDATE images
        SET data = ?, content_hash = ?, date_updated = DATETIME('now')
        WHERE id = ?
        """,
        (data, content_hash(data), image_id),
    )
    if cursor.rowcount == 0:
        raise NotFound("image", image_id)


async def delete_image_if_unreferenced(conn: aiosqlite.Connection, image_id: str) -> bool:
    """
    Delete the image when it is reference-free. Returns True if a row was deleted.

    The existence check and the delete are one statement, so the decision is
    made against the current state of the transaction.
    """
    cursor = await conn.execute(
        f"DELETE FROM images WHERE id = :image_id AND NOT ({_REFERENCED_SQL});",
        {"image_id": image_id},
    )
    return cursor.rowcount > 0


async def list_unreferenced_image_ids(conn: aiosqlite.Connection) -> list[str]:
    cursor = await conn.execute(
        f"SELECT i.id FROM images i WHERE {_UNREFERENCED_FILTER} ORDER BY i.date_created ASC;"
    )
    rows = await cursor.fetchall()
    return [r["id"] for r in rows]
