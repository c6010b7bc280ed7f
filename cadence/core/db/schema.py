"""
Database schema + migrations for Cadence.

- Connection management and the public `CatalogDb` facade live in `catalog_db.py`
- Schema creation, schema versioning, and forward-only migrations live here

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- Structural deletes (songs -> albums -> artists, images) are NOT declared as
  ON DELETE CASCADE. They are conditional and live in `cascade.py`; the plain
  foreign keys here make SQLite refuse any delete that would leave a dangling
  album, artist or image reference.
- History and membership rows (playlist_tracks, event_contexts, events) have no
  independent existence and do cascade at the storage level.
"""

from __future__ import annotations

import logging
from typing import Final

import aiosqlite

logger = logging.getLogger(__name__)

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 2

# Tables that may hold an images.id reference.
IMAGE_REFERRERS: Final[tuple[str, ...]] = ("artists", "albums", "songs", "playlists")


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version.

    This function assumes:
    - `conn` is an open aiosqlite connection in autocommit mode
    - foreign_keys pragma is enabled by the caller
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    logger.info("Migrating catalog schema from v%d to v%d", current, SCHEMA_VERSION)
    await conn.execute("BEGIN IMMEDIATE;")
    try:
        await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
        await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    except Exception:
        await conn.execute("ROLLBACK;")
        raise
    await conn.execute("COMMIT;")


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """
    Perform forward-only migrations.

    Runs inside the caller's transaction; does not commit.
    """
    # v0 -> v1
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS images (
                id TEXT PRIMARY KEY NOT NULL,
                data BLOB NOT NULL,
                date_created TEXT NOT NULL DEFAULT (DATETIME('now')),
                date_updated TEXT NOT NULL DEFAULT (DATETIME('now'))
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS artists (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                image_id TEXT REFERENCES images(id),
                favorite INTEGER NOT NULL DEFAULT 0,
                pinned INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS albums (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                artist_id TEXT REFERENCES artists(id),
                image_id TEXT REFERENCES images(id),
                favorite INTEGER NOT NULL DEFAULT 0,
                pinned INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS songs (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                artist_id TEXT REFERENCES artists(id) ON DELETE SET NULL,
                album_id TEXT REFERENCES albums(id),
                file_path TEXT NOT NULL,
                file_size INTEGER NOT NULL DEFAULT 0,
                file_modified INTEGER NOT NULL DEFAULT 0,
                genre TEXT,
                date TEXT,
                duration INTEGER NOT NULL,
                image_id TEXT REFERENCES images(id),
                track_number INTEGER,
                favorite INTEGER NOT NULL DEFAULT 0,
                lufs REAL,
                pinned INTEGER NOT NULL DEFAULT 0,
                date_added TEXT NOT NULL DEFAULT (DATETIME('now')),
                date_updated TEXT NOT NULL DEFAULT (DATETIME('now'))
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlists (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                image_id TEXT REFERENCES images(id),
                pinned INTEGER NOT NULL DEFAULT 0,
                date_created TEXT NOT NULL DEFAULT (DATETIME('now')),
                date_updated TEXT NOT NULL DEFAULT (DATETIME('now'))
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlist_tracks (
                id TEXT PRIMARY KEY,
                playlist_id TEXT NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                song_id TEXT NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                date_added TEXT NOT NULL DEFAULT (DATETIME('now'))
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS event_contexts (
                id TEXT PRIMARY KEY,
                song_id TEXT REFERENCES songs(id) ON DELETE CASCADE,
                playlist_id TEXT REFERENCES playlists(id) ON DELETE CASCADE,
                date_created TEXT NOT NULL DEFAULT (DATETIME('now'))
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                event_type TEXT NOT NULL CHECK(
                    event_type IN ('PLAY', 'STOP', 'PAUSE', 'RESUME')
                ),
                context_id TEXT REFERENCES event_contexts(id) ON DELETE CASCADE,
                date_created TEXT NOT NULL DEFAULT (DATETIME('now')),
                timestamp TEXT NOT NULL DEFAULT (DATETIME('now'))
            )
            """
        )

        # Foreign key columns.
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_artist ON songs(artist_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_album ON songs(album_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_albums_artist ON albums(artist_id);")
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlist_tracks_playlist ON playlist_tracks(playlist_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlist_tracks_song ON playlist_tracks(song_id);"
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_events_context ON events(context_id);")
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_event_contexts_song ON event_contexts(song_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_event_contexts_playlist ON event_contexts(playlist_id);"
        )
        for table in IMAGE_REFERRERS:
            await conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_image_id ON {table}(image_id);"
            )

        # Filtered listing.
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_favorite ON songs(favorite);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_albums_favorite ON albums(favorite);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_artists_favorite ON artists(favorite);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_date_added ON songs(date_added);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp);")
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_images_date_created ON images(date_created);"
        )

        # Uniqueness.
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_albums_title_artist ON albums(title, artist_id);"
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_songs_file_path_unique ON songs(file_path);"
        )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_playlist_tracks_unique "
            "ON playlist_tracks(playlist_id, song_id);"
        )
        from_version = 1

    # v1 -> v2
    if from_version == 1 and to_version >= 2:
        # Content hash for optional image dedup on insert.
        await conn.execute("ALTER TABLE images ADD COLUMN content_hash TEXT;")
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_images_content_hash ON images(content_hash);"
        )
        from_version = 2

    if from_version != to_version:
        raise RuntimeError(f"No migration path from {from_version} to {to_version}.")
