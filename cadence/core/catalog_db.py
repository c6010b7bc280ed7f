"""
Music catalog store: async access layer and transaction boundary.

Goals:
- One local SQLite file, aiosqlite, async/await friendly.
- Every public write is one transaction; a delete and all of its cascade
  commit together or not at all.
- Schema evolves via user_version migrations.

Note:
- Models/DTOs and normalization helpers live in `cadence.core.db.models`
- Schema/migrations live in `cadence.core.db.schema`
- Query functions live in `cadence.core.db.queries_*` modules
- Conditional delete cascades live in `cadence.core.db.cascade`
- `CatalogDb` is the public facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, TypeVar

import aiosqlite

from cadence.config import StoreConfig, get_store_config
from cadence.core.db import (
    cascade,
    queries_albums,
    queries_artists,
    queries_events,
    queries_images,
    queries_meta,
    queries_playlists,
    queries_songs,
)
from cadence.core.db.cascade import CascadeReport
from cadence.core.db.errors import (
    CatalogError,
    CatalogNotOpenError,
    ConstraintViolation,
    TransactionAborted,
    translate_sqlite_error,
)
from cadence.core.db.models import (
    AlbumRow,
    ArtistRow,
    EventContextRow,
    EventRow,
    EventType,
    ImageRow,
    ItemKind,
    NewSong,
    PinnedItem,
    PlaylistRow,
    PlaylistTrackRow,
    RecentItem,
    SearchCounts,
    SearchResult,
    SongRow,
    normalize_text,
    require_text,
)
from cadence.core.db.retry import run_with_retry
from cadence.core.db.schema import ensure_schema as ensure_schema_sql
from cadence.core.db.updates import set_flag

logger = logging.getLogger(__name__)

T = TypeVar("T")

Work = Callable[[aiosqlite.Connection], Awaitable[T]]


def _as_kind(kind: ItemKind | str) -> ItemKind:
    if isinstance(kind, ItemKind):
        return kind
    try:
        return ItemKind(str(kind).lower())
    except ValueError as e:
        raise ConstraintViolation(f"Unknown item kind: {kind!r}") from e


def _as_event_type(event_type: EventType | str) -> EventType:
    if isinstance(event_type, EventType):
        return event_type
    try:
        return EventType(str(event_type).upper())
    except ValueError as e:
        raise ConstraintViolation(f"Unknown event type: {event_type!r}") from e


def _clean_fields(fields: dict[str, Any], required: Sequence[str] = ()) -> dict[str, Any]:
    """Normalize text columns of an update; required ones may not become empty."""
    cleaned = dict(fields)
    for key in required:
        if key in cleaned:
            cleaned[key] = require_text(cleaned[key], key)
    for key in ("genre", "date", "description"):
        if key in cleaned:
            cleaned[key] = normalize_text(cleaned[key])
    for key in ("favorite", "pinned"):
        if key in cleaned:
            cleaned[key] = 1 if cleaned[key] else 0
    return cleaned


class CatalogDb:
    """
    Async access layer for the music catalog.

    Usage:
        db = CatalogDb("cadence.db")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - One connection, in autocommit mode; transactions are explicit
      (`BEGIN IMMEDIATE` ... `COMMIT`).
    - Every operation, read or write, holds `self._lock`, so concurrent tasks
      never observe a half-applied cascade.
    - Write transactions that hit "database is locked" are retried according
      to `config.retry`.
    """

    def __init__(self, db_path: str | Path | None = None, *, config: StoreConfig | None = None) -> None:
        self._config = config if config is not None else get_store_config()
        self._db_path = str(db_path) if db_path is not None else self._config.database.path
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        settings = self._config.database
        conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        conn.row_factory = aiosqlite.Row

        await conn.execute("PRAGMA foreign_keys = ON;")
        await conn.execute(f"PRAGMA journal_mode = {settings.journal_mode.value};")
        await conn.execute(f"PRAGMA synchronous = {settings.synchronous.value};")
        await conn.execute(f"PRAGMA busy_timeout = {int(settings.busy_timeout_ms)};")
        await conn.execute("PRAGMA temp_store = MEMORY;")
        self._conn = conn
        logger.debug("Opened catalog %s", self._db_path)

    async def close(self) -> None:
        if self._conn is None:
            return
        async with self._lock:
            await self._conn.close()
            self._conn = None
        logger.debug("Closed catalog %s", self._db_path)

    async def __aenter__(self) -> "CatalogDb":
        await self.open()
        await self.ensure_schema()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise CatalogNotOpenError("CatalogDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        async with self._lock:
            try:
                await ensure_schema_sql(conn)
            except sqlite3.Error as e:
                raise translate_sqlite_error(e) from e

    # ===========================================================================
    # Transaction boundary
    # ===========================================================================

    @asynccontextmanager
    async def _reading(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = self._require_conn()
        async with self._lock:
            try:
                yield conn
            except sqlite3.Error as e:
                raise translate_sqlite_error(e) from e

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            await conn.execute("ROLLBACK;")
        except sqlite3.Error:
            logger.exception("Rollback failed on %s", self._db_path)

    async def _write(self, label: str, work: Work[T]) -> T:
        """Run `work` in one BEGIN IMMEDIATE ... COMMIT unit, retrying on lock conflicts."""

        async def attempt() -> T:
            conn = self._require_conn()
            async with self._lock:
                try:
                    await conn.execute("BEGIN IMMEDIATE;")
                    result = await work(conn)
                    await conn.execute("COMMIT;")
                except sqlite3.Error as e:
                    await self._rollback(conn)
                    raise translate_sqlite_error(e) from e
                except CatalogError:
                    await self._rollback(conn)
                    raise
                except Exception as e:
                    await self._rollback(conn)
                    raise TransactionAborted(f"{label} failed: {e}", retryable=False) from e
                except BaseException:
                    await self._rollback(conn)
                    raise
                return result

        return await run_with_retry(attempt, settings=self._config.retry, label=label)

    # ===========================================================================
    # Images
    # ===========================================================================

    async def put_image(self, data: bytes, *, dedupe: bool = False) -> str:
        """Store an image blob and return its id."""
        if not data:
            raise ConstraintViolation("Image data must not be empty")
        return await self._write(
            "put_image", lambda conn: queries_images.insert_image(conn, bytes(data), dedupe=dedupe)
        )

    async def replace_image_data(self, image_id: str, data: bytes) -> None:
        if not data:
            raise ConstraintViolation("Image data must not be empty")
        await self._write(
            "replace_image_data",
            lambda conn: queries_images.replace_image_data(conn, image_id, bytes(data)),
        )

    async def get_image(self, image_id: str) -> ImageRow:
        async with self._reading() as conn:
            return await queries_images.get_image(conn, image_id)

    # ===========================================================================
    # Artists
    # ===========================================================================

    async def create_artist(
        self,
        name: str,
        *,
        image_id: str | None = None,
        favorite: bool = False,
        pinned: bool = False,
    ) -> str:
        clean_name = require_text(name, "name")

        async def work(conn: aiosqlite.Connection) -> str:
            if await queries_artists.get_artist_by_name(conn, clean_name) is not None:
                raise ConstraintViolation(f"Artist {clean_name!r} already exists")
            return await queries_artists.insert_artist(
                conn, clean_name, image_id=image_id, favorite=favorite, pinned=pinned
            )

        return await self._write("create_artist", work)

    async def ensure_artist(self, name: str) -> str:
        """Get or create an artist by name, return ID."""
        clean_name = require_text(name, "name")
        return await self._write(
            "ensure_artist", lambda conn: queries_artists.ensure_artist(conn, clean_name)
        )

    async def get_artist(self, artist_id: str) -> ArtistRow:
        async with self._reading() as conn:
            return await queries_artists.get_artist(conn, artist_id)

    async def get_artist_by_name(self, name: str) -> ArtistRow | None:
        async with self._reading() as conn:
            return await queries_artists.get_artist_by_name(conn, name)

    async def update_artist(self, artist_id: str, **fields: Any) -> ArtistRow:
        cleaned = _clean_fields(fields, required=("name",))

        async def work(conn: aiosqlite.Connection) -> ArtistRow:
            before = await queries_artists.get_artist(conn, artist_id)
            if "name" in cleaned and cleaned["name"] != before.name:
                if await queries_artists.get_artist_by_name(conn, cleaned["name"]) is not None:
                    raise ConstraintViolation(f"Artist {cleaned['name']!r} already exists")
            await queries_artists.update_artist(conn, artist_id, cleaned)
            after = await queries_artists.get_artist(conn, artist_id)
            if before.image_id != after.image_id:
                await cascade.release_images(conn, [before.image_id])
            return after

        return await self._write("update_artist", work)

    async def list_artists(
        self, *, limit: int = 100, offset: int = 0, order_by: str = "name"
    ) -> list[dict[str, Any]]:
        async with self._reading() as conn:
            return await queries_artists.list_artists(
                conn, limit=limit, offset=offset, order_by=order_by
            )

    async def count_artists(self) -> int:
        async with self._reading() as conn:
            return await queries_artists.count_artists(conn)

    async def delete_artist(self, artist_id: str) -> CascadeReport:
        """Delete an artist together with its albums, their songs and freed images."""
        return await self._write(
            f"delete_artist({artist_id})", lambda conn: cascade.delete_artist(conn, artist_id)
        )

    # ===========================================================================
    # Albums
    # ===========================================================================

    async def create_album(
        self,
        title: str,
        *,
        artist_id: str | None = None,
        image_id: str | None = None,
        favorite: bool = False,
        pinned: bool = False,
    ) -> str:
        clean_title = require_text(title, "title")
        return await self._write(
            "create_album",
            lambda conn: queries_albums.insert_album(
                conn,
                clean_title,
                artist_id=artist_id,
                image_id=image_id,
                favorite=favorite,
                pinned=pinned,
            ),
        )

    async def ensure_album(self, title: str, artist_id: str | None = None) -> str:
        """Get or create an album by title + artist_id, return ID."""
        clean_title = require_text(title, "title")
        return await self._write(
            "ensure_album", lambda conn: queries_albums.ensure_album(conn, clean_title, artist_id)
        )

    async def get_album(self, album_id: str) -> AlbumRow:
        async with self._reading() as conn:
            return await queries_albums.get_album(conn, album_id)

    async def update_album(self, album_id: str, **fields: Any) -> AlbumRow:
        cleaned = _clean_fields(fields, required=("title",))

        async def work(conn: aiosqlite.Connection) -> AlbumRow:
            before = await queries_albums.get_album(conn, album_id)
            await queries_albums.update_album(conn, album_id, cleaned)
            after = await queries_albums.get_album(conn, album_id)
            if before.image_id != after.image_id:
                await cascade.release_images(conn, [before.image_id])
            return after

        return await self._write("update_album", work)

    async def list_albums(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        order_by: str = "title",
        query: str | None = None,
    ) -> list[dict[str, Any]]:
        async with self._reading() as conn:
            return await queries_albums.list_albums(
                conn, limit=limit, offset=offset, order_by=order_by, query=query
            )

    async def count_albums(self, query: str | None = None) -> int:
        async with self._reading() as conn:
            return await queries_albums.count_albums(conn, query)

    async def delete_album(self, album_id: str) -> CascadeReport:
        """Delete an album and its songs; the artist goes too when it has no album left."""
        return await self._write(
            f"delete_album({album_id})", lambda conn: cascade.delete_album(conn, album_id)
        )

    # ===========================================================================
    # Songs
    # ===========================================================================

    @staticmethod
    def _clean_new_song(song: NewSong) -> NewSong:
        return NewSong(
            title=require_text(song.title, "title"),
            file_path=require_text(song.file_path, "file_path"),
            duration=int(song.duration),
            artist_id=song.artist_id,
            album_id=song.album_id,
            file_size=int(song.file_size),
            file_modified=int(song.file_modified),
            genre=normalize_text(song.genre),
            date=normalize_text(song.date),
            image_id=song.image_id,
            track_number=song.track_number,
            lufs=song.lufs,
            favorite=song.favorite,
            pinned=song.pinned,
        )

    async def create_song(self, song: NewSong) -> str:
        """Insert a new song. A taken `file_path` is a ConstraintViolation."""
        clean = self._clean_new_song(song)
        return await self._write("create_song", lambda conn: queries_songs.insert_song(conn, clean))

    async def upsert_song(self, song: NewSong) -> str:
        """Insert or update a song by its file_path. Returns the song id."""
        clean = self._clean_new_song(song)

        async def work(conn: aiosqlite.Connection) -> str:
            before = await queries_songs.get_song_by_path(conn, clean.file_path)
            song_id = await queries_songs.upsert_song(conn, clean)
            if before is not None and before.image_id != clean.image_id:
                await cascade.release_images(conn, [before.image_id])
            return song_id

        return await self._write("upsert_song", work)

    async def get_song(self, song_id: str) -> SongRow:
        async with self._reading() as conn:
            return await queries_songs.get_song(conn, song_id)

    async def get_song_by_path(self, file_path: str) -> SongRow | None:
        async with self._reading() as conn:
            return await queries_songs.get_song_by_path(conn, file_path)

    async def update_song(self, song_id: str, **fields: Any) -> SongRow:
        """
        Update song columns and return the new row.

        A replaced image is released (deleted once nothing references it).
        Moving the song to another `album_id` or `artist_id` does not collect
        the previous album or artist, even when that leaves it empty; it stays
        until the next `collect_orphans()` sweep.
        """
        cleaned = _clean_fields(fields, required=("title", "file_path"))

        async def work(conn: aiosqlite.Connection) -> SongRow:
            before = await queries_songs.get_song(conn, song_id)
            await queries_songs.update_song(conn, song_id, cleaned)
            after = await queries_songs.get_song(conn, song_id)
            if before.image_id != after.image_id:
                await cascade.release_images(conn, [before.image_id])
            return after

        return await self._write("update_song", work)

    async def list_songs(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        order_by: str = "title",
        query: str | None = None,
    ) -> list[SongRow]:
        async with self._reading() as conn:
            return await queries_songs.list_songs(
                conn, limit=limit, offset=offset, order_by=order_by, query=query
            )

    async def count_songs(self, query: str | None = None) -> int:
        async with self._reading() as conn:
            return await queries_songs.count_songs(conn, query)

    async def list_album_songs(self, album_id: str) -> list[SongRow]:
        async with self._reading() as conn:
            return await queries_songs.list_album_songs(conn, album_id)

    async def list_recently_added_songs(self, limit: int = 20) -> list[SongRow]:
        async with self._reading() as conn:
            return await queries_songs.list_recently_added_songs(conn, limit)

    async def list_recently_added_items(self, limit: int = 50) -> list[RecentItem]:
        """The newest `limit` songs grouped by cover and album, newest first."""
        async with self._reading() as conn:
            return await queries_songs.list_recently_added_items(conn, limit)

    async def delete_song(self, song_id: str) -> CascadeReport:
        """Delete a song; its album, artist and images go too once orphaned."""
        return await self._write(
            f"delete_song({song_id})", lambda conn: cascade.delete_song(conn, song_id)
        )

    # ===========================================================================
    # Flags, favorites, pinned, search
    # ===========================================================================

    async def set_favorite(self, kind: ItemKind | str, entity_id: str, value: bool) -> None:
        item_kind = _as_kind(kind)
        await self._write(
            "set_favorite", lambda conn: set_flag(conn, item_kind, entity_id, "favorite", value)
        )

    async def set_pinned(self, kind: ItemKind | str, entity_id: str, value: bool) -> None:
        item_kind = _as_kind(kind)
        await self._write(
            "set_pinned", lambda conn: set_flag(conn, item_kind, entity_id, "pinned", value)
        )

    async def list_favorites(
        self, kind: ItemKind | str
    ) -> list[SongRow] | list[AlbumRow] | list[ArtistRow]:
        item_kind = _as_kind(kind)
        async with self._reading() as conn:
            if item_kind == ItemKind.SONG:
                return await queries_songs.list_favorite_songs(conn)
            if item_kind == ItemKind.ALBUM:
                return await queries_albums.list_favorite_albums(conn)
            if item_kind == ItemKind.ARTIST:
                return await queries_artists.list_favorite_artists(conn)
        raise ConstraintViolation(f"{item_kind.value} has no favorite flag")

    async def list_pinned_items(self) -> list[PinnedItem]:
        async with self._reading() as conn:
            return await queries_meta.list_pinned_items(conn)

    async def search(self, query: str, *, limit: int = 50) -> SearchResult:
        """Ranked substring search over songs, albums, artists and playlists."""
        needle = normalize_text(query)
        if needle is None:
            return SearchResult(artists=(), albums=(), songs=(), playlists=())
        async with self._reading() as conn:
            return await queries_meta.search(conn, needle, limit=limit)

    async def search_counts(self, query: str) -> SearchCounts:
        """How many rows of each kind `search(query)` would match without a limit."""
        needle = normalize_text(query)
        if needle is None:
            return SearchCounts(songs=0, albums=0, artists=0, playlists=0)
        async with self._reading() as conn:
            return await queries_meta.search_counts(conn, needle)

    # ===========================================================================
    # Playlists
    # ===========================================================================

    async def create_playlist(
        self,
        name: str,
        *,
        description: str | None = None,
        image_id: str | None = None,
        pinned: bool = False,
    ) -> str:
        clean_name = require_text(name, "name")
        return await self._write(
            "create_playlist",
            lambda conn: queries_playlists.insert_playlist(
                conn,
                clean_name,
                description=normalize_text(description),
                image_id=image_id,
                pinned=pinned,
            ),
        )

    async def get_playlist(self, playlist_id: str) -> PlaylistRow:
        async with self._reading() as conn:
            return await queries_playlists.get_playlist(conn, playlist_id)

    async def list_playlists(self) -> list[PlaylistRow]:
        async with self._reading() as conn:
            return await queries_playlists.list_playlists(conn)

    async def update_playlist(self, playlist_id: str, **fields: Any) -> PlaylistRow:
        cleaned = _clean_fields(fields, required=("name",))

        async def work(conn: aiosqlite.Connection) -> PlaylistRow:
            before = await queries_playlists.get_playlist(conn, playlist_id)
            await queries_playlists.update_playlist(conn, playlist_id, cleaned)
            after = await queries_playlists.get_playlist(conn, playlist_id)
            if before.image_id != after.image_id:
                await cascade.release_images(conn, [before.image_id])
            return after

        return await self._write("update_playlist", work)

    async def add_track(
        self, playlist_id: str, song_id: str, position: int | None = None
    ) -> PlaylistTrackRow:
        """Add a song to a playlist; `position=None` appends."""
        return await self._write(
            "add_track",
            lambda conn: queries_playlists.add_track(conn, playlist_id, song_id, position),
        )

    async def remove_track(self, playlist_id: str, song_id: str, *, compact: bool = True) -> None:
        await self._write(
            "remove_track",
            lambda conn: queries_playlists.remove_track(
                conn, playlist_id, song_id, compact=compact
            ),
        )

    async def move_track(
        self, playlist_id: str, song_id: str, new_position: int
    ) -> PlaylistTrackRow:
        return await self._write(
            "move_track",
            lambda conn: queries_playlists.move_track(conn, playlist_id, song_id, new_position),
        )

    async def reorder_playlist(self, playlist_id: str, ordered_song_ids: Sequence[str]) -> None:
        async def work(conn: aiosqlite.Connection) -> None:
            await queries_playlists.get_playlist(conn, playlist_id)
            await queries_playlists.reorder_tracks(conn, playlist_id, list(ordered_song_ids))

        await self._write("reorder_playlist", work)

    async def compact_playlist(self, playlist_id: str) -> int:
        """Close position gaps left by `remove_track(..., compact=False)`."""

        async def work(conn: aiosqlite.Connection) -> int:
            await queries_playlists.get_playlist(conn, playlist_id)
            return await queries_playlists.compact_positions(conn, playlist_id)

        return await self._write("compact_playlist", work)

    async def list_playlist_tracks(self, playlist_id: str) -> list[PlaylistTrackRow]:
        async with self._reading() as conn:
            await queries_playlists.get_playlist(conn, playlist_id)
            return await queries_playlists.list_tracks(conn, playlist_id)

    async def delete_playlist(self, playlist_id: str) -> CascadeReport:
        return await self._write(
            f"delete_playlist({playlist_id})",
            lambda conn: cascade.delete_playlist(conn, playlist_id),
        )

    # ===========================================================================
    # Events
    # ===========================================================================

    async def create_event_context(
        self, *, song_id: str | None = None, playlist_id: str | None = None
    ) -> str:
        return await self._write(
            "create_event_context",
            lambda conn: queries_events.insert_event_context(
                conn, song_id=song_id, playlist_id=playlist_id
            ),
        )

    async def record_event(
        self,
        event_type: EventType | str,
        *,
        context_id: str | None = None,
        song_id: str | None = None,
        playlist_id: str | None = None,
    ) -> str:
        """
        Append a playback event and return its id.

        Either pass an existing `context_id`, or `song_id`/`playlist_id` to
        create a fresh context for this event.
        """
        kind = _as_event_type(event_type)
        if context_id is not None and (song_id is not None or playlist_id is not None):
            raise ConstraintViolation("Pass either context_id or song_id/playlist_id, not both")

        async def work(conn: aiosqlite.Connection) -> str:
            ctx = context_id
            if ctx is None and (song_id is not None or playlist_id is not None):
                ctx = await queries_events.insert_event_context(
                    conn, song_id=song_id, playlist_id=playlist_id
                )
            return await queries_events.insert_event(conn, kind, ctx)

        return await self._write("record_event", work)

    async def get_event(self, event_id: str) -> EventRow:
        async with self._reading() as conn:
            return await queries_events.get_event(conn, event_id)

    async def get_event_context(self, context_id: str) -> EventContextRow:
        async with self._reading() as conn:
            return await queries_events.get_event_context(conn, context_id)

    async def list_events_by_type(self, event_type: EventType | str) -> list[EventRow]:
        kind = _as_event_type(event_type)
        async with self._reading() as conn:
            return await queries_events.list_events_by_type(conn, kind)

    async def list_event_contexts_for_song(self, song_id: str) -> list[EventContextRow]:
        async with self._reading() as conn:
            return await queries_events.list_event_contexts_for_song(conn, song_id)

    async def list_event_contexts_for_playlist(self, playlist_id: str) -> list[EventContextRow]:
        async with self._reading() as conn:
            return await queries_events.list_event_contexts_for_playlist(conn, playlist_id)

    # ===========================================================================
    # Maintenance
    # ===========================================================================

    async def collect_orphans(self) -> CascadeReport:
        """Remove empty albums, artists without albums or songs, and unreferenced images."""
        return await self._write("collect_orphans", cascade.collect_orphans)

    async def get_stats(self) -> dict[str, Any]:
        async with self._reading() as conn:
            return await queries_meta.get_stats(conn)
