"""
Cross-entity read queries: search, pinned items, catalog statistics.

Search matching:
- A row matches when the query is a substring of one of its match columns,
  either literally or after dropping the punctuation in `_IGNORED_CHARS`
  from both sides ("acdc" finds "AC/DC", "guns n roses" finds "Guns N' Roses").
- Songs match on their own title, their artist's name or their album's title.
  Albums match on their title or their artist's name.
- Rows are ranked per kind: exact match first, then prefix matches, then
  other substring matches, with short names ahead of long ones.

LIKE is case-insensitive for ASCII only (SQLite default).
"""

from __future__ import annotations

from typing import Any

import aiosqlite

from cadence.core.db.models import (
    ItemKind,
    PinnedItem,
    SearchCounts,
    SearchResult,
    album_row,
    artist_row,
    playlist_row,
    song_row,
)
from cadence.core.db.ordering import contains_pattern

_IGNORED_CHARS = "-_.,!?'/&:"


def _stripped(expr: str) -> str:
    """SQL expression: lower-cased `expr` without the ignored punctuation."""
    out = f"LOWER({expr})"
    for ch in _IGNORED_CHARS:
        literal = ch.replace("'", "''")
        out = f"REPLACE({out}, '{literal}', '')"
    return out


def _strip_query(query: str) -> str:
    out = query.lower()
    for ch in _IGNORED_CHARS:
        out = out.replace(ch, "")
    return out.strip()


def _matches(column: str) -> str:
    return (
        f"({column} LIKE :contains ESCAPE '\\' "
        f"OR {_stripped(column)} LIKE :contains_stripped ESCAPE '\\')"
    )


def _score(column: str) -> str:
    return f"""(
        CASE
            WHEN LOWER({column}) = :exact OR {_stripped(column)} = :exact_stripped THEN 1000
            WHEN {column} LIKE :prefix ESCAPE '\\'
                 OR {_stripped(column)} LIKE :prefix_stripped ESCAPE '\\' THEN 500
            WHEN {_matches(column)} THEN 100
            ELSE 0
        END
        + CASE WHEN LENGTH({column}) <= 30 THEN 10 ELSE 0 END
    )"""


def _search_params(query: str) -> dict[str, Any]:
    q = query.strip()
    stripped = _strip_query(q)
    contains = contains_pattern(q)
    # A query made only of ignored characters strips to nothing; NULL keeps
    # the stripped comparisons from matching every row.
    stripped_contains = contains_pattern(stripped)
    return {
        "exact": q.lower(),
        "exact_stripped": stripped or None,
        "contains": contains,
        "contains_stripped": stripped_contains,
        "prefix": contains[1:] if contains else None,
        "prefix_stripped": stripped_contains[1:] if stripped_contains else None,
    }


_ARTIST_WHERE = _matches("ar.name")
_ALBUM_WHERE = f"({_matches('al.title')} OR {_matches('ar.name')})"
_SONG_WHERE = f"({_matches('s.title')} OR {_matches('ar.name')} OR {_matches('al.title')})"
_PLAYLIST_WHERE = _matches("p.name")


async def search(conn: aiosqlite.Connection, query: str, *, limit: int = 50) -> SearchResult:
    """Ranked substring search over artists, albums, songs and playlists."""
    params = _search_params(query)
    params["limit"] = int(limit)

    cursor = await conn.execute(
        f"""
        SELECT ar.*, {_score("ar.name")} AS score
        FROM artists ar
        WHERE {_ARTIST_WHERE}
        ORDER BY score DESC, ar.name COLLATE NOCASE ASC, ar.id ASC
        LIMIT :limit;
        """,
        params,
    )
    artists = tuple(artist_row(r) for r in await cursor.fetchall())

    cursor = await conn.execute(
        f"""
        SELECT al.*, {_score("al.title")} AS score
        FROM albums al
        LEFT JOIN artists ar ON ar.id = al.artist_id
        WHERE {_ALBUM_WHERE}
        ORDER BY score DESC, al.title COLLATE NOCASE ASC, al.id ASC
        LIMIT :limit;
        """,
        params,
    )
    albums = tuple(album_row(r) for r in await cursor.fetchall())

    cursor = await conn.execute(
        f"""
        SELECT s.*, {_score("s.title")} AS score
        FROM songs s
        LEFT JOIN artists ar ON ar.id = s.artist_id
        LEFT JOIN albums al ON al.id = s.album_id
        WHERE {_SONG_WHERE}
        ORDER BY score DESC, s.title COLLATE NOCASE ASC, s.id ASC
        LIMIT :limit;
        """,
        params,
    )
    songs = tuple(song_row(r) for r in await cursor.fetchall())

    cursor = await conn.execute(
        f"""
        SELECT p.*, {_score("p.name")} AS score
        FROM playlists p
        WHERE {_PLAYLIST_WHERE}
        ORDER BY score DESC, p.name COLLATE NOCASE ASC, p.id ASC
        LIMIT :limit;
        """,
        params,
    )
    playlists = tuple(playlist_row(r) for r in await cursor.fetchall())

    return SearchResult(artists=artists, albums=albums, songs=songs, playlists=playlists)


async def search_counts(conn: aiosqlite.Connection, query: str) -> SearchCounts:
    """Match counts per kind for `query`, using the same matching as `search()`."""
    cursor = await conn.execute(
        f"""
        SELECT
            (SELECT COUNT(DISTINCT s.id) FROM songs s
             LEFT JOIN artists ar ON ar.id = s.artist_id
             LEFT JOIN albums al ON al.id = s.album_id
             WHERE {_SONG_WHERE}) AS songs,
            (SELECT COUNT(DISTINCT al.id) FROM albums al
             LEFT JOIN artists ar ON ar.id = al.artist_id
             WHERE {_ALBUM_WHERE}) AS albums,
            (SELECT COUNT(*) FROM artists ar WHERE {_ARTIST_WHERE}) AS artists,
            (SELECT COUNT(*) FROM playlists p WHERE {_PLAYLIST_WHERE}) AS playlists;
        """,
        _search_params(query),
    )
    row = await cursor.fetchone()
    return SearchCounts(
        songs=int(row["songs"]),
        albums=int(row["albums"]),
        artists=int(row["artists"]),
        playlists=int(row["playlists"]),
    )


async def list_pinned_items(conn: aiosqlite.Connection) -> list[PinnedItem]:
    """Pinned songs, albums, artists and playlists in one list, ordered by name."""
    cursor = await conn.execute(
        """
        SELECT id, title AS name, image_id, 'song' AS kind FROM songs WHERE pinned = 1
        UNION ALL
        SELECT id, title AS name, image_id, 'album' AS kind FROM albums WHERE pinned = 1
        UNION ALL
        SELECT id, name, image_id, 'artist' AS kind FROM artists WHERE pinned = 1
        UNION ALL
        SELECT id, name, image_id, 'playlist' AS kind FROM playlists WHERE pinned = 1
        ORDER BY name COLLATE NOCASE ASC, id ASC;
        """
    )
    rows = await cursor.fetchall()
    return [
        PinnedItem(id=r["id"], name=r["name"], image_id=r["image_id"], kind=ItemKind(r["kind"]))
        for r in rows
    ]


async def get_stats(conn: aiosqlite.Connection) -> dict[str, Any]:
    """Row counts per table."""
    cursor = await conn.execute(
        """
        SELECT
            (SELECT COUNT(*) FROM artists) AS artists,
            (SELECT COUNT(*) FROM albums) AS albums,
            (SELECT COUNT(*) FROM songs) AS songs,
            (SELECT COUNT(*) FROM playlists) AS playlists,
            (SELECT COUNT(*) FROM playlist_tracks) AS playlist_tracks,
            (SELECT COUNT(*) FROM images) AS images,
            (SELECT COUNT(*) FROM events) AS events,
            (SELECT COALESCE(SUM(duration), 0) FROM songs) AS total_duration;
        """
    )
    row = await cursor.fetchone()
    return {key: int(row[key]) for key in row.keys()}
