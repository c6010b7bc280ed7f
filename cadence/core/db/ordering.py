"""
Shared ORDER BY clause and LIKE filter helpers for catalog list queries.

Important:
- The returned strings are *static SQL fragments* selected from a small
  whitelist. Do NOT concatenate user input into ORDER BY.
- Unknown sort keys fall back to a sensible default instead of raising.
"""

from __future__ import annotations

from typing import Literal

SongsOrderBy = Literal["title", "tracknum", "added", "path", "id"]
AlbumsOrderBy = Literal["title", "artist", "id"]
ArtistsOrderBy = Literal["name", "albums", "id"]


def songs_order_clause(order_by: str) -> str:
    """Return an ORDER BY clause for song list queries (alias `s`)."""
    if order_by == "tracknum":
        return (
            "ORDER BY "
            "COALESCE(s.track_number, 0) ASC, "
            "s.title COLLATE NOCASE ASC, "
            "s.id ASC"
        )
    if order_by == "added":
        # Newest first; rowid keeps pages stable within one second.
        return "ORDER BY s.date_added DESC, s.rowid DESC"
    if order_by == "path":
        return "ORDER BY s.file_path ASC"
    if order_by == "id":
        return "ORDER BY s.id ASC"

    return "ORDER BY s.title COLLATE NOCASE ASC, s.id ASC"


def albums_order_clause(order_by: str) -> str:
    """Return an ORDER BY clause for album list queries (alias `a`)."""
    if order_by == "artist":
        return "ORDER BY artist_name COLLATE NOCASE ASC, a.title COLLATE NOCASE ASC, a.id ASC"
    if order_by == "id":
        return "ORDER BY a.id ASC"

    return "ORDER BY a.title COLLATE NOCASE ASC, a.id ASC"


def artists_order_clause(order_by: str) -> str:
    """
    Return an ORDER BY clause for artist list queries (alias `ar`).

    `albums` ordering assumes an `album_count` alias exists in the SELECT.
    """
    if order_by == "albums":
        return "ORDER BY album_count DESC, ar.name COLLATE NOCASE ASC, ar.id ASC"
    if order_by == "id":
        return "ORDER BY ar.id ASC"

    return "ORDER BY ar.name COLLATE NOCASE ASC, ar.id ASC"


def contains_pattern(query: str | None) -> str | None:
    """
    Return a LIKE pattern matching `query` as a literal substring.

    Use with `ESCAPE '\\'`. Blank queries return None, which the filtered list
    queries treat as "no filter".
    """
    if query is None or not query.strip():
        return None
    q = query.strip()
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
