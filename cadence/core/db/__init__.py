"""
Internal DB subpackage for Cadence.

Split into focused units (models, schema/migrations, query groups, the cascade
coordinator) behind `CatalogDb`, the single public interface.

Re-exports here are primarily for convenience inside the `core` package.
External code should import `CatalogDb` from `cadence.core.catalog_db`.
"""

from __future__ import annotations

# Cascade
from .cascade import CascadeReport

# Errors
from .errors import (
    CatalogError,
    CatalogNotOpenError,
    ConstraintViolation,
    NotFound,
    ReferentialIntegrityViolation,
    TransactionAborted,
)

# Models / DTOs
from .models import (
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
    SearchResult,
    SongRow,
)

# Schema / migrations
from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    # cascade
    "CascadeReport",
    # errors
    "CatalogError",
    "CatalogNotOpenError",
    "ConstraintViolation",
    "NotFound",
    "ReferentialIntegrityViolation",
    "TransactionAborted",
    # models
    "AlbumRow",
    "ArtistRow",
    "EventContextRow",
    "EventRow",
    "EventType",
    "ImageRow",
    "ItemKind",
    "NewSong",
    "PinnedItem",
    "PlaylistRow",
    "PlaylistTrackRow",
    "SearchResult",
    "SongRow",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
