"""
Cadence - a local music catalog store.

Cadence persists artists, albums, songs, playlists and shared cover images in
SQLite, and cleans up entities and images that become unreferenced when
something is deleted.
"""

__version__ = "0.1.0"
__author__ = "Cadence Contributors"

from cadence.core.catalog_db import CatalogDb

__all__ = ["CatalogDb", "__version__"]
