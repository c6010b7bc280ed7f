"""
Core domain package.

This package contains the catalog store: the `CatalogDb` facade and the `db`
subpackage behind it. It has no UI or networking concerns.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `cadence.core.catalog_db`).
"""

from __future__ import annotations

__all__: list[str] = []
