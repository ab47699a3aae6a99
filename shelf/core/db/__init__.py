"""
Internal DB subpackage for Shelf.

This package splits the catalog persistence into focused units (models,
schema/migrations, and query groups) while keeping `CatalogDb` as the single
public interface that the rest of the codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
External code should continue to import `CatalogDb` from `shelf.core.catalog_db`.
"""

from __future__ import annotations

# Models / DTOs
from .models import AlbumRow, AudioFileRow, DirectoryRow, DirectoryType

# Schema / migrations
from .schema import ensure_schema, migrate

__all__ = [
    # models
    "DirectoryType",
    "DirectoryRow",
    "AlbumRow",
    "AudioFileRow",
    # schema
    "ensure_schema",
    "migrate",
]
