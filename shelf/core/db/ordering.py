"""
Shared ORDER BY clause helpers for CatalogDb queries.

These helpers centralize the translation from higher-level sort keys into
SQL snippets so the logic doesn't get duplicated across query modules.

Important:
- The returned strings are intended to be *static SQL fragments* selected
  from a small whitelist. Do NOT concatenate user input into ORDER BY.
- SQLite cannot order by natural (numeric-aware) collation; callers that need
  it sort in Python with `shelf.core.collation.NaturalCollator`.
"""

from __future__ import annotations

from typing import Literal

AudioFilesOrderBy = Literal[
    "sort_index",
    "title",
    "id",
]

AlbumsOrderBy = Literal[
    "title",
    "path",
    "id",
]


def audio_files_order_clause(order_by: AudioFilesOrderBy) -> str:
    """
    Return an ORDER BY clause for audio file list queries.

    Unknown values fall back to the catalog order (`sort_index`).
    """
    if order_by == "title":
        return "ORDER BY f.title COLLATE NOCASE ASC, f.id ASC"
    if order_by == "id":
        return "ORDER BY f.id ASC"

    # Default: sort_index, id as tiebreaker (rows of a half-reconciled album may share one).
    return "ORDER BY f.sort_index ASC, f.id ASC"


def albums_order_clause(order_by: AlbumsOrderBy) -> str:
    """
    Return an ORDER BY clause for album list queries.

    Uses stable tie-breakers to avoid flickering listings.
    """
    if order_by == "title":
        return "ORDER BY a.title COLLATE NOCASE ASC, a.id ASC"
    if order_by == "path":
        return "ORDER BY a.path ASC, a.id ASC"

    # Default: id (creation order)
    return "ORDER BY a.id ASC"
