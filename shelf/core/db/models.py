"""
DB models (DTOs) for the catalog tables.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class DirectoryType(Enum):
    """How a registered directory maps onto albums."""

    # Every readable immediate subdirectory is an album.
    PARENT_DIR = "parent"
    # The directory itself is a single album.
    SINGLE_DIR = "single"


@dataclass(frozen=True, slots=True)
class DirectoryRow:
    """Registered root directory as stored in SQLite."""

    id: int
    path: str
    type: DirectoryType


@dataclass(frozen=True, slots=True)
class AlbumRow:
    """
    Album record as stored in SQLite.

    Notes:
    - `path` is absolute and unique within its directory.
    - `title` is derived from the folder name once; users may rename it later.
    - `cover_path` is relative to `path`.
    """

    id: int
    title: str
    path: str
    directory_id: int
    cover_path: str | None = None

    @property
    def cover_abspath(self) -> str | None:
        if self.cover_path is None:
            return None
        return str(Path(self.path) / self.cover_path)


@dataclass(frozen=True, slots=True)
class AudioFileRow:
    """
    Audio file record as stored in SQLite.

    `title` is the file name within the album directory and identifies the file
    across scans. `completed_time_ms` is user playback progress.
    """

    id: int
    title: str
    album_id: int
    duration_ms: int = 0
    completed_time_ms: int = 0
    sort_index: int = 0

    def path_in(self, album_path: str | Path) -> str:
        return str(Path(album_path) / self.title)


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def normalize_int(value: int | None) -> int | None:
    """Normalize optional integer fields (coerce to int, keep None)."""
    if value is None:
        return None
    return int(value)
