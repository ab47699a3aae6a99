"""
Audiobook catalog database schema + access layer.

Goals:
- Small and testable: three tables (directories -> albums -> audio files).
- SQLite + aiosqlite, async/await friendly.
- Every mutation is committed on its own; reconciliation relies on per-row
  atomicity only, never on multi-row transactions.

This module is intentionally independent of the filesystem.

Note:
- Models/DTOs and normalization helpers live in `shelf.core.db.models`
- Schema/migrations live in `shelf.core.db.schema`
- Query functions live in `shelf.core.db.queries_*` modules
- `CatalogDb` remains the public facade used by the rest of the codebase
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Awaitable, TypeVar

import aiosqlite

from shelf.core import CatalogError
from shelf.core.db import queries_albums, queries_audio_files, queries_directories
from shelf.core.db.models import (
    AlbumRow,
    AudioFileRow,
    DirectoryRow,
    DirectoryType,
    normalize_int,
    normalize_text,
)
from shelf.core.db.ordering import AlbumsOrderBy, AudioFilesOrderBy
from shelf.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class CatalogDb:
    """
    Async access layer for the catalog DB.

    Usage:
        db = CatalogDb("shelf.db")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - This class is designed to be injected into other components.
    - Connections are not pooled; for now we keep a single connection.
    - Inserts return the new row id or raise `CatalogError`.
    - Updates and deletes are idempotent: a missing row yields False, not an error.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        # Cascading deletes depend on foreign_keys.
        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")
        await self._conn.execute("PRAGMA temp_store = MEMORY;")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("CatalogDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        await ensure_schema_sql(conn)

    async def _write(self, op: Awaitable[_T], what: str) -> _T:
        """Run one mutation and commit it, translating SQLite errors into CatalogError."""
        conn = self._require_conn()
        try:
            result = await op
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.rollback()
            raise CatalogError(f"{what} failed: {e}") from e
        return result

    # ===========================================================================
    # Directories
    # ===========================================================================

    async def insert_directory(self, path: str | Path, directory_type: DirectoryType) -> int:
        conn = self._require_conn()
        path_str = str(path)
        directory_id = await self._write(
            queries_directories.insert_directory(conn, path_str, directory_type),
            f"Inserting directory {path_str}",
        )
        logger.debug("Inserted directory %d: %s (%s)", directory_id, path_str, directory_type.value)
        return directory_id

    async def get_directory(self, directory_id: int) -> DirectoryRow | None:
        return await queries_directories.get_directory_by_id(self._require_conn(), directory_id)

    async def get_directory_by_path(self, path: str | Path) -> DirectoryRow | None:
        return await queries_directories.get_directory_by_path(self._require_conn(), str(path))

    async def list_directories(self) -> list[DirectoryRow]:
        return await queries_directories.list_directories(self._require_conn())

    async def delete_directory(self, directory_id: int) -> bool:
        conn = self._require_conn()
        return await self._write(
            queries_directories.delete_directory(conn, directory_id),
            f"Deleting directory {directory_id}",
        )

    # ===========================================================================
    # Albums
    # ===========================================================================

    async def insert_album(
        self,
        *,
        title: str,
        path: str | Path,
        directory_id: int,
        cover_path: str | None = None,
    ) -> int:
        conn = self._require_conn()
        path_str = str(path)
        return await self._write(
            queries_albums.insert_album(
                conn,
                title=title,
                path=path_str,
                directory_id=directory_id,
                cover_path=normalize_text(cover_path),
            ),
            f"Inserting album {path_str}",
        )

    async def get_album(self, album_id: int) -> AlbumRow | None:
        return await queries_albums.get_album_by_id(self._require_conn(), album_id)

    async def list_albums_by_directory(
        self, directory_id: int, *, order_by: AlbumsOrderBy = "id"
    ) -> list[AlbumRow]:
        return await queries_albums.list_albums_by_directory(
            self._require_conn(), directory_id, order_by=order_by
        )

    async def count_albums(self) -> int:
        return await queries_albums.count_albums(self._require_conn())

    async def update_album_cover(self, album_id: int, cover_path: str | None) -> bool:
        conn = self._require_conn()
        return await self._write(
            queries_albums.update_album_cover(conn, album_id, normalize_text(cover_path)),
            f"Updating cover of album {album_id}",
        )

    async def rename_album(self, album_id: int, title: str) -> bool:
        """User-facing rename. Re-scans never touch the title again."""
        clean = normalize_text(title)
        if clean is None:
            raise ValueError("album title must not be empty")
        conn = self._require_conn()
        return await self._write(
            queries_albums.update_album_title(conn, album_id, clean),
            f"Renaming album {album_id}",
        )

    async def delete_album(self, album_id: int) -> bool:
        """Delete an album; its audio files go with it (ON DELETE CASCADE)."""
        conn = self._require_conn()
        return await self._write(
            queries_albums.delete_album(conn, album_id),
            f"Deleting album {album_id}",
        )

    # ===========================================================================
    # Audio files
    # ===========================================================================

    async def insert_audio_file(
        self,
        *,
        title: str,
        album_id: int,
        duration_ms: int | None,
        sort_index: int,
    ) -> int:
        conn = self._require_conn()
        return await self._write(
            queries_audio_files.insert_audio_file(
                conn,
                title=title,
                album_id=album_id,
                duration_ms=normalize_int(duration_ms) or 0,
                sort_index=sort_index,
            ),
            f"Inserting audio file {title!r} into album {album_id}",
        )

    async def get_audio_file(self, audio_file_id: int) -> AudioFileRow | None:
        return await queries_audio_files.get_audio_file_by_id(self._require_conn(), audio_file_id)

    async def list_audio_files_by_album(
        self, album_id: int, *, order_by: AudioFilesOrderBy = "sort_index"
    ) -> list[AudioFileRow]:
        return await queries_audio_files.list_audio_files_by_album(
            self._require_conn(), album_id, order_by=order_by
        )

    async def count_audio_files(self) -> int:
        return await queries_audio_files.count_audio_files(self._require_conn())

    async def update_audio_file_sort_index(self, audio_file_id: int, sort_index: int) -> bool:
        conn = self._require_conn()
        return await self._write(
            queries_audio_files.update_sort_index(conn, audio_file_id, sort_index),
            f"Updating sort index of audio file {audio_file_id}",
        )

    async def set_completed_time(self, audio_file_id: int, completed_time_ms: int) -> bool:
        """Store playback progress. Only the player calls this; reconciliation never does."""
        if completed_time_ms < 0:
            raise ValueError("completed_time_ms must be >= 0")
        conn = self._require_conn()
        return await self._write(
            queries_audio_files.update_completed_time(conn, audio_file_id, completed_time_ms),
            f"Updating progress of audio file {audio_file_id}",
        )

    async def delete_audio_file(self, audio_file_id: int) -> bool:
        conn = self._require_conn()
        return await self._write(
            queries_audio_files.delete_audio_file(conn, audio_file_id),
            f"Deleting audio file {audio_file_id}",
        )
