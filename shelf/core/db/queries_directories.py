"""
Directory-related DB queries used by `shelf.core.catalog_db.CatalogDb`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- Committing is the caller's job (the facade commits each mutation on its own).
"""

from __future__ import annotations

import aiosqlite

from shelf.core.db.models import DirectoryRow, DirectoryType


def _row_to_directory(row: aiosqlite.Row) -> DirectoryRow:
    """Convert an aiosqlite Row to a DirectoryRow dataclass."""
    return DirectoryRow(
        id=int(row["id"]),
        path=str(row["path"]),
        type=DirectoryType(row["type"]),
    )


async def insert_directory(
    conn: aiosqlite.Connection, path: str, directory_type: DirectoryType
) -> int:
    cursor = await conn.execute(
        "INSERT INTO directories (path, type) VALUES (?, ?);",
        (path, directory_type.value),
    )
    return int(cursor.lastrowid)


async def get_directory_by_id(
    conn: aiosqlite.Connection, directory_id: int
) -> DirectoryRow | None:
    cursor = await conn.execute(
        "SELECT id, path, type FROM directories WHERE id = ?;", (int(directory_id),)
    )
    row = await cursor.fetchone()
    return _row_to_directory(row) if row else None


async def get_directory_by_path(conn: aiosqlite.Connection, path: str) -> DirectoryRow | None:
    cursor = await conn.execute("SELECT id, path, type FROM directories WHERE path = ?;", (path,))
    row = await cursor.fetchone()
    return _row_to_directory(row) if row else None


async def list_directories(conn: aiosqlite.Connection) -> list[DirectoryRow]:
    """All registered directories in registration (id) order."""
    cursor = await conn.execute("SELECT id, path, type FROM directories ORDER BY id ASC;")
    rows = await cursor.fetchall()
    return [_row_to_directory(r) for r in rows]


async def delete_directory(conn: aiosqlite.Connection, directory_id: int) -> bool:
    """Delete a directory (albums and audio files cascade). Returns True if deleted."""
    cursor = await conn.execute("DELETE FROM directories WHERE id = ?;", (int(directory_id),))
    return cursor.rowcount > 0
