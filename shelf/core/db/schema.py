"""
Database schema + migrations for Shelf.

Responsibilities are split the same way as the rest of the DB package:

- Connection management and the public `CatalogDb` facade live in `catalog_db.py`
- Schema creation, schema versioning, and forward-only migrations live here

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- Referential integrity (directory -> albums -> audio_files) is enforced with
  `ON DELETE CASCADE`, so deleting an album removes its audio files. This
  requires `PRAGMA foreign_keys = ON`, which the facade sets on open.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 1


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - `conn.row_factory` is configured by the caller if desired
    - foreign_keys pragma is enabled by the caller
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """
    Perform forward-only migrations.

    Keep migrations small. If you need a big refactor, create a new DB.
    """
    # v0 -> v1
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS directories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL UNIQUE,
                type TEXT NOT NULL CHECK (type IN ('parent', 'single'))
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS albums (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                path TEXT NOT NULL,
                directory_id INTEGER NOT NULL
                    REFERENCES directories(id) ON DELETE CASCADE,
                cover_path TEXT,
                UNIQUE(directory_id, path)
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_albums_directory_id ON albums(directory_id);"
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS audio_files (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                album_id INTEGER NOT NULL
                    REFERENCES albums(id) ON DELETE CASCADE,
                duration_ms INTEGER NOT NULL DEFAULT 0,
                completed_time_ms INTEGER NOT NULL DEFAULT 0,
                sort_index INTEGER NOT NULL DEFAULT 0,
                UNIQUE(album_id, title)
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_audio_files_sort ON audio_files(album_id, sort_index);"
        )
        await conn.commit()
        from_version = 1
