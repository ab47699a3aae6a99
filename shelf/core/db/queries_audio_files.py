"""
Audio-file DB queries used by `shelf.core.catalog_db.CatalogDb`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- Ordering is centralized via `shelf.core.db.ordering.audio_files_order_clause`.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- Do NOT interpolate user input into SQL. Any dynamic SQL here is limited to
  ORDER BY clauses selected from a small whitelist in `audio_files_order_clause`.
"""

from __future__ import annotations

import aiosqlite

from shelf.core.db.models import AudioFileRow
from shelf.core.db.ordering import AudioFilesOrderBy, audio_files_order_clause


def _row_to_audio_file(row: aiosqlite.Row) -> AudioFileRow:
    """Convert an aiosqlite Row to an AudioFileRow dataclass."""
    return AudioFileRow(
        id=int(row["id"]),
        title=str(row["title"]),
        album_id=int(row["album_id"]),
        duration_ms=int(row["duration_ms"] or 0),
        completed_time_ms=int(row["completed_time_ms"] or 0),
        sort_index=int(row["sort_index"] or 0),
    )


# ---------------------------------------------------------------------------
# Basic get/list/count
# ---------------------------------------------------------------------------


async def get_audio_file_by_id(
    conn: aiosqlite.Connection, audio_file_id: int
) -> AudioFileRow | None:
    cursor = await conn.execute(
        "SELECT * FROM audio_files f WHERE f.id = ?;", (int(audio_file_id),)
    )
    row = await cursor.fetchone()
    return _row_to_audio_file(row) if row else None


async def list_audio_files_by_album(
    conn: aiosqlite.Connection,
    album_id: int,
    *,
    order_by: AudioFilesOrderBy,
) -> list[AudioFileRow]:
    order_clause = audio_files_order_clause(order_by)
    cursor = await conn.execute(
        f"""
        SELECT * FROM audio_files f
        WHERE f.album_id = ?
        {order_clause};
        """,
        (int(album_id),),
    )
    rows = await cursor.fetchall()
    return [_row_to_audio_file(r) for r in rows]


async def count_audio_files(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM audio_files;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


async def insert_audio_file(
    conn: aiosqlite.Connection,
    *,
    title: str,
    album_id: int,
    duration_ms: int,
    sort_index: int,
) -> int:
    cursor = await conn.execute(
        """
        INSERT INTO audio_files (title, album_id, duration_ms, completed_time_ms, sort_index)
        VALUES (?, ?, ?, 0, ?);
        """,
        (title, int(album_id), int(duration_ms), int(sort_index)),
    )
    return int(cursor.lastrowid)


async def update_sort_index(
    conn: aiosqlite.Connection, audio_file_id: int, sort_index: int
) -> bool:
    cursor = await conn.execute(
        "UPDATE audio_files SET sort_index = ? WHERE id = ?;",
        (int(sort_index), int(audio_file_id)),
    )
    return cursor.rowcount > 0


async def update_completed_time(
    conn: aiosqlite.Connection, audio_file_id: int, completed_time_ms: int
) -> bool:
    cursor = await conn.execute(
        "UPDATE audio_files SET completed_time_ms = ? WHERE id = ?;",
        (int(completed_time_ms), int(audio_file_id)),
    )
    return cursor.rowcount > 0


async def delete_audio_file(conn: aiosqlite.Connection, audio_file_id: int) -> bool:
    """Delete an audio file row. Returns True if deleted, False if not found."""
    cursor = await conn.execute("DELETE FROM audio_files WHERE id = ?;", (int(audio_file_id),))
    return cursor.rowcount > 0
