"""
Album-related DB queries used by `shelf.core.catalog_db.CatalogDb`.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- Ordering is centralized via `shelf.core.db.ordering.albums_order_clause`.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- Do NOT interpolate user input into SQL. Any dynamic SQL here is limited to
  ORDER BY clauses selected from a small whitelist in `albums_order_clause`.
"""

from __future__ import annotations

import aiosqlite

from shelf.core.db.models import AlbumRow
from shelf.core.db.ordering import AlbumsOrderBy, albums_order_clause


def _row_to_album(row: aiosqlite.Row) -> AlbumRow:
    """Convert an aiosqlite Row to an AlbumRow dataclass."""
    return AlbumRow(
        id=int(row["id"]),
        title=str(row["title"]),
        path=str(row["path"]),
        directory_id=int(row["directory_id"]),
        cover_path=row["cover_path"],
    )


async def insert_album(
    conn: aiosqlite.Connection,
    *,
    title: str,
    path: str,
    directory_id: int,
    cover_path: str | None,
) -> int:
    cursor = await conn.execute(
        """
        INSERT INTO albums (title, path, directory_id, cover_path)
        VALUES (?, ?, ?, ?);
        """,
        (title, path, int(directory_id), cover_path),
    )
    return int(cursor.lastrowid)


async def get_album_by_id(conn: aiosqlite.Connection, album_id: int) -> AlbumRow | None:
    cursor = await conn.execute("SELECT * FROM albums a WHERE a.id = ?;", (int(album_id),))
    row = await cursor.fetchone()
    return _row_to_album(row) if row else None


async def list_albums_by_directory(
    conn: aiosqlite.Connection,
    directory_id: int,
    *,
    order_by: AlbumsOrderBy,
) -> list[AlbumRow]:
    order_clause = albums_order_clause(order_by)
    cursor = await conn.execute(
        f"""
        SELECT * FROM albums a
        WHERE a.directory_id = ?
        {order_clause};
        """,
        (int(directory_id),),
    )
    rows = await cursor.fetchall()
    return [_row_to_album(r) for r in rows]


async def count_albums(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM albums;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def update_album_cover(
    conn: aiosqlite.Connection, album_id: int, cover_path: str | None
) -> bool:
    cursor = await conn.execute(
        "UPDATE albums SET cover_path = ? WHERE id = ?;", (cover_path, int(album_id))
    )
    return cursor.rowcount > 0


async def update_album_title(conn: aiosqlite.Connection, album_id: int, title: str) -> bool:
    cursor = await conn.execute(
        "UPDATE albums SET title = ? WHERE id = ?;", (title, int(album_id))
    )
    return cursor.rowcount > 0


async def delete_album(conn: aiosqlite.Connection, album_id: int) -> bool:
    """Delete an album (audio files cascade). Returns True if deleted, False if not found."""
    cursor = await conn.execute("DELETE FROM albums WHERE id = ?;", (int(album_id),))
    return cursor.rowcount > 0
