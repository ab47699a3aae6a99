"""
Filesystem-to-catalog reconciliation.

Two reconcilers bring the catalog in line with the disk:

- `AlbumReconciler` diffs the album folders of one registered directory against
  its album rows, then hands every surviving album to the track reconciler.
- `TrackReconciler` diffs the audio files of one album folder against its rows
  and renumbers `sort_index` to follow natural file-name order.

Both only ever write single rows (insert/update/delete, each committed on its
own). Titles, durations and playback progress of existing rows are never
touched; a file that vanished keeps its row and its position while the
retention policy says so.

After a failed insert the track walk of that album stops deleting rows; the
rows it would have removed are counted as retained and keep their position.
A refused update or delete is logged and counted in `write_errors`; the walk
carries on with the next name.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from shelf.config import SyncPolicy
from shelf.core import CatalogError
from shelf.core.catalog_db import CatalogDb
from shelf.core.collation import NaturalCollator
from shelf.core.cover import find_cover_image
from shelf.core.db.models import AlbumRow, DirectoryRow, DirectoryType
from shelf.core.scanner import (
    DEFAULT_AUDIO_EXTENSIONS,
    DurationReader,
    list_album_paths,
    list_audio_filenames,
    read_duration_ms,
)

logger = logging.getLogger(__name__)

CoverFinder = Callable[[Path], str | None]


class Origin(Enum):
    """Where a file name was seen during a pass."""

    ON_DISK_ONLY = "disk"
    IN_CATALOG_ONLY = "catalog"
    BOTH = "both"


def merge_origins(on_disk: Iterable[str], in_catalog: Iterable[str]) -> dict[str, Origin]:
    """Tag every name with the side(s) it came from."""
    merged = {name: Origin.ON_DISK_ONLY for name in on_disk}
    for name in in_catalog:
        merged[name] = Origin.BOTH if name in merged else Origin.IN_CATALOG_ONLY
    return merged


def audio_file_error_message(failed_paths: Iterable[str]) -> str:
    return "Could not add to the catalog: " + ", ".join(failed_paths)


@dataclass
class AlbumSyncReport:
    """Outcome of reconciling the audio files of one album."""

    album_id: int
    album_path: str
    files_created: int = 0
    files_updated: int = 0
    files_deleted: int = 0
    # Rows whose file is gone but which the policy (or an insert failure) kept.
    files_retained: int = 0
    # Updates/deletes the catalog refused; the rows are left as they were.
    write_errors: int = 0
    failed_paths: list[str] = field(default_factory=list)

    @property
    def advisory(self) -> str | None:
        if not self.failed_paths:
            return None
        return audio_file_error_message(self.failed_paths)

    @property
    def changed(self) -> bool:
        return bool(self.files_created or self.files_updated or self.files_deleted)


@dataclass
class DirectorySyncReport:
    """Outcome of reconciling one registered directory."""

    directory_id: int
    path: str
    albums_created: int = 0
    albums_updated: int = 0
    albums_deleted: int = 0
    albums_retained: int = 0
    write_errors: int = 0
    albums: list[AlbumSyncReport] = field(default_factory=list)
    failed_album_paths: list[str] = field(default_factory=list)

    @property
    def advisories(self) -> list[str]:
        messages = [audio_file_error_message([p]) for p in self.failed_album_paths]
        messages.extend(a.advisory for a in self.albums if a.advisory)
        return messages

    @property
    def total_write_errors(self) -> int:
        return self.write_errors + sum(a.write_errors for a in self.albums)

    @property
    def changed(self) -> bool:
        return bool(
            self.albums_created
            or self.albums_updated
            or self.albums_deleted
            or any(a.changed for a in self.albums)
        )


class TrackReconciler:
    """
    Reconciles the audio files of one album folder with its catalog rows.

    The on-disk names and the catalog titles are merged into one mapping and
    walked once in natural order. The running position becomes `sort_index`, so
    rows kept for vanished files hold their place between the files still present.
    """

    def __init__(
        self,
        db: CatalogDb,
        collator: NaturalCollator,
        policy: SyncPolicy,
        *,
        duration_reader: DurationReader = read_duration_ms,
        extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS,
    ) -> None:
        self._db = db
        self._collator = collator
        self._policy = policy
        self._duration_reader = duration_reader
        self._extensions = extensions

    async def reconcile(self, album_path: str, album_id: int) -> AlbumSyncReport:
        report = AlbumSyncReport(album_id=album_id, album_path=album_path)
        folder = Path(album_path)

        on_disk = await asyncio.to_thread(
            list_audio_filenames,
            folder,
            show_hidden=self._policy.show_hidden,
            extensions=self._extensions,
        )
        rows = {row.title: row for row in await self._db.list_audio_files_by_album(album_id)}
        merged = merge_origins(on_disk, rows)

        insert_failed = False
        sort_index = 0
        for name in self._collator.sorted(merged):
            origin = merged[name]
            sort_index += 1

            if origin is Origin.ON_DISK_ONLY:
                file_path = folder / name
                duration_ms = await self._read_duration(file_path)
                try:
                    await self._db.insert_audio_file(
                        title=name,
                        album_id=album_id,
                        duration_ms=duration_ms,
                        sort_index=sort_index,
                    )
                except CatalogError as e:
                    logger.warning("Could not add %s: %s", file_path, e)
                    report.failed_paths.append(str(file_path))
                    insert_failed = True
                else:
                    report.files_created += 1
                continue

            row = rows[name]
            if origin is Origin.IN_CATALOG_ONLY:
                if not insert_failed and self._policy.should_delete(name):
                    try:
                        await self._db.delete_audio_file(row.id)
                    except CatalogError as e:
                        logger.warning("Could not remove %s from album %d: %s", name, album_id, e)
                        report.write_errors += 1
                    else:
                        report.files_deleted += 1
                        logger.debug("Removed %s from album %d", name, album_id)
                        # A deleted row gives its position to the next name.
                        sort_index -= 1
                        continue
                report.files_retained += 1

            if row.sort_index != sort_index:
                try:
                    await self._db.update_audio_file_sort_index(row.id, sort_index)
                except CatalogError as e:
                    logger.warning(
                        "Could not move %s of album %d to position %d: %s",
                        name,
                        album_id,
                        sort_index,
                        e,
                    )
                    report.write_errors += 1
                else:
                    report.files_updated += 1

        if report.failed_paths:
            logger.warning(
                "Album %s: %d file(s) not added, deletions skipped for this pass",
                album_path,
                len(report.failed_paths),
            )
        return report

    async def _read_duration(self, path: Path) -> int:
        try:
            return await asyncio.to_thread(self._duration_reader, path)
        except Exception as e:  # noqa: BLE001
            logger.debug("Could not read duration of %s: %s", path, e)
            return 0


class AlbumReconciler:
    """
    Reconciles the album rows of one registered directory with its folders.

    New folders become albums (titled after the folder), known ones get their
    cover refreshed, and folders that disappeared are deleted when the retention
    policy allows it. Every album still on disk is then track-reconciled, because
    its content may have changed even if the folder itself did not.
    """

    def __init__(
        self,
        db: CatalogDb,
        tracks: TrackReconciler,
        policy: SyncPolicy,
        *,
        find_cover: CoverFinder = find_cover_image,
    ) -> None:
        self._db = db
        self._tracks = tracks
        self._policy = policy
        self._find_cover = find_cover

    async def reconcile(self, directory: DirectoryRow) -> DirectorySyncReport:
        report = DirectorySyncReport(directory_id=directory.id, path=directory.path)

        target_paths = await asyncio.to_thread(
            list_album_paths,
            Path(directory.path),
            single=directory.type is DirectoryType.SINGLE_DIR,
            show_hidden=self._policy.show_hidden,
        )
        existing = {
            album.path: album for album in await self._db.list_albums_by_directory(directory.id)
        }

        for album_path in sorted(target_paths):
            album = existing.pop(album_path, None)
            if album is None:
                album_id = await self._create_album(directory, album_path, report)
                if album_id is None:
                    continue
            else:
                album_id = album.id
                await self._refresh_cover(album, report)

            report.albums.append(await self._tracks.reconcile(album_path, album_id))

        for album_path, album in existing.items():
            if self._policy.should_delete(Path(album_path).name):
                try:
                    await self._db.delete_album(album.id)
                except CatalogError as e:
                    logger.warning("Could not remove album %s: %s", album_path, e)
                    report.write_errors += 1
                    report.albums_retained += 1
                else:
                    report.albums_deleted += 1
                    logger.info("Removed album %s", album_path)
            else:
                report.albums_retained += 1

        return report

    async def _create_album(
        self, directory: DirectoryRow, album_path: str, report: DirectorySyncReport
    ) -> int | None:
        cover_path = await asyncio.to_thread(self._find_cover, Path(album_path))
        try:
            album_id = await self._db.insert_album(
                title=Path(album_path).name,
                path=album_path,
                directory_id=directory.id,
                cover_path=cover_path,
            )
        except CatalogError as e:
            # Without an id its files cannot be reconciled; try again next pass.
            logger.warning("Could not add album %s: %s", album_path, e)
            report.failed_album_paths.append(album_path)
            return None

        report.albums_created += 1
        logger.info("Added album %s", album_path)
        return album_id

    async def _refresh_cover(self, album: AlbumRow, report: DirectorySyncReport) -> None:
        cover_path = await asyncio.to_thread(self._find_cover, Path(album.path))
        # A folder that lost its image keeps the last known cover.
        if cover_path is None or cover_path == album.cover_path:
            return
        try:
            await self._db.update_album_cover(album.id, cover_path)
        except CatalogError as e:
            logger.warning("Could not update cover of album %s: %s", album.path, e)
            report.write_errors += 1
            return
        report.albums_updated += 1
        logger.debug("Album %s: cover is now %s", album.path, cover_path)
