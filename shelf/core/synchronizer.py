"""
Synchronizer: keeps the catalog in step with every registered directory.

Entry points:
- `add_directory()` registers a folder and populates it right away
- `refresh_all()` re-scans every registered folder (startup, periodic, manual)

A pass is one sequential unit of work. Filesystem and metadata access run in
worker threads so the event loop stays responsive, but directories and albums
are processed one after another. Passes of one Synchronizer never overlap.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any

from shelf.config import SyncConfig
from shelf.core import CatalogError, CoreError
from shelf.core.catalog_db import CatalogDb
from shelf.core.cover import find_cover_image
from shelf.core.db.models import DirectoryRow, DirectoryType
from shelf.core.events import EventBus, SyncAdvisoryEvent, SyncCompletedEvent
from shelf.core.reconcile import (
    AlbumReconciler,
    DirectorySyncReport,
    TrackReconciler,
    audio_file_error_message,
)
from shelf.core.scanner import DurationReader, read_duration_ms

logger = logging.getLogger(__name__)

# Completion callback; receives nothing, the report is the return value of the pass.
SyncListener = Callable[[], Coroutine[Any, Any, None]]


class SynchronizerError(CoreError):
    """Raised when a directory cannot be registered or found."""


@dataclass
class SyncReport:
    """Result of one pass over one or more directories."""

    directories: list[DirectorySyncReport] = field(default_factory=list)

    @property
    def albums_created(self) -> int:
        return sum(d.albums_created for d in self.directories)

    @property
    def albums_updated(self) -> int:
        return sum(d.albums_updated for d in self.directories)

    @property
    def albums_deleted(self) -> int:
        return sum(d.albums_deleted for d in self.directories)

    @property
    def files_created(self) -> int:
        return sum(a.files_created for d in self.directories for a in d.albums)

    @property
    def files_updated(self) -> int:
        return sum(a.files_updated for d in self.directories for a in d.albums)

    @property
    def files_deleted(self) -> int:
        return sum(a.files_deleted for d in self.directories for a in d.albums)

    @property
    def write_errors(self) -> int:
        return sum(d.total_write_errors for d in self.directories)

    @property
    def advisories(self) -> list[str]:
        return [message for d in self.directories for message in d.advisories]

    @property
    def ok(self) -> bool:
        """True when every row that should have been written was written."""
        return not self.advisories and not self.write_errors

    @property
    def changed(self) -> bool:
        return any(d.changed for d in self.directories)


class Synchronizer:
    """
    Orchestrates reconciliation passes over the registered directories.

    Dependencies:
    - `CatalogDb` for persistence (must be open, schema ensured)
    - a duration reader (mutagen by default) for new audio files
    - optionally an `EventBus` that receives advisories and completion events

    At most one listener is notified, once per pass, after the last directory.
    """

    def __init__(
        self,
        db: CatalogDb,
        config: SyncConfig | None = None,
        *,
        duration_reader: DurationReader = read_duration_ms,
        events: EventBus | None = None,
    ) -> None:
        self._db = db
        self._config = config or SyncConfig()
        self._events = events
        self._listener: SyncListener | None = None
        self._lock = asyncio.Lock()

        collator = self._config.collation.build()
        policy = self._config.policy
        self._tracks = TrackReconciler(db, collator, policy, duration_reader=duration_reader)
        self._albums = AlbumReconciler(
            db,
            self._tracks,
            policy,
            find_cover=partial(find_cover_image, collator=collator),
        )

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def set_listener(self, listener: SyncListener | None) -> None:
        """Register the completion listener, replacing any previous one (None clears it)."""
        self._listener = listener

    async def add_directory(
        self,
        path: str | Path,
        directory_type: DirectoryType = DirectoryType.PARENT_DIR,
    ) -> SyncReport:
        """
        Register a directory and populate its albums and audio files.

        The path is stored resolved (absolute, symlinks followed) so later scans
        produce the same album paths.
        """
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_dir():
            # Registration still succeeds: the folder may live on removable media.
            logger.warning("Registering %s, which is not a directory right now", resolved)

        async with self._lock:
            try:
                directory_id = await self._db.insert_directory(resolved, directory_type)
            except CatalogError as e:
                raise SynchronizerError(f"Cannot register directory {resolved}: {e}") from e
            logger.info("Registered %s directory %s", directory_type.value, resolved)

            directory = DirectoryRow(id=directory_id, path=str(resolved), type=directory_type)
            report = SyncReport()
            report.directories.append(await self._reconcile(directory))

        await self._finish(report)
        return report

    async def refresh_all(self) -> SyncReport:
        """Re-scan every registered directory in registration order."""
        async with self._lock:
            directories = await self._db.list_directories()
            logger.info("Refreshing %d directories", len(directories))

            report = SyncReport()
            for i, directory in enumerate(directories):
                logger.debug("Directory %d/%d: %s", i + 1, len(directories), directory.path)
                report.directories.append(await self._reconcile(directory))

        await self._finish(report)
        return report

    async def remove_directory(self, directory_id: int) -> bool:
        """
        Unregister a directory; its albums and audio files are removed with it.

        This is a user action; reconciliation itself never drops a directory.
        """
        async with self._lock:
            removed = await self._db.delete_directory(directory_id)
        if removed:
            logger.info("Removed directory %d", directory_id)
        return removed

    async def _reconcile(self, directory: DirectoryRow) -> DirectorySyncReport:
        result = await self._albums.reconcile(directory)
        await self._publish_advisories(result)
        return result

    async def _publish_advisories(self, result: DirectorySyncReport) -> None:
        for album_path in result.failed_album_paths:
            await self._publish(
                SyncAdvisoryEvent(
                    album_path=album_path,
                    failed_paths=(album_path,),
                    message=audio_file_error_message([album_path]),
                )
            )
        for album in result.albums:
            if album.advisory:
                await self._publish(
                    SyncAdvisoryEvent(
                        album_path=album.album_path,
                        failed_paths=tuple(album.failed_paths),
                        message=album.advisory,
                    )
                )

    async def _finish(self, report: SyncReport) -> None:
        logger.info(
            "Sync complete: %d directories, albums +%d/-%d, files +%d/~%d/-%d, "
            "%d advisories, %d write errors",
            len(report.directories),
            report.albums_created,
            report.albums_deleted,
            report.files_created,
            report.files_updated,
            report.files_deleted,
            len(report.advisories),
            report.write_errors,
        )
        await self._publish(
            SyncCompletedEvent(
                directories=len(report.directories),
                albums_created=report.albums_created,
                albums_deleted=report.albums_deleted,
                files_created=report.files_created,
                files_deleted=report.files_deleted,
                advisories=len(report.advisories),
            )
        )
        if self._listener is not None:
            await self._listener()

    async def _publish(self, event: SyncAdvisoryEvent | SyncCompletedEvent) -> None:
        if self._events is not None:
            await self._events.publish(event)
