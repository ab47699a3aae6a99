"""
Tests for shelf.core.reconcile.

These tests verify:
- Track renumbering follows natural order and stays contiguous
- Retention policy for vanished files and albums
- A failed insert suppresses deletions for the rest of that album only
- Existing rows keep their title, duration and playback progress
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from shelf.config import SyncPolicy
from shelf.core import CatalogError
from shelf.core.catalog_db import CatalogDb
from shelf.core.collation import NaturalCollator
from shelf.core.db.models import DirectoryRow, DirectoryType
from shelf.core.reconcile import (
    AlbumReconciler,
    Origin,
    TrackReconciler,
    audio_file_error_message,
    merge_origins,
)


def fake_duration(path: Path) -> int:
    return 60_000


class FlakyCatalogDb(CatalogDb):
    """CatalogDb that refuses to insert the audio files named in `failing`."""

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path)
        self.failing: set[str] = set()

    async def insert_audio_file(self, *, title: str, **kwargs) -> int:
        if title in self.failing:
            raise CatalogError(f"refusing to insert {title}")
        return await super().insert_audio_file(title=title, **kwargs)


@pytest.fixture
async def db() -> FlakyCatalogDb:
    db = FlakyCatalogDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path.resolve()


def make_album(root: Path, name: str, files: list[str]) -> Path:
    album = root / name
    album.mkdir(parents=True, exist_ok=True)
    for file_name in files:
        (album / file_name).write_bytes(b"")
    return album


def reconcilers(
    db: CatalogDb, policy: SyncPolicy | None = None
) -> tuple[TrackReconciler, AlbumReconciler]:
    policy = policy or SyncPolicy()
    tracks = TrackReconciler(db, NaturalCollator(), policy, duration_reader=fake_duration)
    return tracks, AlbumReconciler(db, tracks, policy)


async def register(db: CatalogDb, path: Path, directory_type: DirectoryType) -> DirectoryRow:
    directory_id = await db.insert_directory(path, directory_type)
    return DirectoryRow(id=directory_id, path=str(path), type=directory_type)


async def tracks_of(db: CatalogDb, album_id: int) -> list[tuple[str, int]]:
    return [(r.title, r.sort_index) for r in await db.list_audio_files_by_album(album_id)]


class TestMergeOrigins:
    def test_tags(self) -> None:
        merged = merge_origins(["a", "b"], ["b", "c"])
        assert merged == {
            "a": Origin.ON_DISK_ONLY,
            "b": Origin.BOTH,
            "c": Origin.IN_CATALOG_ONLY,
        }

    def test_error_message_lists_paths(self) -> None:
        message = audio_file_error_message(["/x/a.mp3", "/x/b.mp3"])
        assert message == "Could not add to the catalog: /x/a.mp3, /x/b.mp3"


class TestTrackReconciler:
    @pytest.fixture
    async def album(self, db: CatalogDb, root: Path) -> tuple[Path, int]:
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        folder = make_album(root, "Book", ["01 - A.mp3", "02 - B.mp3", "10 - End.mp3"])
        album_id = await db.insert_album(
            title="Book", path=str(folder), directory_id=directory.id
        )
        return folder, album_id

    async def test_initial_numbering(self, db: CatalogDb, album: tuple[Path, int]) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db)

        report = await tracks.reconcile(str(folder), album_id)

        assert report.files_created == 3
        assert await tracks_of(db, album_id) == [
            ("01 - A.mp3", 1),
            ("02 - B.mp3", 2),
            ("10 - End.mp3", 3),
        ]
        rows = await db.list_audio_files_by_album(album_id)
        assert all(r.duration_ms == 60_000 for r in rows)

    async def test_second_pass_changes_nothing(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db)
        await tracks.reconcile(str(folder), album_id)

        report = await tracks.reconcile(str(folder), album_id)
        assert not report.changed
        assert report.files_retained == 0

    async def test_inserted_file_shifts_later_rows(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db)
        await tracks.reconcile(str(folder), album_id)

        (folder / "03 - Intro.mp3").write_bytes(b"")
        report = await tracks.reconcile(str(folder), album_id)

        assert report.files_created == 1
        assert report.files_updated == 1
        assert await tracks_of(db, album_id) == [
            ("01 - A.mp3", 1),
            ("02 - B.mp3", 2),
            ("03 - Intro.mp3", 3),
            ("10 - End.mp3", 4),
        ]

    async def test_deleted_file_keeps_numbering_contiguous(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db)
        await tracks.reconcile(str(folder), album_id)

        (folder / "02 - B.mp3").unlink()
        report = await tracks.reconcile(str(folder), album_id)

        assert report.files_deleted == 1
        assert await tracks_of(db, album_id) == [("01 - A.mp3", 1), ("10 - End.mp3", 2)]

    async def test_keep_deleted_retains_row_and_position(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db, SyncPolicy(keep_deleted=True))
        await tracks.reconcile(str(folder), album_id)

        (folder / "02 - B.mp3").unlink()
        report = await tracks.reconcile(str(folder), album_id)

        assert report.files_deleted == 0
        assert report.files_retained == 1
        assert await tracks_of(db, album_id) == [
            ("01 - A.mp3", 1),
            ("02 - B.mp3", 2),
            ("10 - End.mp3", 3),
        ]

    async def test_retained_row_keeps_duration_and_progress(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db, SyncPolicy(show_hidden=True, keep_deleted=True))
        await tracks.reconcile(str(folder), album_id)

        rows = {r.title: r for r in await db.list_audio_files_by_album(album_id)}
        vanished = rows["02 - B.mp3"]
        await db.set_completed_time(vanished.id, 1_234)

        (folder / "02 - B.mp3").unlink()
        report = await tracks.reconcile(str(folder), album_id)

        assert report.files_retained == 1
        assert not report.changed
        after = await db.get_audio_file(vanished.id)
        assert after.title == "02 - B.mp3"
        assert after.duration_ms == 60_000
        assert after.completed_time_ms == 1_234
        assert after.sort_index == 2

    async def test_existing_rows_keep_progress(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db, SyncPolicy(show_hidden=True, keep_deleted=True))
        await tracks.reconcile(str(folder), album_id)

        rows = await db.list_audio_files_by_album(album_id)
        end = rows[-1]
        await db.set_completed_time(end.id, 42_000)

        (folder / "02 - B.mp3").unlink()
        (folder / "00 - Preface.mp3").write_bytes(b"")
        await tracks.reconcile(str(folder), album_id)

        after = await db.get_audio_file(end.id)
        assert after.title == "10 - End.mp3"
        assert after.duration_ms == 60_000
        assert after.completed_time_ms == 42_000
        assert after.sort_index == 4

    async def test_hidden_rows_are_removed_when_not_shown(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        (folder / "._01 - A.mp3").write_bytes(b"")

        shown, _ = reconcilers(db, SyncPolicy(show_hidden=True, keep_deleted=True))
        await shown.reconcile(str(folder), album_id)
        assert "._01 - A.mp3" in [t for t, _ in await tracks_of(db, album_id)]

        hiding, _ = reconcilers(db, SyncPolicy(show_hidden=False, keep_deleted=True))
        report = await hiding.reconcile(str(folder), album_id)

        assert report.files_deleted == 1
        assert "._01 - A.mp3" not in [t for t, _ in await tracks_of(db, album_id)]

    async def test_non_audio_files_are_ignored(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        (folder / "cover.jpg").write_bytes(b"")
        (folder / "notes.txt").write_bytes(b"")
        tracks, _ = reconcilers(db)

        await tracks.reconcile(str(folder), album_id)
        assert await db.count_audio_files() == 3

    async def test_missing_folder_empties_album(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album
        tracks, _ = reconcilers(db)
        await tracks.reconcile(str(folder), album_id)

        shutil.rmtree(folder)
        report = await tracks.reconcile(str(folder), album_id)
        assert report.files_deleted == 3

    async def test_unreadable_duration_becomes_zero(
        self, db: CatalogDb, album: tuple[Path, int]
    ) -> None:
        folder, album_id = album

        def broken_reader(path: Path) -> int:
            raise RuntimeError("decoder exploded")

        tracks = TrackReconciler(db, NaturalCollator(), SyncPolicy(), duration_reader=broken_reader)
        report = await tracks.reconcile(str(folder), album_id)

        assert report.files_created == 3
        rows = await db.list_audio_files_by_album(album_id)
        assert all(r.duration_ms == 0 for r in rows)


class TestInsertFailure:
    """A failed insert stops deletions for the rest of that album's walk."""

    async def test_partial_failure(self, db: FlakyCatalogDb, root: Path) -> None:
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        book = make_album(root, "Book", ["Track 1.mp3", "Track 2.mp3", "Track 3.mp3"])
        other = make_album(root, "Other", ["a.mp3", "b.mp3"])
        _, albums = reconcilers(db)
        await albums.reconcile(directory)

        (book / "Track 3.mp3").unlink()
        (book / "Track 2b.mp3").write_bytes(b"")
        (book / "Track 10.mp3").write_bytes(b"")
        (other / "b.mp3").unlink()
        db.failing.add("Track 2b.mp3")

        report = await albums.reconcile(directory)

        by_path = {a.album_path: a for a in report.albums}
        book_report = by_path[str(book)]
        assert book_report.failed_paths == [str(book / "Track 2b.mp3")]
        assert book_report.files_deleted == 0
        assert book_report.files_retained == 1
        assert book_report.advisory == audio_file_error_message([str(book / "Track 2b.mp3")])

        book_id = book_report.album_id
        assert await tracks_of(db, book_id) == [
            ("Track 1.mp3", 1),
            ("Track 2.mp3", 2),
            ("Track 3.mp3", 4),
            ("Track 10.mp3", 5),
        ]

        # Deletions elsewhere are unaffected.
        other_report = by_path[str(other)]
        assert other_report.files_deleted == 1
        assert other_report.advisory is None
        assert await tracks_of(db, other_report.album_id) == [("a.mp3", 1)]

        assert report.advisories == [book_report.advisory]

    async def test_recovers_on_next_pass(self, db: FlakyCatalogDb, root: Path) -> None:
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        book = make_album(root, "Book", ["Track 1.mp3", "Track 2.mp3"])
        _, albums = reconcilers(db)
        db.failing.add("Track 1.mp3")

        first = await albums.reconcile(directory)
        assert first.advisories

        db.failing.clear()
        (book / "Track 2.mp3").unlink()
        second = await albums.reconcile(directory)

        assert not second.advisories
        album_id = second.albums[0].album_id
        assert await tracks_of(db, album_id) == [("Track 1.mp3", 1)]

    async def test_album_insert_failure_is_reported(self, root: Path) -> None:
        class NoAlbumsDb(CatalogDb):
            async def insert_album(self, **kwargs) -> int:
                raise CatalogError("disk full")

        db = NoAlbumsDb(":memory:")
        await db.open()
        try:
            await db.ensure_schema()
            directory = await register(db, root, DirectoryType.PARENT_DIR)
            make_album(root, "Book", ["a.mp3"])
            _, albums = reconcilers(db)

            report = await albums.reconcile(directory)

            assert report.failed_album_paths == [str(root / "Book")]
            assert report.albums == []
            assert report.advisories == [audio_file_error_message([str(root / "Book")])]
        finally:
            await db.close()


class RefusingCatalogDb(CatalogDb):
    """CatalogDb whose updates and deletes fail while `refuse` is set."""

    refuse = False

    async def _maybe_refuse(self, what: str) -> None:
        if self.refuse:
            raise CatalogError(f"{what} refused")

    async def update_audio_file_sort_index(self, audio_file_id: int, sort_index: int) -> bool:
        await self._maybe_refuse("update")
        return await super().update_audio_file_sort_index(audio_file_id, sort_index)

    async def delete_audio_file(self, audio_file_id: int) -> bool:
        await self._maybe_refuse("delete")
        return await super().delete_audio_file(audio_file_id)

    async def delete_album(self, album_id: int) -> bool:
        await self._maybe_refuse("delete album")
        return await super().delete_album(album_id)

    async def update_album_cover(self, album_id: int, cover_path: str | None) -> bool:
        await self._maybe_refuse("cover")
        return await super().update_album_cover(album_id, cover_path)


class TestWriteErrors:
    """Refused updates and deletes are counted and the walk continues."""

    @pytest.fixture
    async def refusing_db(self) -> RefusingCatalogDb:
        db = RefusingCatalogDb(":memory:")
        await db.open()
        await db.ensure_schema()
        yield db
        await db.close()

    async def test_refused_track_writes(self, refusing_db: RefusingCatalogDb, root: Path) -> None:
        directory = await register(refusing_db, root, DirectoryType.PARENT_DIR)
        book = make_album(root, "Book", ["02.mp3", "03.mp3", "05.mp3"])
        _, albums = reconcilers(refusing_db)
        await albums.reconcile(directory)

        (book / "01.mp3").write_bytes(b"")
        (book / "03.mp3").unlink()
        (book / "09.mp3").write_bytes(b"")
        refusing_db.refuse = True

        report = await albums.reconcile(directory)

        (book_report,) = report.albums
        # 02 cannot move, 03 can be neither removed nor moved, 05 cannot move.
        assert book_report.write_errors == 4
        assert book_report.files_created == 2
        assert book_report.files_deleted == 0
        assert book_report.files_retained == 1
        assert book_report.advisory is None
        assert report.total_write_errors == 4

        titles = [t for t, _ in await tracks_of(refusing_db, book_report.album_id)]
        assert sorted(titles) == ["01.mp3", "02.mp3", "03.mp3", "05.mp3", "09.mp3"]

        # Once the catalog accepts writes again the next pass catches up.
        refusing_db.refuse = False
        await albums.reconcile(directory)
        assert await tracks_of(refusing_db, book_report.album_id) == [
            ("01.mp3", 1),
            ("02.mp3", 2),
            ("05.mp3", 3),
            ("09.mp3", 4),
        ]

    async def test_refused_album_writes(self, refusing_db: RefusingCatalogDb, root: Path) -> None:
        directory = await register(refusing_db, root, DirectoryType.PARENT_DIR)
        keep = make_album(root, "Keep", ["01.mp3"])
        gone = make_album(root, "Gone", ["01.mp3"])
        _, albums = reconcilers(refusing_db)
        await albums.reconcile(directory)

        (keep / "cover.jpg").write_bytes(b"")
        (keep / "02.mp3").write_bytes(b"")
        shutil.rmtree(gone)
        refusing_db.refuse = True

        report = await albums.reconcile(directory)

        assert report.write_errors == 2
        assert report.albums_deleted == 0
        assert report.albums_retained == 1
        assert report.albums_updated == 0
        assert report.albums[0].files_created == 1
        assert await refusing_db.count_albums() == 2


class TestAlbumReconciler:
    async def test_parent_dir_skips_hidden_folders(self, db: CatalogDb, root: Path) -> None:
        for name in ("A", "B", ".hidden"):
            make_album(root, name, ["01.mp3"])
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        _, albums = reconcilers(db)

        report = await albums.reconcile(directory)

        assert report.albums_created == 2
        titles = [a.title for a in await db.list_albums_by_directory(directory.id)]
        assert sorted(titles) == ["A", "B"]
        assert await db.count_audio_files() == 2

    async def test_single_dir_is_one_album(self, db: CatalogDb, root: Path) -> None:
        book = make_album(root, "Book", ["01.mp3", "02.mp3"])
        make_album(book, "Extras", ["bonus.mp3"])
        directory = await register(db, book, DirectoryType.SINGLE_DIR)
        _, albums = reconcilers(db)

        await albums.reconcile(directory)

        rows = await db.list_albums_by_directory(directory.id)
        assert [(a.title, a.path) for a in rows] == [("Book", str(book))]
        assert await tracks_of(db, rows[0].id) == [("01.mp3", 1), ("02.mp3", 2)]

    async def test_hidden_single_dir(self, db: CatalogDb, root: Path) -> None:
        book = make_album(root, ".Book", ["01.mp3"])
        directory = await register(db, book, DirectoryType.SINGLE_DIR)

        _, albums = reconcilers(db)
        await albums.reconcile(directory)
        assert await db.count_albums() == 0

        _, albums = reconcilers(db, SyncPolicy(show_hidden=True))
        await albums.reconcile(directory)
        assert await db.count_albums() == 1

    async def test_missing_directory_removes_albums(self, db: CatalogDb, root: Path) -> None:
        library = root / "library"
        make_album(library, "A", ["01.mp3"])
        make_album(library, "B", ["01.mp3"])
        directory = await register(db, library, DirectoryType.PARENT_DIR)
        _, albums = reconcilers(db)
        await albums.reconcile(directory)

        shutil.rmtree(library)
        report = await albums.reconcile(directory)

        assert report.albums_deleted == 2
        assert await db.count_albums() == 0
        assert await db.count_audio_files() == 0
        # The registration itself stays.
        assert await db.get_directory(directory.id) is not None

    async def test_keep_deleted_retains_albums(self, db: CatalogDb, root: Path) -> None:
        make_album(root, "A", ["01.mp3"])
        b = make_album(root, "B", ["01.mp3"])
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        _, albums = reconcilers(db, SyncPolicy(keep_deleted=True))
        await albums.reconcile(directory)

        shutil.rmtree(b)
        report = await albums.reconcile(directory)

        assert report.albums_deleted == 0
        assert report.albums_retained == 1
        assert await db.count_albums() == 2
        assert await db.count_audio_files() == 2

    async def test_renamed_album_keeps_its_title(self, db: CatalogDb, root: Path) -> None:
        make_album(root, "dune_1965", ["01.mp3"])
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        _, albums = reconcilers(db)
        await albums.reconcile(directory)

        (album,) = await db.list_albums_by_directory(directory.id)
        await db.rename_album(album.id, "Dune")

        report = await albums.reconcile(directory)
        assert not report.changed
        refreshed = await db.get_album(album.id)
        assert refreshed.title == "Dune"
        assert refreshed.path == album.path

    async def test_cover_is_picked_up_later(self, db: CatalogDb, root: Path) -> None:
        folder = make_album(root, "Book", ["01.mp3"])
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        _, albums = reconcilers(db)
        await albums.reconcile(directory)

        (album,) = await db.list_albums_by_directory(directory.id)
        assert album.cover_path is None

        (folder / "cover.jpg").write_bytes(b"")
        report = await albums.reconcile(directory)

        assert report.albums_updated == 1
        refreshed = await db.get_album(album.id)
        assert refreshed.cover_path == "cover.jpg"

        (folder / "cover.jpg").unlink()
        report = await albums.reconcile(directory)
        assert report.albums_updated == 0
        assert (await db.get_album(album.id)).cover_path == "cover.jpg"

    async def test_new_album_gets_cover(self, db: CatalogDb, root: Path) -> None:
        folder = make_album(root, "Book", ["01.mp3"])
        (folder / "folder.png").write_bytes(b"")
        directory = await register(db, root, DirectoryType.PARENT_DIR)
        _, albums = reconcilers(db)

        await albums.reconcile(directory)

        (album,) = await db.list_albums_by_directory(directory.id)
        assert album.cover_path == "folder.png"
