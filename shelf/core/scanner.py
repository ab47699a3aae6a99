"""
Filesystem and metadata lookups used by the reconcilers.

Everything here is synchronous and never raises for a path that is missing or
unreadable: such a path lists as empty. Callers run these functions
in worker threads (`asyncio.to_thread`).

- `list_album_paths()`: album folders of a registered directory
- `list_audio_filenames()`: audio files directly inside an album folder
- `read_duration_ms()`: track duration via mutagen (0 when unknown)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from mutagen import File as mutagen_file
from mutagen import MutagenError

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."

# Formats the player backend can open; matched case-insensitively on the suffix.
DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".wma",
        ".ogg",
        ".wav",
        ".flac",
        ".m4a",
        ".m4b",
        ".aac",
        ".3gp",
        ".gsm",
        ".mid",
        ".mkv",
        ".opus",
    }
)

EntryPredicate = Callable[[Path], bool]
DurationReader = Callable[[Path], int]


def is_hidden(name: str) -> bool:
    return name.startswith(HIDDEN_PREFIX)


def is_readable(path: Path) -> bool:
    return os.access(path, os.R_OK)


def list_entries(path: Path, predicate: EntryPredicate) -> list[str]:
    """
    Names of the immediate children of `path` accepted by `predicate`.

    A missing or unreadable `path` is an empty directory, not an error. Entries
    that vanish or fail to stat while we look at them are skipped.
    """
    try:
        children = list(path.iterdir())
    except OSError as e:
        logger.debug("Cannot list %s: %s", path, e)
        return []

    names: list[str] = []
    for child in children:
        try:
            if predicate(child):
                names.append(child.name)
        except OSError:
            # Ignore broken permissions/paths during the walk.
            continue
    return names


def list_album_paths(root: Path, *, single: bool, show_hidden: bool) -> list[str]:
    """
    Absolute paths of the album folders a registered directory currently holds.

    - parent directory: every readable, visible immediate subdirectory
    - single directory: the directory itself, under the same filter
    - missing root (or not a directory): nothing
    """
    try:
        if not root.is_dir():
            return []
    except OSError:
        return []

    def _visible_dir(p: Path) -> bool:
        return is_readable(p) and p.is_dir() and (show_hidden or not is_hidden(p.name))

    if single:
        return [str(root.absolute())] if _visible_dir(root) else []

    return [str((root / name).absolute()) for name in list_entries(root, _visible_dir)]


def list_audio_filenames(
    album_path: Path,
    *,
    show_hidden: bool,
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS,
) -> list[str]:
    """File names (not paths) of the readable audio files directly inside an album folder."""

    def _audio_file(p: Path) -> bool:
        if not show_hidden and is_hidden(p.name):
            return False
        if p.suffix.lower() not in extensions:
            return False
        return is_readable(p) and p.is_file()

    return list_entries(album_path, _audio_file)


def read_duration_ms(path: Path) -> int:
    """
    Track duration in milliseconds, read with mutagen.

    Never raises: unsupported, unreadable or corrupt files yield 0. This function
    is intentionally synchronous; reconcilers run it in a thread.
    """
    try:
        audio = mutagen_file(path)
    except (MutagenError, OSError, ValueError) as e:
        logger.debug("Could not read duration of %s: %s", path, e)
        return 0
    if audio is None:
        logger.debug("Could not read duration of %s: unsupported or unreadable audio file", path)
        return 0

    info = getattr(audio, "info", None)
    length = getattr(info, "length", None)
    if isinstance(length, (int, float)) and length > 0:
        return int(length * 1000)
    return 0
