"""
Album cover lookup.

Covers are plain image files inside the album folder (``cover.jpg``,
``folder.png``, ...). We only store the file name relative to the album, so a
moved library keeps its covers once the directory is re-registered.
"""

from __future__ import annotations

import logging
from pathlib import Path

from shelf.core.collation import NaturalCollator
from shelf.core.scanner import is_hidden, is_readable, list_entries

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS: frozenset[str] = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"})

# Conventional names, best first.
PREFERRED_STEMS: tuple[str, ...] = ("cover", "folder", "front", "album", "albumart")


def find_cover_image(album_path: Path, collator: NaturalCollator | None = None) -> str | None:
    """
    Pick the cover image of an album folder.

    Returns the file name relative to `album_path`, or None if the folder holds no
    readable image. Preferred names win; otherwise the first image in natural order.
    """

    def _image(p: Path) -> bool:
        return (
            not is_hidden(p.name)
            and p.suffix.lower() in IMAGE_EXTENSIONS
            and is_readable(p)
            and p.is_file()
        )

    images = list_entries(album_path, _image)
    if not images:
        return None

    ordered = (collator or NaturalCollator()).sorted(images)
    by_stem: dict[str, str] = {}
    for name in ordered:
        by_stem.setdefault(Path(name).stem.casefold(), name)
    for stem in PREFERRED_STEMS:
        if stem in by_stem:
            return by_stem[stem]

    logger.debug("No conventional cover in %s, using %s", album_path, ordered[0])
    return ordered[0]
