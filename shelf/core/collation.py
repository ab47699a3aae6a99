"""
Natural ("human") ordering for file names and titles.

"Track 2" sorts before "Track 10": runs of consecutive digits are compared as
integers instead of character by character. A name is split into digit runs
and text runs; text runs that start with whitespace or punctuation sort before
digits, digits before letters ("(Prologue).mp3" < "01.mp3" < "Intro.mp3").

Text runs are compared on several levels, the later ones only breaking ties:

1. primary:   digits by value, text casefolded with accents stripped
2. secondary: text casefolded, accents kept
3. tertiary:  text as written (case and accents kept)
4. the raw string itself, so the order is total and only equal strings
   compare equal ("01" and "1" are distinct names on disk)

With a `locale` set, every text level goes through the C library collation of
that locale (`locale.strxfrm`), so letters follow the alphabet of that
language. Without one, text compares by code point after folding, which gives
the same order on every host.
"""

from __future__ import annotations

import locale as _locale
import re
import threading
import unicodedata
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator

_DIGIT_RUN = re.compile(r"(\d+)")

# setlocale() is process wide; keys are computed under this lock.
_LOCALE_LOCK = threading.RLock()

# Token kinds, in sort order.
_PUNCTUATION = 0
_NUMBER = 1
_TEXT = 2

# A token is (kind, value, text).
_Token = tuple[int, int, str]
CollationKey = tuple[tuple[_Token, ...], tuple[_Token, ...], tuple[_Token, ...], str]


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _text_kind(text: str) -> int:
    return _TEXT if text[0].isalnum() else _PUNCTUATION


@contextmanager
def _collate_in(name: str | None) -> Iterator[None]:
    """Switch LC_COLLATE to `name` for the duration of the block."""
    if name is None:
        yield
        return
    with _LOCALE_LOCK:
        previous = _locale.setlocale(_locale.LC_COLLATE)
        try:
            _locale.setlocale(_locale.LC_COLLATE, name)
            yield
        finally:
            _locale.setlocale(_locale.LC_COLLATE, previous)


@dataclass(frozen=True, slots=True)
class NaturalCollator:
    """
    Comparator for natural ordering.

    Args:
        locale: collation locale such as "de_DE.UTF-8" (None: code point order).
        numeric: compare digit runs by numeric value (otherwise as plain text).
        ignore_accents: treat "é" like "e" at the primary level.
        ignore_case: treat "A" like "a" at the primary level.

    Raises:
        ValueError: if `locale` is not available on this host.
    """

    locale: str | None = None
    numeric: bool = True
    ignore_accents: bool = True
    ignore_case: bool = True

    def __post_init__(self) -> None:
        if self.locale is None:
            return
        try:
            with _collate_in(self.locale):
                pass
        except _locale.Error as e:
            raise ValueError(f"Unsupported collation locale {self.locale!r}: {e}") from e

    def _text(self, text: str) -> str:
        return _locale.strxfrm(text) if self.locale is not None else text

    def _tokens(self, text: str, *, fold_case: bool, fold_accents: bool) -> tuple[_Token, ...]:
        if fold_accents:
            text = _strip_accents(text)
        if fold_case:
            text = text.casefold()
        if not text:
            return ()
        if not self.numeric:
            return ((_text_kind(text), 0, self._text(text)),)

        out: list[_Token] = []
        for part in _DIGIT_RUN.split(text):
            if not part:
                continue
            if part.isdigit():
                # isdigit() also accepts e.g. superscripts, which int() rejects.
                try:
                    out.append((_NUMBER, int(part), ""))
                    continue
                except ValueError:
                    pass
            out.append((_text_kind(part), 0, self._text(part)))
        return tuple(out)

    def _key(self, text: str) -> CollationKey:
        primary = self._tokens(
            text, fold_case=self.ignore_case, fold_accents=self.ignore_accents
        )
        secondary = self._tokens(text, fold_case=self.ignore_case, fold_accents=False)
        tertiary = self._tokens(text, fold_case=False, fold_accents=False)
        return (primary, secondary, tertiary, text)

    def key(self, text: str) -> CollationKey:
        """Sort key: `sorted(names, key=collator.key)`."""
        with _collate_in(self.locale):
            return self._key(text)

    def compare(self, a: str, b: str) -> int:
        """Return -1, 0 or 1 like a classic comparator."""
        with _collate_in(self.locale):
            ka = self._key(a)
            kb = self._key(b)
        if ka < kb:
            return -1
        if ka > kb:
            return 1
        return 0

    def sorted(self, names: Iterable[str]) -> list[str]:
        with _collate_in(self.locale):
            return sorted(names, key=self._key)
