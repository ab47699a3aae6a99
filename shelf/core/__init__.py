"""
Core domain package.

This package contains the catalog and the filesystem reconciliation logic, kept
independent of any presentation layer (CLI, GUI, notifications). The goal is to
keep this layer small, testable, and free of UI concerns.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `shelf.core.synchronizer`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "CatalogError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class CatalogError(CoreError):
    """Raised when the catalog rejects a write (constraint violation, I/O error, ...)."""
