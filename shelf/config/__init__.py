"""
Configuration management for Shelf.

This module loads the synchronization policy, collation options and database
location from TOML files. The bundled `shelf.toml` holds the defaults; a user
file only needs the keys it wants to change.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from shelf.core import CoreError
from shelf.core.collation import NaturalCollator
from shelf.core.scanner import is_hidden

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent


class ConfigError(CoreError):
    """Raised when a config file is unreadable or holds values of the wrong type."""


@dataclass(frozen=True, slots=True)
class SyncPolicy:
    """
    Policy for a reconciliation pass.

    - show_hidden: include dot-prefixed folders and files
    - keep_deleted: keep catalog rows whose files vanished (playback progress survives)
    """

    show_hidden: bool = False
    keep_deleted: bool = False

    def should_delete(self, name: str) -> bool:
        """
        Whether a catalog entry whose file or folder `name` is gone may be removed.

        Hidden entries are removed even with keep_deleted while they are not shown,
        otherwise hiding a folder would leave invisible phantoms behind.
        """
        return not self.keep_deleted or (not self.show_hidden and is_hidden(name))


@dataclass(frozen=True, slots=True)
class CollationConfig:
    """Options for natural ordering of file names."""

    locale: str | None = None
    numeric: bool = True
    ignore_accents: bool = True
    ignore_case: bool = True

    def build(self) -> NaturalCollator:
        try:
            return NaturalCollator(
                locale=self.locale,
                numeric=self.numeric,
                ignore_accents=self.ignore_accents,
                ignore_case=self.ignore_case,
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Loaded configuration."""

    policy: SyncPolicy = field(default_factory=SyncPolicy)
    collation: CollationConfig = field(default_factory=CollationConfig)
    database_path: Path = Path("shelf.db")


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table, got {type(section).__name__}")
    return section


def _get_bool(section: dict[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def parse_config(data: dict[str, Any], *, base_dir: Path | None = None) -> SyncConfig:
    """
    Build a SyncConfig from parsed TOML data.

    Missing keys keep their defaults; unknown keys are ignored. A relative
    database path is resolved against `base_dir` (the config file's folder).
    """
    sync = _section(data, "sync")
    collation = _section(data, "collation")
    database = _section(data, "database")

    db_path_raw = database.get("path", "shelf.db")
    if not isinstance(db_path_raw, str) or not db_path_raw.strip():
        raise ConfigError(f"database.path must be a non-empty string, got {db_path_raw!r}")
    db_path = Path(db_path_raw).expanduser()
    if base_dir is not None and not db_path.is_absolute() and db_path_raw != ":memory:":
        db_path = base_dir / db_path

    locale_name = collation.get("locale", "")
    if not isinstance(locale_name, str):
        raise ConfigError(f"collation.locale must be a string, got {locale_name!r}")

    collation_config = CollationConfig(
        locale=locale_name.strip() or None,
        numeric=_get_bool(collation, "numeric", True),
        ignore_accents=_get_bool(collation, "ignore_accents", True),
        ignore_case=_get_bool(collation, "ignore_case", True),
    )
    # An unknown locale is a config error, not a scan error.
    collation_config.build()

    return SyncConfig(
        policy=SyncPolicy(
            show_hidden=_get_bool(sync, "show_hidden", False),
            keep_deleted=_get_bool(sync, "keep_deleted", False),
        ),
        collation=collation_config,
        database_path=db_path,
    )


def load_config(config_path: Path | None = None) -> SyncConfig:
    """
    Load configuration from a TOML file.

    Args:
        config_path: Path to a shelf.toml. If None, uses the bundled defaults.

    Returns:
        Loaded SyncConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "shelf.toml"
        base_dir = None
    else:
        base_dir = config_path.parent

    logger.debug("Loading config from %s", config_path)

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {config_path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    return parse_config(data, base_dir=base_dir)

