"""Raw TOML configuration I/O utilities.

Separates file I/O from validation so the CLI can write a template
without going through pydantic.
"""

from __future__ import annotations

import shutil
import tomllib
from pathlib import Path
from typing import Any

import tomlkit

CONFIG_DIR = ".gatekeep"
CONFIG_FILE = "bot.toml"


def get_config_path(root: Path) -> Path:
    """Get the path to the bot config file under ``root``."""
    return root / CONFIG_DIR / CONFIG_FILE


def find_config_root(start_path: Path | None = None) -> Path | None:
    """Walk up from start_path to the first directory holding .gatekeep/bot.toml."""
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()
    for candidate in (current, *current.parents):
        if get_config_path(candidate).exists():
            return candidate
    return None


def read_raw_toml(path: Path) -> dict[str, Any]:
    """Read raw TOML data from a file.

    Raises:
        FileNotFoundError: If the file does not exist
        tomllib.TOMLDecodeError: If the file is not valid TOML
    """
    with open(path, "rb") as f:
        return tomllib.load(f)


def write_raw_toml(data: dict[str, Any], path: Path) -> None:
    """Write raw TOML data to a file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = tomlkit.dumps(data)
    path.write_text(content)


def backup_config(path: Path) -> Path | None:
    """Copy the config file next to itself as .toml.bak.

    Returns:
        Path to the backup file, or None if there was nothing to back up
    """
    if not path.exists():
        return None

    backup_path = path.with_suffix(".toml.bak")
    shutil.copy2(path, backup_path)
    return backup_path
