# trick_tally/paths.py
from __future__ import annotations

from pathlib import Path

# Default location for saved games and exported score sheets.
DATA_DIR = Path.home() / ".trick_tally"


def ensure_data_dir(base: Path = DATA_DIR) -> Path:
    """Create the data directory if it does not exist and return it."""
    base.mkdir(parents=True, exist_ok=True)
    return base


def resolve_data_path(path_like: str | Path, base: Path = DATA_DIR) -> Path:
    """
    Resolve a user-specified path into the data directory.

    Absolute paths are returned unchanged. Relative paths are anchored inside
    `base` so exports land next to the saved game.
    """
    path = Path(path_like)
    if path.is_absolute():
        return path
    ensure_data_dir(base)
    return base / path
