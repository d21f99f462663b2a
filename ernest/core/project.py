from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

CONFIG_FILENAME = ".export.toml"


def find_project_root(path: str | os.PathLike[str]) -> Optional[Path]:
    """Return the nearest ancestor directory holding ``.export.toml``."""
    candidate = Path(os.path.normpath(Path(path).expanduser().absolute()))
    start = candidate if candidate.is_dir() else candidate.parent
    for ancestor in (start, *start.parents):
        if (ancestor / CONFIG_FILENAME).exists():
            return ancestor
    return None


def config_path(project_root: Path) -> Path:
    return project_root / CONFIG_FILENAME


__all__ = ["CONFIG_FILENAME", "config_path", "find_project_root"]
