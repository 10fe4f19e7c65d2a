"""Filesystem helpers."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def remove_dir_contents(directory) -> None:
    """Remove everything inside ``directory``; a missing directory is a no-op."""
    path = Path(directory)
    if not path.is_dir():
        return
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()