"""Small filesystem helpers shared by the store, staging area and live tree."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def copy_tree(source: Optional[Path], destination: Path) -> None:
    """Copy ``source`` into a new ``destination`` directory.

    A missing source produces an empty destination directory, which is how
    "no live tree yet" is represented in snapshots.
    """
    if source is not None and source.is_dir():
        shutil.copytree(source, destination)
    else:
        destination.mkdir(parents=True)


def remove_tree(path: Path) -> bool:
    """Delete a directory tree, logging instead of raising on failure.

    Only used for cleanup of directories that are no longer referenced.
    """
    if not path.exists():
        return True
    try:
        shutil.rmtree(path)
        return True
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
        return False


def write_text_atomic(path: Path, content: str) -> None:
    """Write ``content`` to a temp file beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def resolve_inside(root: Path, relative_path: str) -> Optional[Path]:
    """Resolve ``relative_path`` under ``root``; ``None`` if it escapes the root."""
    candidate = (root / relative_path).resolve()
    try:
        candidate.relative_to(root.resolve())
    except ValueError:
        return None
    return candidate
