"""File-level change summaries and unified diffs between two directory trees.

The engine compares a live asset tree against a staged or historical tree.
Classification uses size plus byte equality, never modification times, and
results are ordered lexicographically by relative path so that previews and
history entries are deterministic regardless of filesystem enumeration order.

Example:
        from pathlib import Path
        from validation_assets.diff_engine import DiffEngine

        engine = DiffEngine()
        for diff in engine.compute_directory_diff(Path("live"), Path("staged")):
                print(diff.status.value, diff.path)

        detail = engine.compute_file_diff(
                Path("live/schematron/main.xml"),
                Path("staged/schematron/main.xml"),
                "schematron/main.xml",
        )
        print(detail.unified_diff)

Notes:
* A missing directory is treated as an empty tree, so the first sync of a
    package reports every file as ADDED.
* Files containing a NUL byte in their first 8 KiB, or larger than 10 MiB,
    are reported by status only.
"""

from __future__ import annotations

import difflib
import filecmp
import logging
from pathlib import Path
from typing import Dict, List, Optional

from .models import FileChangeStatus, FileDiffDetail, FileDiffSummary, RuleIdDiff
from .schematron_parser import extract_rule_ids

logger = logging.getLogger(__name__)

BINARY_CHECK_BYTES = 8192
MAX_TEXT_DIFF_BYTES = 10 * 1024 * 1024
CONTEXT_LINES = 3


def collect_files(root: Optional[Path]) -> Dict[str, Path]:
    """Map ``/``-separated relative paths to files under ``root``."""
    files: Dict[str, Path] = {}
    if root is None or not root.is_dir():
        return files
    for path in root.rglob("*"):
        if path.is_file():
            files[path.relative_to(root).as_posix()] = path
    return files


def is_binary(path: Path) -> bool:
    """Heuristic binary check (NUL byte in the leading block, or oversized)."""
    if path.stat().st_size > MAX_TEXT_DIFF_BYTES:
        return True
    with open(path, "rb") as f:
        return b"\x00" in f.read(BINARY_CHECK_BYTES)


def _same_content(old_file: Path, new_file: Path) -> bool:
    if old_file.stat().st_size != new_file.stat().st_size:
        return False
    return filecmp.cmp(old_file, new_file, shallow=False)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


class DiffEngine:
    """Compute directory and per-file differences."""

    def compute_directory_diff(
        self, old_dir: Optional[Path], new_dir: Optional[Path]
    ) -> List[FileDiffSummary]:
        """Classify every file present in either tree.

        Args:
            old_dir: Previous tree (typically the live directory). May be absent.
            new_dir: Candidate tree (staged download or snapshot ``_after``).

        Returns:
            One :class:`FileDiffSummary` per relative path, sorted by path.
        """
        old_files = collect_files(old_dir)
        new_files = collect_files(new_dir)

        diffs: List[FileDiffSummary] = []
        for rel in sorted(set(old_files) | set(new_files)):
            old_file = old_files.get(rel)
            new_file = new_files.get(rel)
            old_size = old_file.stat().st_size if old_file else -1
            new_size = new_file.stat().st_size if new_file else -1

            if old_file is None:
                status = FileChangeStatus.ADDED
            elif new_file is None:
                status = FileChangeStatus.REMOVED
            elif _same_content(old_file, new_file):
                status = FileChangeStatus.UNCHANGED
            else:
                status = FileChangeStatus.MODIFIED
            diffs.append(FileDiffSummary(rel, status, old_size, new_size))

        logger.debug(
            f"Directory diff {old_dir} -> {new_dir}: {len(diffs)} paths compared"
        )
        return diffs

    def compute_file_diff(
        self, old_file: Optional[Path], new_file: Optional[Path], relative_path: str
    ) -> FileDiffDetail:
        """Build a unified diff for one file.

        Args:
            old_file: File on the old side; absent or ``None`` when added.
            new_file: File on the new side; absent or ``None`` when removed.
            relative_path: Path used in the ``a/`` and ``b/`` headers.

        Returns:
            :class:`FileDiffDetail`; binary files carry status only.
        """
        old_exists = old_file is not None and old_file.is_file()
        new_exists = new_file is not None and new_file.is_file()

        if not old_exists and not new_exists:
            return FileDiffDetail(relative_path, FileChangeStatus.UNCHANGED)
        if not old_exists:
            status = FileChangeStatus.ADDED
        elif not new_exists:
            status = FileChangeStatus.REMOVED
        elif _same_content(old_file, new_file):
            status = FileChangeStatus.UNCHANGED
        else:
            status = FileChangeStatus.MODIFIED

        if (old_exists and is_binary(old_file)) or (new_exists and is_binary(new_file)):
            return FileDiffDetail.binary(relative_path, status)

        old_content = _read_text(old_file) if old_exists else None
        new_content = _read_text(new_file) if new_exists else None

        unified = ""
        if status != FileChangeStatus.UNCHANGED:
            unified = "".join(
                difflib.unified_diff(
                    (old_content or "").splitlines(keepends=True),
                    (new_content or "").splitlines(keepends=True),
                    fromfile=f"a/{relative_path}",
                    tofile=f"b/{relative_path}",
                    n=CONTEXT_LINES,
                )
            )

        return FileDiffDetail(
            path=relative_path,
            status=status,
            unified_diff=unified,
            old_content=old_content,
            new_content=new_content,
        )

    def compute_rule_id_diff(
        self, old_file: Optional[Path], new_file: Optional[Path]
    ) -> RuleIdDiff:
        """Compare Schematron rule ids between two versions of a file."""
        old_ids = extract_rule_ids(old_file)
        new_ids = extract_rule_ids(new_file)
        return RuleIdDiff(
            removed=frozenset(old_ids - new_ids),
            added=frozenset(new_ids - old_ids),
            retained=frozenset(old_ids & new_ids),
        )
