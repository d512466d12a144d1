"""Append-only version history with point-in-time snapshots.

The store is the sole writer of ``<history>/versions.json`` and
``<history>/snapshots/<version-id>/``. Each approval produces one
:class:`~validation_assets.models.AssetVersion` whose snapshot directory holds
``_before`` (the live tree captured immediately before replacement) and
``_after`` (the staged tree that replaced it).

Key capabilities:
* Per-package, strictly increasing version numbers (``efatura-v1``,
    ``efatura-v2``, ...); a failed snapshot never consumes a number
* Newest-first listing, optionally filtered by package
* Stored diff summaries and lazily computed per-file unified diffs

Example:
        from pathlib import Path
        from validation_assets.version_store import VersionStore

        store = VersionStore(Path("/var/lib/assets/history"))
        print([v.id for v in store.list("efatura")])
        detail = store.file_diff("efatura-v3", "UBL-TR_Main_Schematron.xml")

Design notes:
* Snapshots are copied into ``<id>.partial`` first (:meth:`VersionStore.prepare`)
    and renamed into place by :meth:`VersionStore.commit`, so readers never
    observe a half-copied snapshot. Approval commits only after the live tree
    was replaced; an aborted snapshot leaves its number free.
* Metadata is rewritten atomically (temp file + rename) under the store lock.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .diff_engine import DiffEngine
from .errors import AssetIOError, NotFoundError
from .fs import copy_tree, remove_tree, resolve_inside, write_text_atomic
from .models import (
    AssetVersion,
    FileDiffDetail,
    FileDiffSummary,
    FilesSummary,
    utc_now,
)

logger = logging.getLogger(__name__)

METADATA_FILE = "versions.json"


def format_version_id(package_id: str, number: int) -> str:
    return f"{package_id}-v{number}"


@dataclass
class PreparedSnapshot:
    """Snapshot copied into history but not yet recorded."""

    version_id: str
    number: int
    package_id: str
    display_name: str
    partial_dir: Path
    diffs: List[FileDiffSummary] = field(default_factory=list)


class VersionStore:
    """Persistent, append-only history of approved package versions."""

    def __init__(self, history_dir: Path, diff_engine: Optional[DiffEngine] = None):
        """Initialize the store, loading any existing metadata.

        Args:
            history_dir: Root of the history area; created if missing.
            diff_engine: Engine used for lazy file diffs.
        """
        self.history_dir = Path(history_dir)
        self.snapshots_dir = self.history_dir / "snapshots"
        self.metadata_path = self.history_dir / METADATA_FILE
        self.diff_engine = diff_engine or DiffEngine()
        self._lock = threading.RLock()
        self._versions: List[AssetVersion] = []

        self.snapshots_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self.metadata_path.exists():
            return
        try:
            raw = json.loads(self.metadata_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise AssetIOError(f"Cannot read version history {self.metadata_path}: {e}")
        for entry in raw.get("versions", []):
            self._versions.append(
                AssetVersion.from_dict(entry, self.snapshots_dir / entry["id"])
            )
        logger.info(f"Loaded {len(self._versions)} version records from {self.metadata_path}")

    def _persist(self, versions: List[AssetVersion]) -> None:
        payload = {"versions": [v.to_dict(include_diffs=True) for v in versions]}
        write_text_atomic(self.metadata_path, json.dumps(payload, indent=2))

    def next_number(self, package_id: str) -> int:
        """Return the number the next snapshot of ``package_id`` would receive."""
        with self._lock:
            numbers = [v.number for v in self._versions if v.package_id == package_id]
            return max(numbers, default=0) + 1

    def prepare(
        self,
        package_id: str,
        before_tree: Optional[Path],
        after_tree: Path,
        diffs: List[FileDiffSummary],
        display_name: Optional[str] = None,
    ) -> PreparedSnapshot:
        """Copy both trees into ``<id>.partial`` without recording anything.

        The returned snapshot is invisible to :meth:`list` until
        :meth:`commit`; :meth:`abort` discards it and leaves the number free.

        Args:
            package_id: Package the version belongs to.
            before_tree: Live tree prior to replacement (may not exist yet).
            after_tree: Tree about to become live.
            diffs: Diff summary that produced this version.
            display_name: Human readable package name.

        Raises:
            AssetIOError: If copying fails; the partial directory is removed.
        """
        with self._lock:
            number = self.next_number(package_id)
            version_id = format_version_id(package_id, number)
            partial_dir = self.snapshots_dir / f"{version_id}.partial"
            remove_tree(partial_dir)
            try:
                copy_tree(before_tree, partial_dir / "_before")
                copy_tree(after_tree, partial_dir / "_after")
            except OSError as e:
                remove_tree(partial_dir)
                raise AssetIOError(f"Snapshot of {package_id} failed: {e}", version_id)
        return PreparedSnapshot(
            version_id=version_id,
            number=number,
            package_id=package_id,
            display_name=display_name or package_id,
            partial_dir=partial_dir,
            diffs=list(diffs),
        )

    def commit(self, prepared: PreparedSnapshot) -> AssetVersion:
        """Move a prepared snapshot into place and append its version record.

        Raises:
            AssetIOError: If the rename or metadata persistence fails. Nothing
                is recorded in that case and the version number stays free.
        """
        with self._lock:
            final_dir = self.snapshots_dir / prepared.version_id
            if final_dir.exists():
                # Left behind by a crash between rename and metadata write.
                remove_tree(final_dir)
            try:
                prepared.partial_dir.rename(final_dir)
            except OSError as e:
                self.abort(prepared)
                raise AssetIOError(
                    f"Snapshot of {prepared.package_id} failed: {e}", prepared.version_id
                )

            version = AssetVersion(
                id=prepared.version_id,
                number=prepared.number,
                package_id=prepared.package_id,
                display_name=prepared.display_name,
                created_at=utc_now(),
                snapshot_dir=final_dir,
                files_summary=FilesSummary.from_diffs(prepared.diffs),
                diffs=list(prepared.diffs),
            )
            try:
                self._persist(self._versions + [version])
            except OSError as e:
                remove_tree(final_dir)
                raise AssetIOError(f"Cannot write version history: {e}", prepared.version_id)
            self._versions.append(version)

        logger.info(f"Recorded version {version.id} ({version.files_summary.total} files)")
        return version

    def abort(self, prepared: PreparedSnapshot) -> None:
        """Discard a prepared snapshot that will never be committed."""
        remove_tree(prepared.partial_dir)
        logger.info(f"Discarded uncommitted snapshot {prepared.version_id}")

    def snapshot(
        self,
        package_id: str,
        before_tree: Optional[Path],
        after_tree: Path,
        diffs: List[FileDiffSummary],
        display_name: Optional[str] = None,
    ) -> AssetVersion:
        """Prepare and immediately commit a version.

        Raises:
            AssetIOError: If copying or metadata persistence fails. Nothing is
                recorded in that case and the version number stays free.
        """
        with self._lock:
            prepared = self.prepare(package_id, before_tree, after_tree, diffs, display_name)
            return self.commit(prepared)

    def list(self, package_id: Optional[str] = None) -> List[AssetVersion]:
        """Return versions newest first, optionally restricted to one package."""
        with self._lock:
            versions = list(self._versions)
        if package_id is not None:
            versions = [v for v in versions if v.package_id == package_id]
        versions.reverse()
        return versions

    def get(self, version_id: str) -> AssetVersion:
        with self._lock:
            for version in self._versions:
                if version.id == version_id:
                    return version
        raise NotFoundError(f"Version not found: {version_id}", version_id)

    def diff(self, version_id: str) -> List[FileDiffSummary]:
        return list(self.get(version_id).diffs)

    def file_diff(self, version_id: str, path: str) -> FileDiffDetail:
        """Compute the unified diff of ``path`` between ``_before`` and ``_after``.

        Raises:
            NotFoundError: Unknown version id, or ``path`` absent on both sides.
        """
        version = self.get(version_id)
        old_file = resolve_inside(version.before_dir, path)
        new_file = resolve_inside(version.after_dir, path)
        if not (old_file and old_file.is_file()) and not (new_file and new_file.is_file()):
            raise NotFoundError(f"File {path} not found in version {version_id}", path)
        return self.diff_engine.compute_file_diff(old_file, new_file, path)

    def counts_by_package(self) -> Dict[str, int]:
        with self._lock:
            counts: Dict[str, int] = {}
            for version in self._versions:
                counts[version.package_id] = counts.get(version.package_id, 0) + 1
            return counts
