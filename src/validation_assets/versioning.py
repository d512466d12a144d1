"""Staging, approval and history orchestration for asset packages.

Per package the service moves between two states::

        NONE --sync_to_staging--> STAGED_PENDING --approve_pending--> NONE
                                                  \\-reject_pending--/

``sync_to_staging`` may be repeated while a package is pending; the new
download fully replaces the previous one. Approval snapshots the live tree
into the :class:`~validation_assets.version_store.VersionStore`, replaces the
live tree with the staged one and then triggers the
:class:`~validation_assets.reload.AssetRegistry`. A failed reload is reported
in the :class:`~validation_assets.models.ApprovalResult` and never rolls back
the committed files.

Example:
        from validation_assets.services import get_services

        versioning = get_services().versioning
        preview = versioning.sync_to_staging("efatura")
        print(preview.files_summary.to_dict(), preview.suppression_warnings)
        result = versioning.approve_pending("efatura")
        print(result.version.id, result.reload.status.value)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .diff_engine import DiffEngine
from .errors import AssetError, AssetIOError, InvalidStateError, NotFoundError
from .fetcher import PackageFetcher
from .fs import remove_tree, resolve_inside
from .impact import SuppressionImpactAnalyzer
from .models import (
    ApprovalResult,
    AssetVersion,
    FileDiffDetail,
    FileDiffSummary,
    FilesSummary,
    PackageDefinition,
    PackageState,
    StagingEntry,
    SyncPreview,
)
from .packages import LiveAssets, PackageCatalog
from .reload import AssetRegistry
from .staging import StagingArea
from .version_store import VersionStore, format_version_id

logger = logging.getLogger(__name__)

PENDING_READ_ATTEMPTS = 3


class AssetVersioningService:
    """Coordinate fetch → staging → approval → history → reload."""

    def __init__(
        self,
        catalog: PackageCatalog,
        live: LiveAssets,
        staging: StagingArea,
        store: VersionStore,
        fetcher: PackageFetcher,
        registry: AssetRegistry,
        diff_engine: Optional[DiffEngine] = None,
        impact_analyzer: Optional[SuppressionImpactAnalyzer] = None,
    ):
        self.catalog = catalog
        self.live = live
        self.staging = staging
        self.store = store
        self.fetcher = fetcher
        self.registry = registry
        self.diff_engine = diff_engine or DiffEngine()
        self.impact_analyzer = impact_analyzer

    # -- state machine ----------------------------------------------------

    def get_state(self, package_id: str) -> PackageState:
        self.catalog.get(package_id)
        if self.staging.get(package_id) is None:
            return PackageState.NONE
        return PackageState.STAGED_PENDING

    def _fetch(self, package: PackageDefinition, tree: Path):
        try:
            return self.fetcher.fetch(package, tree)
        except OSError as e:
            raise AssetIOError(f"Fetch of {package.id} failed: {e}", package.id) from e

    def sync_to_staging(self, package_id: str) -> SyncPreview:
        """Download a package into staging and preview it against the live tree.

        Raises:
            NotFoundError: Unknown package.
            AssetIOError: Fetch failed; any previously staged entry is kept.
        """
        package = self.catalog.get(package_id)
        with self.staging.package_lock(package_id):
            tree = self.staging.new_tree(package_id)
            try:
                fetched = self._fetch(package, tree)
                live_dir = self.live.path(package)
                diffs = self.diff_engine.compute_directory_diff(live_dir, tree)
                suppression_warnings = []
                if self.impact_analyzer is not None:
                    suppression_warnings = self.impact_analyzer.analyze_impact(
                        live_dir, tree, diffs
                    )
            except Exception:
                remove_tree(tree)
                raise

            entry = StagingEntry(
                package_id=package_id,
                tree=tree,
                diffs=diffs,
                warnings=list(fetched.warnings),
                suppression_warnings=suppression_warnings,
                files_extracted=len(fetched.files),
                fetch_duration_ms=fetched.duration_ms,
            )
            self.staging.put(entry)
            preview = self._preview(entry)

        summary = preview.files_summary
        logger.info(
            f"Staged {package_id}: +{summary.added} -{summary.removed} ~{summary.modified} "
            f"={summary.unchanged}, {len(entry.warnings)} warning(s)"
        )
        return preview

    def sync_all_to_staging(self) -> List[SyncPreview]:
        """Stage every package; failures are logged and skipped."""
        previews: List[SyncPreview] = []
        for package in self.catalog.all():
            try:
                previews.append(self.sync_to_staging(package.id))
            except AssetError as e:
                logger.error(f"Sync of {package.id} failed: {e}")
        return previews

    def approve_pending(self, package_id: str) -> ApprovalResult:
        """Commit the staged tree to live and record it in history.

        The snapshot is prepared first and committed to history only once the
        live tree has been replaced, so every recorded version went live.

        Raises:
            NotFoundError: Unknown package.
            InvalidStateError: Nothing pending for ``package_id``.
            AssetIOError: Snapshot or live replacement failed; the staging
                entry is restored so the approval can be retried and no
                version number is consumed.
        """
        package = self.catalog.get(package_id)
        with self.staging.package_lock(package_id):
            entry = self.staging.take(package_id)
            live_dir = self.live.path(package)
            try:
                prepared = self.store.prepare(
                    package_id, live_dir, entry.tree, entry.diffs, package.display_name
                )
            except AssetIOError:
                logger.error(f"Snapshot of {package_id} failed; staging entry restored")
                self.staging.restore(entry)
                raise
            try:
                self.live.replace(package, entry.tree)
            except AssetIOError:
                logger.error(f"Live replacement of {package_id} failed; staging entry restored")
                self.store.abort(prepared)
                self.staging.restore(entry)
                raise
            try:
                version = self.store.commit(prepared)
            except AssetIOError:
                # Staged tree is already live.
                logger.error(f"{package_id} is live but its history record could not be written")
                self.staging.discard(entry)
                self.registry.reload()
                raise
            self.staging.discard(entry)

        logger.info(f"Approved {package_id} as {version.id}; reloading assets")
        report = self.registry.reload()
        return ApprovalResult(version=version, reload=report)

    def reject_pending(self, package_id: str) -> None:
        """Discard the staged tree; live tree and history are untouched."""
        self.catalog.get(package_id)
        with self.staging.package_lock(package_id):
            entry = self.staging.take(package_id)
            self.staging.discard(entry)
        logger.info(f"Rejected pending staging for {package_id}")

    # -- queries ----------------------------------------------------------

    def list_versions(self, package_id: Optional[str] = None) -> List[AssetVersion]:
        if package_id is not None:
            self.catalog.get(package_id)
        return self.store.list(package_id)

    def get_version(self, version_id: str) -> AssetVersion:
        return self.store.get(version_id)

    def get_version_diff(self, version_id: str) -> List[FileDiffSummary]:
        return self.store.diff(version_id)

    def get_file_diff(self, version_id: str, path: str) -> FileDiffDetail:
        return self.store.file_diff(version_id, path)

    def _preview(self, entry: StagingEntry) -> SyncPreview:
        package = self.catalog.get(entry.package_id)
        number = self.store.next_number(entry.package_id)
        return SyncPreview(
            package_id=entry.package_id,
            display_name=package.display_name,
            target_version=number,
            target_version_id=format_version_id(entry.package_id, number),
            files_summary=FilesSummary.from_diffs(entry.diffs),
            file_diffs=list(entry.diffs),
            warnings=list(entry.warnings),
            suppression_warnings=list(entry.suppression_warnings),
            staged_at=entry.staged_at,
            files_extracted=entry.files_extracted,
            fetch_duration_ms=entry.fetch_duration_ms,
        )

    def _pending_entry(self, package_id: str) -> StagingEntry:
        self.catalog.get(package_id)
        entry = self.staging.get(package_id)
        if entry is None:
            raise InvalidStateError(f"No pending staging for package: {package_id}", package_id)
        return entry

    def get_pending_preview(self, package_id: str) -> SyncPreview:
        return self._preview(self._pending_entry(package_id))

    def get_all_pending_previews(self) -> List[SyncPreview]:
        return [self._preview(entry) for entry in self.staging.list()]

    def get_pending_file_diff(self, package_id: str, path: str) -> FileDiffDetail:
        """Unified diff of one file between the live tree and the staged tree.

        No package lock is taken. A re-sync, approval or rejection that lands
        mid-read is detected by checking that the same entry is still pending
        afterwards; the read is then repeated against the new entry.

        Raises:
            InvalidStateError: Nothing pending for ``package_id``, or the
                entry kept changing during the read.
            NotFoundError: ``path`` exists on neither side.
        """
        package = self.catalog.get(package_id)
        for _ in range(PENDING_READ_ATTEMPTS):
            entry = self._pending_entry(package_id)
            try:
                detail = self._staged_file_diff(package, entry, path)
            except (NotFoundError, FileNotFoundError) as e:
                if self.staging.get(package_id) is not entry:
                    continue
                if isinstance(e, NotFoundError):
                    raise
                raise NotFoundError(f"File {path} not found in pending {package_id}", path) from e
            if self.staging.get(package_id) is entry:
                return detail
            logger.debug(f"Pending entry for {package_id} changed during diff of {path}; retrying")
        raise InvalidStateError(
            f"Pending staging for {package_id} changed while reading {path}", package_id
        )

    def _staged_file_diff(
        self, package: PackageDefinition, entry: StagingEntry, path: str
    ) -> FileDiffDetail:
        old_file = resolve_inside(self.live.path(package), path)
        new_file = resolve_inside(entry.tree, path)
        if not (old_file and old_file.is_file()) and not (new_file and new_file.is_file()):
            raise NotFoundError(f"File {path} not found in pending {package.id}", path)
        return self.diff_engine.compute_file_diff(old_file, new_file, path)

    def package_overview(self) -> List[Dict[str, Any]]:
        """Catalog entries annotated with state, version count and live path."""
        counts = self.store.counts_by_package()
        overview = []
        for package in self.catalog.all():
            data = package.to_dict()
            data["state"] = self.get_state(package.id).value
            data["version_count"] = counts.get(package.id, 0)
            data["live_path"] = str(self.live.path(package))
            overview.append(data)
        return overview
