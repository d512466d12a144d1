"""Core data structures for asset lifecycle and profile resolution.

These dataclasses are produced by the diff engine, version store, staging
area and profile service, and consumed by the admin HTTP layer and CLI. They
avoid framework dependencies so they can be persisted (``versions.json``),
serialized for API responses via ``to_dict`` or compared in tests.

Overview:
        * ``FileDiffSummary`` / ``FileDiffDetail`` describe differences between
            two directory trees (a live tree and a staged or historical one).
        * ``AssetVersion`` is an immutable history record created on approval.
        * ``StagingEntry`` / ``SyncPreview`` describe a pending package download.
        * ``ValidationProfile`` and its rule types describe unmerged profile
            definitions; inheritance is resolved at read time by the profile
            service.
        * ``ReloadResult`` / ``ReloadReport`` carry per-component reload outcomes.

Typical construction (simplified)::

        from validation_assets.models import (
                FileChangeStatus, FileDiffSummary, FilesSummary,
        )

        diffs = [
                FileDiffSummary("schematron/UBL-TR_Main.xml", FileChangeStatus.MODIFIED, 1200, 1350),
                FileDiffSummary("schematron/legacy.xml", FileChangeStatus.REMOVED, 300, -1),
        ]
        summary = FilesSummary.from_diffs(diffs)
        assert summary.modified == 1 and summary.total == 2

Design notes:
        * Sizes use ``-1`` for "absent on this side" so JSON payloads stay flat.
        * ``SuppressionScope`` is a tagged union (``Unconditional`` or
            ``RestrictedTo``) so scope checks never special-case an empty set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileChangeStatus(str, Enum):
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    MODIFIED = "MODIFIED"
    UNCHANGED = "UNCHANGED"


class PackageState(str, Enum):
    """Per-package staging state."""

    NONE = "NONE"
    STAGED_PENDING = "STAGED_PENDING"


@dataclass(frozen=True)
class FileDiffSummary:
    """Change classification for one relative path between two trees."""

    path: str
    status: FileChangeStatus
    old_size: int = -1
    new_size: int = -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "old_size": self.old_size,
            "new_size": self.new_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileDiffSummary":
        return cls(
            path=data["path"],
            status=FileChangeStatus(data["status"]),
            old_size=int(data.get("old_size", -1)),
            new_size=int(data.get("new_size", -1)),
        )


@dataclass(frozen=True)
class FileDiffDetail:
    """Unified diff text for a single file.

    Binary or oversized files carry only ``status`` with ``is_binary`` set;
    no textual diff is attempted for them.
    """

    path: str
    status: FileChangeStatus
    unified_diff: str = ""
    old_content: Optional[str] = None
    new_content: Optional[str] = None
    is_binary: bool = False

    @classmethod
    def binary(cls, path: str, status: FileChangeStatus) -> "FileDiffDetail":
        return cls(path=path, status=status, is_binary=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "unified_diff": self.unified_diff,
            "old_content": self.old_content,
            "new_content": self.new_content,
            "is_binary": self.is_binary,
        }


@dataclass(frozen=True)
class FilesSummary:
    """Aggregate change counts for a diff."""

    added: int = 0
    removed: int = 0
    modified: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return self.added + self.removed + self.modified + self.unchanged

    @classmethod
    def from_diffs(cls, diffs: Iterable[FileDiffSummary]) -> "FilesSummary":
        counts = {status: 0 for status in FileChangeStatus}
        for diff in diffs:
            counts[diff.status] += 1
        return cls(
            added=counts[FileChangeStatus.ADDED],
            removed=counts[FileChangeStatus.REMOVED],
            modified=counts[FileChangeStatus.MODIFIED],
            unchanged=counts[FileChangeStatus.UNCHANGED],
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "added": self.added,
            "removed": self.removed,
            "modified": self.modified,
            "unchanged": self.unchanged,
            "total": self.total,
        }


@dataclass(frozen=True)
class RuleIdDiff:
    """Schematron rule id changes between two versions of one file."""

    removed: FrozenSet[str] = frozenset()
    added: FrozenSet[str] = frozenset()
    retained: FrozenSet[str] = frozenset()

    @property
    def has_changes(self) -> bool:
        return bool(self.removed or self.added)


class WarningSeverity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"


@dataclass(frozen=True)
class SuppressionWarning:
    """A suppression that a pending package would break or weaken."""

    rule_id: str
    profile_name: str
    pattern: str
    severity: WarningSeverity
    message: str

    @classmethod
    def removed(cls, rule_id: str, profile_name: str, pattern: str) -> "SuppressionWarning":
        return cls(
            rule_id=rule_id,
            profile_name=profile_name,
            pattern=pattern,
            severity=WarningSeverity.CRITICAL,
            message=(
                f"Suppression '{pattern}' in profile '{profile_name}' depends on rule id "
                f"'{rule_id}', which is removed in the new version; the suppression "
                "will no longer have any effect."
            ),
        )

    @classmethod
    def possibly_renamed(
        cls, rule_id: str, profile_name: str, pattern: str, possible_new_id: str
    ) -> "SuppressionWarning":
        return cls(
            rule_id=rule_id,
            profile_name=profile_name,
            pattern=pattern,
            severity=WarningSeverity.WARNING,
            message=(
                f"Suppression '{pattern}' in profile '{profile_name}' depends on rule id "
                f"'{rule_id}', which may have been renamed to '{possible_new_id}'. "
                "Manual review recommended."
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "profile_name": self.profile_name,
            "pattern": self.pattern,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class FileExtraction:
    """Maps archive entries matching a glob onto a directory of the package tree."""

    zip_path_pattern: str
    target_dir: str


@dataclass(frozen=True)
class PackageDefinition:
    """A named unit of externally sourced assets.

    ``live_dir`` is relative to the asset root; every ``FileExtraction``
    target is relative to the package tree itself.
    """

    id: str
    display_name: str
    download_url: str
    live_dir: str
    file_mapping: List[FileExtraction] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "download_url": self.download_url,
            "live_dir": self.live_dir,
            "description": self.description,
            "file_mapping": [
                {"zip_path_pattern": m.zip_path_pattern, "target_dir": m.target_dir}
                for m in self.file_mapping
            ],
        }


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a package fetch into a local directory."""

    files: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration_ms: int = 0


@dataclass(frozen=True)
class StagingEntry:
    """One pending (package, downloaded tree, diff, warnings) tuple."""

    package_id: str
    tree: Path
    diffs: List[FileDiffSummary]
    warnings: List[str] = field(default_factory=list)
    suppression_warnings: List[SuppressionWarning] = field(default_factory=list)
    files_extracted: int = 0
    fetch_duration_ms: int = 0
    staged_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class AssetVersion:
    """Immutable history record created by an approval.

    ``snapshot_dir`` holds ``_before`` (the live tree captured immediately
    before replacement) and ``_after`` (the tree that replaced it).
    """

    id: str
    number: int
    package_id: str
    display_name: str
    created_at: datetime
    snapshot_dir: Path
    files_summary: FilesSummary
    diffs: List[FileDiffSummary] = field(default_factory=list)

    @property
    def before_dir(self) -> Path:
        return self.snapshot_dir / "_before"

    @property
    def after_dir(self) -> Path:
        return self.snapshot_dir / "_after"

    def to_dict(self, include_diffs: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "number": self.number,
            "package_id": self.package_id,
            "display_name": self.display_name,
            "created_at": self.created_at.isoformat(),
            "files_summary": self.files_summary.to_dict(),
        }
        if include_diffs:
            data["diffs"] = [d.to_dict() for d in self.diffs]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], snapshot_dir: Path) -> "AssetVersion":
        diffs = [FileDiffSummary.from_dict(d) for d in data.get("diffs", [])]
        return cls(
            id=data["id"],
            number=int(data["number"]),
            package_id=data["package_id"],
            display_name=data.get("display_name", data["package_id"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            snapshot_dir=snapshot_dir,
            files_summary=FilesSummary.from_diffs(diffs),
            diffs=diffs,
        )


@dataclass(frozen=True)
class SyncPreview:
    """What approving a staged package would change."""

    package_id: str
    display_name: str
    target_version: int
    target_version_id: str
    files_summary: FilesSummary
    file_diffs: List[FileDiffSummary]
    warnings: List[str] = field(default_factory=list)
    suppression_warnings: List[SuppressionWarning] = field(default_factory=list)
    staged_at: Optional[datetime] = None
    files_extracted: int = 0
    fetch_duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "display_name": self.display_name,
            "target_version": self.target_version,
            "target_version_id": self.target_version_id,
            "files_summary": self.files_summary.to_dict(),
            "file_diffs": [d.to_dict() for d in self.file_diffs],
            "warnings": list(self.warnings),
            "suppression_warnings": [w.to_dict() for w in self.suppression_warnings],
            "staged_at": self.staged_at.isoformat() if self.staged_at else None,
            "files_extracted": self.files_extracted,
            "fetch_duration_ms": self.fetch_duration_ms,
        }


class ReloadStatus(str, Enum):
    OK = "OK"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ReloadResult:
    """Outcome of one reloadable component."""

    component_name: str
    status: ReloadStatus
    loaded_count: int = 0
    duration_ms: int = 0
    errors: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, name: str, count: int, duration_ms: int) -> "ReloadResult":
        return cls(name, ReloadStatus.OK, count, duration_ms, [])

    @classmethod
    def partial(
        cls, name: str, count: int, duration_ms: int, errors: List[str]
    ) -> "ReloadResult":
        return cls(name, ReloadStatus.PARTIAL, count, duration_ms, list(errors))

    @classmethod
    def failed(cls, name: str, duration_ms: int, error: str) -> "ReloadResult":
        return cls(name, ReloadStatus.FAILED, 0, duration_ms, [error])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_name": self.component_name,
            "status": self.status.value,
            "loaded_count": self.loaded_count,
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class ReloadReport:
    """Aggregate of a coordinated reload across all registered components."""

    status: ReloadStatus
    results: List[ReloadResult]
    duration_ms: int
    started_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_results(
        cls, results: List[ReloadResult], duration_ms: int, started_at: datetime
    ) -> "ReloadReport":
        statuses = {r.status for r in results}
        if not statuses or statuses == {ReloadStatus.OK}:
            status = ReloadStatus.OK
        elif statuses == {ReloadStatus.FAILED}:
            status = ReloadStatus.FAILED
        else:
            status = ReloadStatus.PARTIAL
        return cls(status, list(results), duration_ms, started_at)

    def result_for(self, component_name: str) -> Optional[ReloadResult]:
        for result in self.results:
            if result.component_name == component_name:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "started_at": self.started_at.isoformat(),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class ApprovalResult:
    version: AssetVersion
    reload: ReloadReport

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version.to_dict(include_diffs=True),
            "reload": self.reload.to_dict(),
        }


# -- Validation profiles ----------------------------------------------------


@dataclass(frozen=True)
class Unconditional:
    """Scope that applies to every validation."""

    def applies_to(self, active_types: Optional[Iterable[str]]) -> bool:
        return True

    def to_list(self) -> List[str]:
        return []


@dataclass(frozen=True)
class RestrictedTo:
    """Scope limited to a set of document/schematron type tags."""

    tags: FrozenSet[str]

    def applies_to(self, active_types: Optional[Iterable[str]]) -> bool:
        if not active_types:
            return False
        return not self.tags.isdisjoint(active_types)

    def to_list(self) -> List[str]:
        return sorted(self.tags)


SuppressionScope = Union[Unconditional, RestrictedTo]

UNCONDITIONAL = Unconditional()


def make_scope(tags: Union[None, str, Iterable[str]]) -> SuppressionScope:
    """Build a scope from YAML-ish input (``None``, a single tag or a list)."""
    if tags is None:
        return UNCONDITIONAL
    if isinstance(tags, str):
        tags = [tags]
    cleaned = frozenset(str(t).strip() for t in tags if str(t).strip())
    return RestrictedTo(cleaned) if cleaned else UNCONDITIONAL


@dataclass(frozen=True)
class SuppressionRule:
    """Field-match predicate removing raw errors from the active set.

    ``match`` is one of ``ruleId``, ``ruleIdEquals``, ``test``, ``testEquals``,
    ``message`` or ``text``. The ``*Equals`` modes treat ``pattern`` as a literal.
    """

    match: str
    pattern: str
    scope: SuppressionScope = UNCONDITIONAL
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"match": self.match, "pattern": self.pattern}
        if isinstance(self.scope, RestrictedTo):
            data["scope"] = self.scope.to_list()
        if self.description:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class XsdOverride:
    """Cardinality override for one element of an XSD type."""

    element: str
    min_occurs: Optional[str] = None
    max_occurs: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"element": self.element}
        if self.min_occurs is not None:
            data["minOccurs"] = self.min_occurs
        if self.max_occurs is not None:
            data["maxOccurs"] = self.max_occurs
        return data


@dataclass(frozen=True)
class SchematronCustomAssertion:
    """Extra Schematron assertion injected for a schematron type."""

    context: str
    test: str
    message: str
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "context": self.context,
            "test": self.test,
            "message": self.message,
        }
        if self.id:
            data["id"] = self.id
        return data


@dataclass
class ValidationProfile:
    """Unmerged profile definition as stored in the configuration document."""

    name: str
    description: Optional[str] = None
    extends: Optional[str] = None
    suppressions: List[SuppressionRule] = field(default_factory=list)
    xsd_overrides: Dict[str, List[XsdOverride]] = field(default_factory=dict)
    schematron_rules: Dict[str, List[SchematronCustomAssertion]] = field(
        default_factory=dict
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "extends": self.extends,
            "suppressions": [s.to_dict() for s in self.suppressions],
            "xsd_overrides": {
                k: [o.to_dict() for o in v] for k, v in self.xsd_overrides.items()
            },
            "schematron_rules": {
                k: [r.to_dict() for r in v] for k, v in self.schematron_rules.items()
            },
        }


@dataclass(frozen=True)
class SchematronError:
    """Structured raw Schematron validation error."""

    rule_id: Optional[str]
    test: Optional[str]
    message: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"rule_id": self.rule_id, "test": self.test, "message": self.message}


@dataclass(frozen=True)
class SuppressionResult:
    active_errors: List[SchematronError]
    suppressed_errors: List[SchematronError]
    profile_name: Optional[str]

    @property
    def suppressed_count(self) -> int:
        return len(self.suppressed_errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active_errors": [e.to_dict() for e in self.active_errors],
            "suppressed_errors": [e.to_dict() for e in self.suppressed_errors],
            "profile_name": self.profile_name,
            "suppressed_count": self.suppressed_count,
        }
