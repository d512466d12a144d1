"""Warn when a pending package breaks rule-id based suppressions.

Upstream Schematron releases occasionally rename or drop rule ids. A
suppression keyed on such an id silently stops working after approval, so the
sync preview lists every ``ruleId``/``ruleIdEquals`` suppression whose id
disappears from a modified or removed Schematron file:

* ``WARNING`` when a similar id (Levenshtein distance within
    ``max(3, len(id) // 3)``, case-insensitive) was added in the same file,
    suggesting a rename;
* ``CRITICAL`` otherwise.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .diff_engine import DiffEngine
from .models import FileChangeStatus, FileDiffSummary, SuppressionRule, SuppressionWarning
from .profiles import ValidationProfileService

logger = logging.getLogger(__name__)

SCHEMATRON_EXTENSIONS = (".xml", ".sch")
RULE_ID_MODES = ("ruleId", "ruleIdEquals")


def levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def find_similar_id(removed_id: str, added_ids: Iterable[str]) -> Optional[str]:
    """Closest added id within the rename threshold, or ``None``."""
    threshold = max(3, len(removed_id) // 3)
    best: Optional[str] = None
    best_distance = threshold + 1
    for candidate in sorted(added_ids):
        distance = levenshtein(removed_id.lower(), candidate.lower())
        if distance < best_distance:
            best, best_distance = candidate, distance
    return best


def _pattern_matches(rule: SuppressionRule, rule_id: str) -> bool:
    if rule.match == "ruleIdEquals":
        return rule.pattern == rule_id
    try:
        return re.fullmatch(rule.pattern, rule_id) is not None
    except re.error:
        return rule.pattern == rule_id


class SuppressionImpactAnalyzer:
    """Compare staged Schematron rule ids against stored suppressions."""

    def __init__(self, profile_service: ValidationProfileService, diff_engine: Optional[DiffEngine] = None):
        self.profile_service = profile_service
        self.diff_engine = diff_engine or DiffEngine()

    def analyze_impact(
        self,
        live_dir: Optional[Path],
        staged_dir: Optional[Path],
        file_diffs: List[FileDiffSummary],
    ) -> List[SuppressionWarning]:
        changes = [
            d
            for d in file_diffs
            if d.status in (FileChangeStatus.MODIFIED, FileChangeStatus.REMOVED)
            and d.path.lower().endswith(SCHEMATRON_EXTENSIONS)
        ]
        if not changes:
            return []

        suppressions: List[Tuple[str, SuppressionRule]] = [
            (profile_name, rule)
            for profile_name, rule in self.profile_service.suppression_index()
            if rule.match in RULE_ID_MODES
        ]
        if not suppressions:
            return []

        warnings: List[SuppressionWarning] = []
        for change in changes:
            old_file = live_dir / change.path if live_dir else None
            new_file = staged_dir / change.path if staged_dir else None
            rule_diff = self.diff_engine.compute_rule_id_diff(old_file, new_file)
            if not rule_diff.has_changes:
                continue
            for removed_id in sorted(rule_diff.removed):
                for profile_name, rule in suppressions:
                    if not _pattern_matches(rule, removed_id):
                        continue
                    similar = find_similar_id(removed_id, rule_diff.added)
                    if similar:
                        warnings.append(
                            SuppressionWarning.possibly_renamed(
                                removed_id, profile_name, rule.pattern, similar
                            )
                        )
                    else:
                        warnings.append(
                            SuppressionWarning.removed(removed_id, profile_name, rule.pattern)
                        )

        if warnings:
            logger.warning(f"{len(warnings)} suppression(s) affected by pending Schematron changes")
        return warnings
