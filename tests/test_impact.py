"""Tests for suppression impact analysis."""

from conftest import SCHEMATRON_LIVE_DIR, build_schematron, write_live

from validation_assets.impact import SuppressionImpactAnalyzer, find_similar_id, levenshtein
from validation_assets.models import (
    FileChangeStatus,
    FileDiffSummary,
    SuppressionRule,
    ValidationProfile,
    WarningSeverity,
)
from validation_assets.profiles import ValidationProfileService

PROFILES_YAML = """
profiles:
  tenant:
    suppressions:
      - match: ruleId
        pattern: "CommonRule-01"
      - match: ruleIdEquals
        pattern: InvoiceIDCheck
      - match: text
        pattern: ".*InvoiceIDCheck.*"
suppressions:
  - match: ruleId
    pattern: "Legacy-.*"
"""


def _analyzer(tmp_path, text=PROFILES_YAML):
    path = tmp_path / "validation-profiles.yml"
    path.write_text(text, encoding="utf-8")
    profiles = ValidationProfileService(path)
    profiles.reload()
    return SuppressionImpactAnalyzer(profiles)


def _trees(tmp_path, old_content, new_content, name="main.xml"):
    live, staged = tmp_path / "live", tmp_path / "staged"
    for root, content in ((live, old_content), (staged, new_content)):
        root.mkdir(parents=True, exist_ok=True)
        if content is not None:
            (root / name).write_text(content, encoding="utf-8")
    return live, staged


def test_levenshtein():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0


def test_find_similar_id_threshold():
    assert find_similar_id("CommonRule-01", {"commonrule-001", "Unrelated"}) == "commonrule-001"
    assert find_similar_id("InvoiceIDCheck", {"CommonRule-001"}) is None
    assert find_similar_id("AB", {"XYZ"}) == "XYZ"


def test_renamed_rule_is_warning(tmp_path):
    analyzer = _analyzer(tmp_path)
    live, staged = _trees(
        tmp_path,
        build_schematron("CommonRule-01", "Other-1"),
        build_schematron("CommonRule-001", "Other-1"),
    )
    diffs = [FileDiffSummary("main.xml", FileChangeStatus.MODIFIED, 10, 11)]

    warnings = analyzer.analyze_impact(live, staged, diffs)

    assert len(warnings) == 1
    warning = warnings[0]
    assert warning.severity == WarningSeverity.WARNING
    assert warning.rule_id == "CommonRule-01"
    assert warning.profile_name == "tenant"
    assert "CommonRule-001" in warning.message


def test_removed_rule_is_critical(tmp_path):
    analyzer = _analyzer(tmp_path)
    live, staged = _trees(
        tmp_path,
        build_schematron("InvoiceIDCheck", "Legacy-7"),
        build_schematron("CommonRule-001"),
    )
    diffs = [FileDiffSummary("main.xml", FileChangeStatus.MODIFIED, 10, 11)]

    warnings = analyzer.analyze_impact(live, staged, diffs)

    by_rule = {(w.rule_id, w.profile_name): w for w in warnings}
    assert by_rule[("InvoiceIDCheck", "tenant")].severity == WarningSeverity.CRITICAL
    assert by_rule[("Legacy-7", "(global)")].pattern == "Legacy-.*"
    # text rules are not tied to rule ids
    assert all(w.pattern != ".*InvoiceIDCheck.*" for w in warnings)


def test_removed_file(tmp_path):
    analyzer = _analyzer(tmp_path)
    live, staged = _trees(tmp_path, build_schematron("InvoiceIDCheck"), None)
    diffs = [FileDiffSummary("main.xml", FileChangeStatus.REMOVED, 10, -1)]

    warnings = analyzer.analyze_impact(live, staged, diffs)
    assert [w.rule_id for w in warnings] == ["InvoiceIDCheck"]


def test_ignores_added_and_non_schematron_files(tmp_path):
    analyzer = _analyzer(tmp_path)
    live, staged = _trees(
        tmp_path, build_schematron("InvoiceIDCheck"), build_schematron(), name="main.xsd"
    )
    diffs = [
        FileDiffSummary("main.xsd", FileChangeStatus.MODIFIED, 10, 11),
        FileDiffSummary("new.xml", FileChangeStatus.ADDED, -1, 11),
    ]
    assert analyzer.analyze_impact(live, staged, diffs) == []


def test_no_rule_id_suppressions(tmp_path):
    analyzer = _analyzer(tmp_path, "profiles:\n  t:\n    suppressions:\n      - match: text\n        pattern: x\n")
    live, staged = _trees(tmp_path, build_schematron("A"), build_schematron("B"))
    diffs = [FileDiffSummary("main.xml", FileChangeStatus.MODIFIED, 10, 11)]
    assert analyzer.analyze_impact(live, staged, diffs) == []


def test_sync_preview_carries_suppression_warnings(services, fetcher, asset_root):
    services.profiles.save_profile(
        ValidationProfile("tenant", suppressions=[SuppressionRule("ruleIdEquals", "InvoiceIDCheck")])
    )
    write_live(asset_root, SCHEMATRON_LIVE_DIR, {"main.xml": build_schematron("InvoiceIDCheck")})
    fetcher.set_tree("efatura", {"main.xml": build_schematron("SomethingElse-1")})

    preview = services.versioning.sync_to_staging("efatura")

    assert [w.severity for w in preview.suppression_warnings] == [WarningSeverity.CRITICAL]
    assert preview.to_dict()["suppression_warnings"][0]["rule_id"] == "InvoiceIDCheck"
