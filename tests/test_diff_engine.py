"""Tests for directory and file diffs."""

from conftest import build_schematron

from validation_assets.diff_engine import DiffEngine, collect_files, is_binary
from validation_assets.models import FileChangeStatus, FilesSummary


def _write(root, files):
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


def test_directory_diff_classifies_and_sorts(tmp_path):
    old, new = tmp_path / "old", tmp_path / "new"
    _write(old, {"b.xml": "same", "a.xml": "old text", "gone.xml": "bye", "sub/keep.xsd": "k"})
    _write(new, {"b.xml": "same", "a.xml": "new text!", "added.xml": "hi", "sub/keep.xsd": "k"})

    diffs = DiffEngine().compute_directory_diff(old, new)

    assert [d.path for d in diffs] == ["a.xml", "added.xml", "b.xml", "gone.xml", "sub/keep.xsd"]
    by_path = {d.path: d for d in diffs}
    assert by_path["a.xml"].status == FileChangeStatus.MODIFIED
    assert by_path["added.xml"].status == FileChangeStatus.ADDED
    assert by_path["added.xml"].old_size == -1
    assert by_path["gone.xml"].status == FileChangeStatus.REMOVED
    assert by_path["gone.xml"].new_size == -1
    assert by_path["b.xml"].status == FileChangeStatus.UNCHANGED
    assert by_path["sub/keep.xsd"].status == FileChangeStatus.UNCHANGED


def test_same_size_different_bytes_is_modified(tmp_path):
    old, new = tmp_path / "old", tmp_path / "new"
    _write(old, {"rule.xml": "abc"})
    _write(new, {"rule.xml": "abd"})

    diffs = DiffEngine().compute_directory_diff(old, new)
    assert diffs[0].status == FileChangeStatus.MODIFIED


def test_missing_old_tree_reports_everything_added(tmp_path):
    new = tmp_path / "new"
    _write(new, {"one.xml": "1", "two.xml": "2"})

    diffs = DiffEngine().compute_directory_diff(tmp_path / "missing", new)
    summary = FilesSummary.from_diffs(diffs)
    assert summary.added == 2
    assert summary.total == 2


def test_collect_files_uses_posix_paths(tmp_path):
    _write(tmp_path, {"common/UBL-CommonBasicComponents-2.1.xsd": "x"})
    assert list(collect_files(tmp_path)) == ["common/UBL-CommonBasicComponents-2.1.xsd"]
    assert collect_files(None) == {}


def test_unified_diff_headers(tmp_path):
    old, new = tmp_path / "old.xml", tmp_path / "new.xml"
    old.write_text("line1\nline2\nline3\n", encoding="utf-8")
    new.write_text("line1\nchanged\nline3\n", encoding="utf-8")

    detail = DiffEngine().compute_file_diff(old, new, "schematron/main.xml")

    assert detail.status == FileChangeStatus.MODIFIED
    assert not detail.is_binary
    assert "--- a/schematron/main.xml" in detail.unified_diff
    assert "+++ b/schematron/main.xml" in detail.unified_diff
    assert "-line2" in detail.unified_diff
    assert "+changed" in detail.unified_diff
    assert detail.old_content.startswith("line1")


def test_added_file_diff_has_no_old_content(tmp_path):
    new = tmp_path / "new.xml"
    new.write_text("<a/>\n", encoding="utf-8")

    detail = DiffEngine().compute_file_diff(None, new, "new.xml")
    assert detail.status == FileChangeStatus.ADDED
    assert detail.old_content is None
    assert "+<a/>" in detail.unified_diff


def test_unchanged_file_has_empty_diff(tmp_path):
    old, new = tmp_path / "a.xml", tmp_path / "b.xml"
    old.write_text("same\n", encoding="utf-8")
    new.write_text("same\n", encoding="utf-8")

    detail = DiffEngine().compute_file_diff(old, new, "a.xml")
    assert detail.status == FileChangeStatus.UNCHANGED
    assert detail.unified_diff == ""


def test_binary_file_reports_status_only(tmp_path):
    old, new = tmp_path / "old.bin", tmp_path / "new.bin"
    old.write_bytes(b"\x00\x01\x02")
    new.write_bytes(b"\x00\x01\x03")

    assert is_binary(old)
    detail = DiffEngine().compute_file_diff(old, new, "archive.bin")
    assert detail.is_binary
    assert detail.status == FileChangeStatus.MODIFIED
    assert detail.unified_diff == ""
    assert detail.old_content is None


def test_rule_id_diff(tmp_path):
    old, new = tmp_path / "old.xml", tmp_path / "new.xml"
    old.write_text(build_schematron("InvoiceIDCheck", "CommonRule-01"), encoding="utf-8")
    new.write_text(build_schematron("InvoiceIDCheck", "CommonRule-001"), encoding="utf-8")

    rule_diff = DiffEngine().compute_rule_id_diff(old, new)
    assert rule_diff.removed == {"CommonRule-01"}
    assert rule_diff.added == {"CommonRule-001"}
    assert rule_diff.retained == {"InvoiceIDCheck"}
    assert rule_diff.has_changes


def test_rule_id_diff_removed_file(tmp_path):
    old = tmp_path / "old.xml"
    old.write_text(build_schematron("A-1", "A-2"), encoding="utf-8")

    rule_diff = DiffEngine().compute_rule_id_diff(old, None)
    assert rule_diff.removed == {"A-1", "A-2"}
    assert not rule_diff.added
